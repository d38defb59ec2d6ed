from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np

from .models import AlleleFrequencyResult
from .utils import NEG_INF, allele_pair, approximate_log_sum_log, log_sum_log, normalize_from_log
from .validation import check_log_value

#: Stop extending a branch once it is this far (natural log) below the MLE,
#: i.e. keep the calculation accurate to one part in a million.
MAX_LOG_ERROR_TO_STOP_EARLY = math.log(1e6)


def _best_with_at_least(genotype_likelihoods: np.ndarray, copies: np.ndarray) -> np.ndarray:
    """``out[t]``: best summed log-likelihood over genotype assignments carrying >= ``t`` copies.

    ``copies[g]`` is how many copies of the counted allele(s) genotype ``g``
    carries. Rows are samples; the result has ``2 * num_samples + 1`` entries.
    """
    per_copy = np.full((genotype_likelihoods.shape[0], 3), NEG_INF)
    for c in range(3):
        mask = copies == c
        if mask.any():
            per_copy[:, c] = genotype_likelihoods[:, mask].max(axis=1)

    best = np.zeros(1)
    for row in per_copy:
        extended = np.full(best.size + 2, NEG_INF)
        for c in range(3):
            extended[c : c + best.size] = np.maximum(extended[c : c + best.size], best + row[c])
        best = extended
    # running max from the right turns "exactly t" into "at least t"
    return np.maximum.accumulate(best[::-1])[::-1]


class ExtensionBound:
    """Upper bounds on what a conformation and all of its extensions can score.

    Every conformation reachable from ``counts`` holds at least ``counts[a]``
    copies of each allele ``a``, and its likelihood is a weighted average of
    genotype assignments with those counts. So its log-likelihood is at most
    the best summed genotype log-likelihood over assignments with at least
    ``counts.total`` alternate copies and, for each allele, at least
    ``counts[a]`` copies of it. Both tables are filled once per site.

    Parameters
    ----------
    genotype_likelihoods:
        Likelihood matrix with the placeholder row 0, as used by the DP.
    num_alt_alleles:
        Alternate alleles at the site.
    log_priors:
        Log priors indexed by allele count.
    """

    def __init__(self, genotype_likelihoods: np.ndarray, num_alt_alleles: int, log_priors: np.ndarray) -> None:
        gls = np.asarray(genotype_likelihoods, dtype=np.float64)[1:]
        pairs = [allele_pair(g) for g in range(gls.shape[1])]

        alt_copies = np.array([(i > 0) + (j > 0) for i, j in pairs])
        self._by_total = _best_with_at_least(gls, alt_copies)
        self._by_allele = [
            _best_with_at_least(gls, np.array([(i == a) + (j == a) for i, j in pairs]))
            for a in range(1, num_alt_alleles + 1)
        ]

        priors = np.asarray(log_priors, dtype=np.float64)
        self._prior_present = np.maximum.accumulate(priors[::-1])[::-1]
        # an absent allele contributes nothing, or a prior term if it appears later
        self._prior_absent = max(0.0, float(self._prior_present[1])) if priors.size > 1 else 0.0

    def log_likelihood(self, counts: Sequence[int]) -> float:
        bound = float(self._by_total[sum(counts)])
        for table, count in zip(self._by_allele, counts):
            bound = min(bound, float(table[count]))
        return bound

    def log_posterior(self, counts: Sequence[int]) -> float:
        bound = self.log_likelihood(counts)
        for count in counts:
            bound += float(self._prior_present[count]) if count > 0 else self._prior_absent
        return bound


class StateTracker:
    """Best-so-far bookkeeping for one site's allele-frequency calculation.

    Tracks the AF=0 hypothesis, the MLE and MAP allele counts, the summed
    likelihood/posterior mass of non-zero conformations, and decides when a
    branch of the conformation space can be abandoned.
    """

    def __init__(
        self,
        num_alt_alleles: int,
        *,
        max_log_error_to_stop_early: float = MAX_LOG_ERROR_TO_STOP_EARLY,
    ) -> None:
        if max_log_error_to_stop_early <= 0:
            raise ValueError("max_log_error_to_stop_early must be > 0")
        self.max_log_error_to_stop_early = float(max_log_error_to_stop_early)
        self.reset(num_alt_alleles)

    def reset(self, num_alt_alleles: int) -> None:
        self.num_alt_alleles = int(num_alt_alleles)
        self.log_likelihood_af_zero = NEG_INF
        self.log_posterior_af_zero = NEG_INF
        self.mle_counts: List[int] = [0] * self.num_alt_alleles
        self.log_mle = NEG_INF
        self.map_counts: List[int] = [0] * self.num_alt_alleles
        self.log_map = NEG_INF
        self.log_likelihood_af_gt_zero = NEG_INF
        self.log_posterior_af_gt_zero = NEG_INF
        self.log_posterior_by_allele: List[float] = [NEG_INF] * self.num_alt_alleles
        self.states_evaluated = 0
        self.states_pruned = 0

    def _check_counts(self, counts: Sequence[int]) -> None:
        if len(counts) != self.num_alt_alleles:
            raise ValueError(
                f"expected {self.num_alt_alleles} allele counts, got {len(counts)}"
            )

    def set_af_zero(self, log_likelihood: float, log_posterior: float) -> None:
        """Record the all-reference hypothesis; it competes for MLE and MAP like any other."""
        self.log_likelihood_af_zero = check_log_value(log_likelihood, "AF=0 log-likelihood")
        self.log_posterior_af_zero = check_log_value(log_posterior, "AF=0 log-posterior")
        self.states_evaluated += 1
        if log_likelihood > self.log_mle:
            self.log_mle = log_likelihood
            self.mle_counts = [0] * self.num_alt_alleles
        if log_posterior > self.log_map:
            self.log_map = log_posterior
            self.map_counts = [0] * self.num_alt_alleles

    def update_mle_if_needed(self, log_likelihood: float, counts: Sequence[int]) -> None:
        check_log_value(log_likelihood, f"log-likelihood of {tuple(counts)}")
        self._check_counts(counts)
        self.states_evaluated += 1
        self.log_likelihood_af_gt_zero = approximate_log_sum_log(
            self.log_likelihood_af_gt_zero, log_likelihood
        )
        if log_likelihood > self.log_mle:
            self.log_mle = log_likelihood
            self.mle_counts = list(counts)

    def update_map_if_needed(self, log_posterior: float, counts: Sequence[int]) -> None:
        check_log_value(log_posterior, f"log-posterior of {tuple(counts)}")
        self._check_counts(counts)
        self.log_posterior_af_gt_zero = approximate_log_sum_log(
            self.log_posterior_af_gt_zero, log_posterior
        )
        for allele, count in enumerate(counts):
            if count > 0:
                self.log_posterior_by_allele[allele] = approximate_log_sum_log(
                    self.log_posterior_by_allele[allele], log_posterior
                )
        if log_posterior > self.log_map:
            self.log_map = log_posterior
            self.map_counts = list(counts)

    def abort(self, log_likelihood_bound: float, log_posterior_bound: float) -> bool:
        """Whether every conformation reachable from the current one can be skipped.

        The bounds cap the log-likelihood and log-posterior of the current
        conformation and of everything above it (see :class:`ExtensionBound`).
        A branch is abandoned only when both caps fall further below the
        current MLE and MAP than ``max_log_error_to_stop_early``.
        """
        threshold = self.max_log_error_to_stop_early
        if log_likelihood_bound >= self.log_mle - threshold:
            return False
        if log_posterior_bound >= self.log_map - threshold:
            return False
        self.states_pruned += 1
        return True

    def to_result(
        self,
        log_priors: Sequence[float],
        *,
        alleles: Optional[Sequence[str]] = None,
    ) -> AlleleFrequencyResult:
        priors = np.asarray(log_priors, dtype=np.float64)
        log_prior_af_zero, log_prior_af_gt_zero = normalize_from_log(
            [priors[0], log_sum_log(priors[1:])]
        )
        return AlleleFrequencyResult(
            log_likelihood_af_zero=self.log_likelihood_af_zero,
            log_posterior_af_zero=self.log_posterior_af_zero,
            mle_counts=tuple(self.mle_counts),
            log_likelihood_mle=self.log_mle,
            map_counts=tuple(self.map_counts),
            log_posterior_map=self.log_map,
            log_likelihood_af_gt_zero=self.log_likelihood_af_gt_zero,
            log_posterior_af_gt_zero=self.log_posterior_af_gt_zero,
            log_prior_af_zero=float(log_prior_af_zero),
            log_prior_af_gt_zero=float(log_prior_af_gt_zero),
            log_posterior_by_allele=tuple(self.log_posterior_by_allele),
            states_evaluated=self.states_evaluated,
            states_pruned=self.states_pruned,
            alleles=tuple(alleles) if alleles is not None else None,
        )
