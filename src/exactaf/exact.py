"""Exact multi-allelic allele-frequency model for diploid samples.

For every allele-count conformation ``k`` the DP column ``L[j]`` is the
log-likelihood of samples ``1..j`` given that the ``2j`` chromosomes they carry
hold ``k`` alternate copies. Column ``j`` of ``k`` needs column ``j-1`` of ``k``
(sample ``j`` is hom-ref) and column ``j-1`` of the conformations one or two
copies below ``k`` (sample ``j`` carries those copies). The latter are pushed
forward when the lower conformation is processed, so conformations are visited
breadth-first by total count from a FIFO worklist and evicted once done.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple, Union

import numpy as np

from .cache import ConformationCache
from .calculator import HOM_REF_INDEX, AlleleFrequencyCalculator
from .models import AlleleCounts, ConformationState
from .tracker import MAX_LOG_ERROR_TO_STOP_EARLY, ExtensionBound, StateTracker
from .utils import LOG_OF_2, allele_pair, approximate_log_sum_log, log_of, log_of_array, pl_index
from .validation import check_not_none

logger = logging.getLogger(__name__)


def determine_coefficient(
    pl: int, j: np.ndarray, counts: AlleleCounts
) -> Union[float, np.ndarray]:
    """Log count of ways sample ``j`` can carry genotype ``pl`` within conformation ``counts``.

    With ``r = 2j - K`` reference copies among the first ``2j`` chromosomes:

    - ref/b: ``2 * k_b * r``
    - b/b:   ``k_b * (k_b - 1)``
    - b/c:   ``2 * k_b * k_c``
    """
    allele1, allele2 = allele_pair(pl)
    if allele2 == 0:
        raise ValueError("hom-ref is part of the recurrence, not a pushed genotype")

    # allele indices count the reference, AlleleCounts does not
    if allele1 == 0:
        return log_of(2 * counts[allele2 - 1]) + log_of_array(2 * j - counts.total)

    k1 = counts[allele1 - 1]
    if allele1 == allele2:
        return log_of(k1) + log_of(k1 - 1)
    return LOG_OF_2 + log_of(k1) + log_of(counts[allele2 - 1])


def push_data(
    target: ConformationState,
    dependent: ConformationState,
    pl: int,
    genotype_likelihoods: np.ndarray,
) -> None:
    """Add the paths in which sample ``j`` carries genotype ``pl`` to every cell of ``target``."""
    total = target.counts.total
    # cells with fewer than ``total`` chromosomes cannot hold the conformation
    first = max(1, (total + 1) // 2)
    if first > target.num_samples:
        return
    j = np.arange(first, target.num_samples + 1)
    values = (
        determine_coefficient(pl, j, target.counts)
        + dependent.log_likelihoods[j - 1]
        + genotype_likelihoods[j, pl]
    )
    target.push(j, values)


def compute_af_zero_log_likelihoods(state: ConformationState, genotype_likelihoods: np.ndarray) -> float:
    """Fill the all-reference column: every sample is hom-ref."""
    state.log_likelihoods[:] = np.cumsum(genotype_likelihoods[:, HOM_REF_INDEX])
    return state.log_likelihood


def compute_log_likelihoods(state: ConformationState, genotype_likelihoods: np.ndarray) -> float:
    """Finish a column whose pushed contributions are all in; return its log-likelihood."""
    total = state.counts.total
    hom_ref = genotype_likelihoods[:, HOM_REF_INDEX].tolist()
    cells = state.log_likelihoods.tolist()
    for j in range(1, len(cells)):
        if total < 2 * j - 1:
            value = log_of(2 * j - total) + log_of(2 * j - total - 1) + cells[j - 1] + hom_ref[j]
            cells[j] = approximate_log_sum_log(cells[j], value)
        cells[j] -= log_of(2 * j) + log_of(2 * j - 1)
    state.log_likelihoods[:] = cells
    return state.log_likelihood


def successor_genotypes(counts: AlleleCounts, num_chromosomes: int) -> List[Tuple[AlleleCounts, int]]:
    """Conformations reachable from ``counts`` with the PL index of the genotype that adds them.

    One extra copy comes from a ref/alt het; two from an alt/alt genotype, with
    every pair of distinct alleles listed before every homozygote.
    """
    wiggle = num_chromosomes - counts.total
    if wiggle == 0:
        return []

    num_alt_alleles = len(counts)
    out = [(counts.incremented(a), pl_index(0, a + 1)) for a in range(num_alt_alleles)]
    if wiggle > 1:
        different: List[Tuple[AlleleCounts, int]] = []
        same: List[Tuple[AlleleCounts, int]] = []
        for a in range(num_alt_alleles):
            for b in range(a, num_alt_alleles):
                dependent = (counts.incremented(a, b), pl_index(a + 1, b + 1))
                if a == b:
                    same.append(dependent)
                else:
                    different.append(dependent)
        out.extend(different)
        out.extend(same)
    return out


class ReferenceDiploidExactCalculator(AlleleFrequencyCalculator):
    """Exact multi-allelic model over every allele-count conformation.

    Exponential in the number of alternate alleles in the worst case; pruning
    keeps it close to linear when most alleles carry little support. A branch
    is pruned only when no conformation on it can come within
    ``max_log_error_to_stop_early`` of the current MLE and MAP.

    Parameters
    ----------
    prune:
        Stop extending conformations whose every extension falls far below
        the current MLE and MAP.
    """

    def __init__(
        self,
        *,
        prune: bool = True,
        keep_uninformative: bool = False,
        max_log_error_to_stop_early: float = MAX_LOG_ERROR_TO_STOP_EARLY,
    ) -> None:
        super().__init__(
            keep_uninformative=keep_uninformative,
            max_log_error_to_stop_early=max_log_error_to_stop_early,
        )
        self.prune = prune

    def compute_log_p_non_ref(
        self,
        genotype_likelihoods: np.ndarray,
        num_alt_alleles: int,
        log_priors: np.ndarray,
        tracker: StateTracker,
    ) -> None:
        check_not_none(genotype_likelihoods, "genotype likelihoods")
        check_not_none(log_priors, "allele frequency priors")
        check_not_none(tracker, "state tracker")

        num_samples = genotype_likelihoods.shape[0] - 1
        num_chromosomes = 2 * num_samples

        bound = ExtensionBound(genotype_likelihoods, num_alt_alleles, log_priors) if self.prune else None
        cache = ConformationCache(num_samples)
        cache.get_or_create(AlleleCounts.zeros(num_alt_alleles))
        while cache.has_pending():
            state = cache.pop()
            self._calculate_conformation(
                state, genotype_likelihoods, num_chromosomes, cache, log_priors, tracker, bound
            )
            cache.evict(state.counts)

        logger.debug(
            "%d sample(s), %d alt allele(s): %d conformations evaluated, %d pruned, peak frontier %d",
            num_samples,
            num_alt_alleles,
            cache.created,
            tracker.states_pruned,
            cache.peak_size,
        )

    def _calculate_conformation(
        self,
        state: ConformationState,
        genotype_likelihoods: np.ndarray,
        num_chromosomes: int,
        cache: ConformationCache,
        log_priors: np.ndarray,
        tracker: StateTracker,
        bound: Optional[ExtensionBound],
    ) -> float:
        log_likelihood = self._compute_lof_k(state, genotype_likelihoods, log_priors, tracker)
        state.mark_processed()

        counts = state.counts.counts
        if bound is not None and tracker.abort(bound.log_likelihood(counts), bound.log_posterior(counts)):
            return log_likelihood

        for successor, pl in successor_genotypes(state.counts, num_chromosomes):
            push_data(cache.get_or_create(successor), state, pl, genotype_likelihoods)
        return log_likelihood

    @staticmethod
    def _compute_lof_k(
        state: ConformationState,
        genotype_likelihoods: np.ndarray,
        log_priors: np.ndarray,
        tracker: StateTracker,
    ) -> float:
        if state.counts.total == 0:
            log_lof0 = compute_af_zero_log_likelihoods(state, genotype_likelihoods)
            tracker.set_af_zero(log_lof0, log_lof0 + float(log_priors[0]))
            return log_lof0

        log_lofk = compute_log_likelihoods(state, genotype_likelihoods)
        tracker.update_mle_if_needed(log_lofk, state.counts.counts)

        log_posterior = log_lofk
        for count in state.counts:
            if count > 0:
                log_posterior += float(log_priors[count])
        tracker.update_map_if_needed(log_posterior, state.counts.counts)
        return log_lofk
