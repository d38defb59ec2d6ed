from __future__ import annotations

import itertools
import logging
import math
from collections import defaultdict
from typing import DefaultDict, List, Tuple

import numpy as np

from .calculator import AlleleFrequencyCalculator
from .tracker import MAX_LOG_ERROR_TO_STOP_EARLY, StateTracker
from .utils import allele_pair, log_sum_log, num_genotypes
from .validation import check_not_none

logger = logging.getLogger(__name__)

DEFAULT_MAX_ASSIGNMENTS = 1_000_000


class ExhaustiveDiploidCalculator(AlleleFrequencyCalculator):
    """Brute-force model: enumerate every genotype assignment to every sample.

    Each assignment contributes the product of the samples' genotype
    likelihoods, weighted by the probability of drawing those genotypes from
    a pool of chromosomes with the assignment's allele counts. Nothing is
    pruned, so every reachable conformation reaches the tracker. Only usable
    for a handful of samples and alleles.
    """

    def __init__(
        self,
        *,
        max_assignments: int = DEFAULT_MAX_ASSIGNMENTS,
        keep_uninformative: bool = False,
        max_log_error_to_stop_early: float = MAX_LOG_ERROR_TO_STOP_EARLY,
    ) -> None:
        super().__init__(
            keep_uninformative=keep_uninformative,
            max_log_error_to_stop_early=max_log_error_to_stop_early,
        )
        self.max_assignments = max_assignments

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
        n_genotypes = num_genotypes(num_alt_alleles + 1)
        if n_genotypes ** num_samples > self.max_assignments:
            raise ValueError(
                f"{n_genotypes}^{num_samples} genotype assignments exceed max_assignments={self.max_assignments}"
            )

        pairs = [allele_pair(g) for g in range(n_genotypes)]
        # het genotypes can be drawn in two orders
        log_orderings = [math.log(2.0) if i != j else 0.0 for i, j in pairs]
        rows = genotype_likelihoods[1:].tolist()

        terms: DefaultDict[Tuple[int, ...], List[float]] = defaultdict(list)
        for assignment in itertools.product(range(n_genotypes), repeat=num_samples):
            counts = [0] * (num_alt_alleles + 1)
            value = 0.0
            for row, g in zip(rows, assignment):
                i, j = pairs[g]
                counts[i] += 1
                counts[j] += 1
                value += row[g] + log_orderings[g]
            terms[tuple(counts)].append(value)

        # ordered draws of each allele's copies out of all 2N chromosomes
        log_total_orderings = math.lgamma(2 * num_samples + 1)
        for counts in sorted(terms, key=lambda c: (sum(c[1:]), c[1:])):
            log_draw = sum(math.lgamma(c + 1) for c in counts) - log_total_orderings
            log_likelihood = log_sum_log(terms[counts]) + log_draw
            alt_counts = counts[1:]
            if sum(alt_counts) == 0:
                tracker.set_af_zero(log_likelihood, log_likelihood + float(log_priors[0]))
                continue
            tracker.update_mle_if_needed(log_likelihood, alt_counts)
            log_posterior = log_likelihood + sum(float(log_priors[c]) for c in alt_counts if c > 0)
            tracker.update_map_if_needed(log_posterior, alt_counts)

        logger.debug(
            "Enumerated %d genotype assignments over %d conformations",
            n_genotypes ** num_samples,
            len(terms),
        )
