"""Shared contract for exact allele-frequency calculators.

A calculator turns per-sample genotype likelihoods and a prior over the total
alternate allele count into an :class:`~exactaf.models.AlleleFrequencyResult`.
Concrete calculators only implement :meth:`AlleleFrequencyCalculator.compute_log_p_non_ref`;
input checks, sample filtering and result assembly live here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from .models import AlleleFrequencyResult
from .tracker import MAX_LOG_ERROR_TO_STOP_EARLY, StateTracker
from .utils import LN_10
from .validation import GenotypeDataError, validate_genotype_likelihoods, validate_log_priors

logger = logging.getLogger(__name__)

HOM_REF_INDEX = 0

#: Samples whose log-likelihoods sum to at least this are no-calls (all ~0).
SUM_GL_THRESH_NOCALL = -0.1 * LN_10


def prepare_genotype_likelihoods(
    genotype_likelihoods: Optional[Sequence[Sequence[float]]],
    num_alt_alleles: int,
    *,
    keep_uninformative: bool = False,
) -> np.ndarray:
    """Validate likelihoods and lay them out for the DP.

    Returns an array of shape ``(num_samples + 1, num_genotypes)`` whose row 0
    is a placeholder of zeros, so that row ``j`` holds sample ``j`` and lines
    up with prefix length ``j``. Uninformative samples are dropped unless
    ``keep_uninformative``.
    """
    matrix = validate_genotype_likelihoods(genotype_likelihoods, num_alt_alleles)
    if not keep_uninformative and matrix.shape[0] > 0:
        informative = matrix.sum(axis=1) < SUM_GL_THRESH_NOCALL
        dropped = int((~informative).sum())
        if dropped:
            logger.debug("Dropping %d uninformative sample(s) of %d", dropped, matrix.shape[0])
            matrix = matrix[informative]
    placeholder = np.zeros((1, matrix.shape[1]), dtype=np.float64)
    return np.vstack([placeholder, matrix])


class AlleleFrequencyCalculator(ABC):
    """Computes the posterior over alternate allele counts at one diploid site.

    Parameters
    ----------
    keep_uninformative:
        Keep samples whose likelihoods carry no information instead of
        dropping them before the calculation.
    max_log_error_to_stop_early:
        Natural-log distance below the current MLE at which a branch may be
        abandoned; only used by calculators that prune.
    """

    def __init__(
        self,
        *,
        keep_uninformative: bool = False,
        max_log_error_to_stop_early: float = MAX_LOG_ERROR_TO_STOP_EARLY,
    ) -> None:
        self.keep_uninformative = keep_uninformative
        self.max_log_error_to_stop_early = max_log_error_to_stop_early

    def calculate(
        self,
        genotype_likelihoods: Optional[Sequence[Sequence[float]]],
        num_alt_alleles: int,
        log_priors: Optional[Sequence[float]],
        *,
        alleles: Optional[Sequence[str]] = None,
    ) -> AlleleFrequencyResult:
        """Run the calculation for one site.

        ``genotype_likelihoods`` holds one natural-log likelihood vector per
        sample in PL order; ``log_priors[k]`` is the log prior of a total
        alternate allele count of ``k``.
        """
        if alleles is not None and len(alleles) != num_alt_alleles + 1:
            raise GenotypeDataError(
                f"got {len(alleles)} allele labels for {num_alt_alleles} alternate allele(s) plus reference"
            )
        gls = prepare_genotype_likelihoods(
            genotype_likelihoods, num_alt_alleles, keep_uninformative=self.keep_uninformative
        )
        priors = validate_log_priors(log_priors, 2 * (gls.shape[0] - 1))
        tracker = StateTracker(
            num_alt_alleles, max_log_error_to_stop_early=self.max_log_error_to_stop_early
        )
        self.compute_log_p_non_ref(gls, num_alt_alleles, priors, tracker)
        return tracker.to_result(priors, alleles=alleles)

    @abstractmethod
    def compute_log_p_non_ref(
        self,
        genotype_likelihoods: np.ndarray,
        num_alt_alleles: int,
        log_priors: np.ndarray,
        tracker: StateTracker,
    ) -> None:
        """Feed every conformation this calculator evaluates into ``tracker``.

        ``genotype_likelihoods`` is laid out as returned by
        :func:`prepare_genotype_likelihoods`.
        """
