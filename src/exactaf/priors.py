"""Priors over the total alternate allele count at a site."""

from __future__ import annotations

import math

import numpy as np


def flat_log_priors(num_chromosomes: int) -> np.ndarray:
    """Uniform log prior over allele counts ``0..num_chromosomes``."""
    if num_chromosomes < 0:
        raise ValueError(f"num_chromosomes must be >= 0, got {num_chromosomes}")
    return np.full(num_chromosomes + 1, -math.log(num_chromosomes + 1), dtype=np.float64)


def heterozygosity_log_priors(num_chromosomes: int, heterozygosity: float = 1e-3) -> np.ndarray:
    """Neutral-model log prior: ``P(AC = k) = heterozygosity / k`` for ``k >= 1``.

    The remaining mass goes to AC = 0.
    """
    if num_chromosomes < 0:
        raise ValueError(f"num_chromosomes must be >= 0, got {num_chromosomes}")
    if not 0.0 < heterozygosity < 1.0:
        raise ValueError(f"heterozygosity must be in (0, 1), got {heterozygosity}")

    k = np.arange(1, num_chromosomes + 1, dtype=np.float64)
    probs = heterozygosity / k
    ref_mass = 1.0 - probs.sum()
    if ref_mass <= 0.0:
        raise ValueError(
            f"heterozygosity {heterozygosity} is too large for {num_chromosomes} chromosomes "
            "(priors for AC > 0 sum to 1 or more)"
        )
    return np.log(np.concatenate([[ref_mass], probs]))
