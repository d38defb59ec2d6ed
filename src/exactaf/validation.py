from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

import numpy as np

from .utils import num_genotypes

logger = logging.getLogger(__name__)


class GenotypeDataError(ValueError):
    """Raised when genotype likelihoods or priors cannot be used for the calculation.

    These are fatal data errors: the input is malformed and is never corrected
    or retried.
    """


def check_not_none(value: Any, name: str) -> None:
    if value is None:
        raise GenotypeDataError(f"{name} is None")


def check_log_value(value: float, what: str) -> float:
    """Reject NaN and +inf log values; -inf (probability zero) is allowed."""
    if math.isnan(value) or value == math.inf:
        raise GenotypeDataError(
            f"{what} is {value}; the genotype likelihoods or priors are malformed"
        )
    return value


def _check_log_array(arr: np.ndarray, what: str) -> None:
    bad = np.isnan(arr) | np.isposinf(arr)
    if bad.any():
        first = tuple(int(i) for i in np.argwhere(bad)[0])
        raise GenotypeDataError(f"{what} contains a non-finite value at {first}: {arr[first]}")


def validate_genotype_likelihoods(
    genotype_likelihoods: Optional[Sequence[Sequence[float]]],
    num_alt_alleles: int,
) -> np.ndarray:
    """Check per-sample log-likelihood vectors and return them as a samples x genotypes array.

    Each sample must carry exactly one value per unordered diploid genotype
    over the reference plus ``num_alt_alleles`` alleles, in PL order.
    """
    check_not_none(genotype_likelihoods, "genotype likelihoods")
    if num_alt_alleles < 0:
        raise GenotypeDataError(f"number of alternate alleles must be >= 0, got {num_alt_alleles}")

    expected = num_genotypes(num_alt_alleles + 1)
    rows = []
    for i, row in enumerate(genotype_likelihoods):  # type: ignore[arg-type]
        check_not_none(row, f"genotype likelihoods of sample {i}")
        arr = np.asarray(row, dtype=np.float64)
        if arr.ndim != 1 or arr.size != expected:
            raise GenotypeDataError(
                f"sample {i} has {arr.size} genotype likelihoods; expected {expected} "
                f"for a diploid site with {num_alt_alleles} alternate allele(s)"
            )
        rows.append(arr)

    matrix = np.vstack(rows) if rows else np.empty((0, expected), dtype=np.float64)
    _check_log_array(matrix, "genotype likelihoods")
    return matrix


def validate_log_priors(log_priors: Optional[Sequence[float]], num_chromosomes: int) -> np.ndarray:
    """Check a log-prior vector over total allele count and trim it to ``0..num_chromosomes``."""
    check_not_none(log_priors, "allele frequency priors")
    arr = np.asarray(log_priors, dtype=np.float64)
    if arr.ndim != 1:
        raise GenotypeDataError(f"allele frequency priors must be one-dimensional, got shape {arr.shape}")
    if arr.size < num_chromosomes + 1:
        raise GenotypeDataError(
            f"allele frequency priors cover {arr.size} allele counts; "
            f"{num_chromosomes + 1} are needed for {num_chromosomes} chromosomes"
        )
    if arr.size > num_chromosomes + 1:
        logger.debug(
            "Using the first %d of %d allele frequency priors", num_chromosomes + 1, arr.size
        )
        arr = arr[: num_chromosomes + 1]
    _check_log_array(arr, "allele frequency priors")
    if np.isneginf(arr).all():
        raise GenotypeDataError("allele frequency priors assign zero probability to every allele count")
    return arr
