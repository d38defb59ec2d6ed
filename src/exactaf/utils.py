from __future__ import annotations

import json
import math
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Tuple, Union

import numpy as np

NEG_INF = float("-inf")
LOG_OF_2 = math.log(2.0)
LN_10 = math.log(10.0)

# Jacobian correction term log1p(exp(-x)) sampled on [0, _JACOBIAN_MAX].
# Linear interpolation of this convex function is off by at most step**2 / 32,
# and the term itself is below exp(-_JACOBIAN_MAX) past the end of the table.
_JACOBIAN_STEP = 1e-3
_JACOBIAN_MAX = 20.0
_JACOBIAN_SIZE = int(round(_JACOBIAN_MAX / _JACOBIAN_STEP))
_JACOBIAN_INV_STEP = 1.0 / _JACOBIAN_STEP


_JACOBIAN_X = np.arange(_JACOBIAN_SIZE + 1, dtype=np.float64) * _JACOBIAN_STEP
_JACOBIAN_Y = np.log1p(np.exp(-_JACOBIAN_X))
# pin the last knot to 0 so the interpolant meets the "drop the smaller term" branch
_JACOBIAN_Y[-1] = 0.0
# plain floats: scalar indexing into a list is much faster than into an ndarray
_JACOBIAN_TABLE = _JACOBIAN_Y.tolist()

#: Worst-case absolute error of :func:`approximate_log_sum_log`.
APPROXIMATE_LOG_SUM_ERROR = 1e-7


@lru_cache(maxsize=None)
def log_of(n: int) -> float:
    """Natural log of a non-negative integer, with log(0) == -inf."""
    if n < 0:
        raise ValueError(f"log_of requires a non-negative integer, got {n}")
    if n == 0:
        return NEG_INF
    return math.log(n)


def approximate_log_sum_log(a: float, b: float) -> float:
    """Fast approximation of ``log(exp(a) + exp(b))``.

    The result is ``max(a, b) + g(|a - b|)`` where ``g(x) = log1p(exp(-x))`` is
    read from a precomputed table by linear interpolation. The operation is
    commutative, non-decreasing in both arguments, treats ``-inf`` as the
    identity, and is within :data:`APPROXIMATE_LOG_SUM_ERROR` of the exact value.
    """
    if a < b:
        a, b = b, a
    if b == NEG_INF:
        return a
    diff = (a - b) * _JACOBIAN_INV_STEP
    if diff >= _JACOBIAN_SIZE:
        return a
    i = int(diff)
    lo = _JACOBIAN_TABLE[i]
    return a + lo + (diff - i) * (_JACOBIAN_TABLE[i + 1] - lo)


def approximate_log_sum_log_array(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Element-wise :func:`approximate_log_sum_log` with the same error bound."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    hi = np.maximum(a, b)
    lo = np.minimum(a, b)
    with np.errstate(invalid="ignore"):
        # -inf - -inf is nan here; those cells take the np.where branch below
        correction = np.interp(hi - lo, _JACOBIAN_X, _JACOBIAN_Y, right=0.0)
        return np.where(lo == NEG_INF, hi, hi + correction)


def log_of_array(n: np.ndarray) -> np.ndarray:
    """Element-wise :func:`log_of` for arrays of non-negative integers."""
    with np.errstate(divide="ignore"):
        return np.log(np.asarray(n, dtype=np.float64))


def log_sum_log(values: Iterable[float]) -> float:
    """Exact ``log(sum(exp(values)))``; -inf for an empty input."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return NEG_INF
    return float(np.logaddexp.reduce(arr))


def normalize_from_log(values: Iterable[float]) -> np.ndarray:
    """Shift log values so that their probabilities sum to one."""
    arr = np.asarray(list(values), dtype=np.float64)
    total = log_sum_log(arr)
    if total == NEG_INF:
        raise ValueError("cannot normalize: all values are -inf")
    return arr - total


def log1m_exp(x: float) -> float:
    """``log(1 - exp(x))`` for ``x <= 0``; -inf at x == 0."""
    if x > 0:
        raise ValueError(f"log1m_exp requires x <= 0, got {x}")
    if x == 0:
        return NEG_INF
    # two branches keep precision on both sides of log(1/2)
    if x > -LOG_OF_2:
        return math.log(-math.expm1(x))
    return math.log1p(-math.exp(x))


def phred_to_log(q: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Convert Phred-scaled values (scalar or array) to natural-log probabilities."""
    return -q * LN_10 / 10.0


def log_to_phred(log_p: float) -> float:
    """Convert a natural-log probability to a Phred-scaled value."""
    return -10.0 * log_p / LN_10


def num_genotypes(num_alleles: int) -> int:
    """Number of unordered diploid genotypes over ``num_alleles`` alleles (ref included)."""
    return num_alleles * (num_alleles + 1) // 2


def pl_index(allele1: int, allele2: int) -> int:
    """Position of genotype ``allele1/allele2`` in PL order (0 is the reference)."""
    if allele1 > allele2:
        allele1, allele2 = allele2, allele1
    return allele2 * (allele2 + 1) // 2 + allele1


@lru_cache(maxsize=None)
def allele_pair(index: int) -> Tuple[int, int]:
    """Inverse of :func:`pl_index`: the ``(i, j)`` with ``i <= j`` stored at ``index``."""
    if index < 0:
        raise ValueError(f"PL index must be non-negative, got {index}")
    j = 0
    while (j + 1) * (j + 2) // 2 <= index:
        j += 1
    return index - j * (j + 1) // 2, j


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
