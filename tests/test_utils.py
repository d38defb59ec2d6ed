import math

import numpy as np
import pytest

from exactaf.utils import (
    APPROXIMATE_LOG_SUM_ERROR,
    NEG_INF,
    allele_pair,
    approximate_log_sum_log,
    approximate_log_sum_log_array,
    log1m_exp,
    log_of,
    log_sum_log,
    normalize_from_log,
    num_genotypes,
    phred_to_log,
    pl_index,
)


def test_approximate_log_sum_within_documented_bound():
    rng = np.random.default_rng(11)
    a = rng.uniform(-60.0, 5.0, size=5000)
    b = a - rng.exponential(4.0, size=a.size)
    exact = np.logaddexp(a, b)
    approx = np.array([approximate_log_sum_log(x, y) for x, y in zip(a, b)])
    assert np.max(np.abs(approx - exact)) <= APPROXIMATE_LOG_SUM_ERROR


def test_approximate_log_sum_at_table_edges():
    for diff in (0.0, 1e-3, 0.5, 19.9995, 20.0, 25.0, 700.0):
        exact = float(np.logaddexp(-3.0, -3.0 - diff))
        assert abs(approximate_log_sum_log(-3.0, -3.0 - diff) - exact) <= APPROXIMATE_LOG_SUM_ERROR


def test_approximate_log_sum_is_commutative():
    rng = np.random.default_rng(3)
    for a, b in rng.uniform(-40.0, 0.0, size=(500, 2)):
        assert approximate_log_sum_log(a, b) == approximate_log_sum_log(b, a)


def test_approximate_log_sum_is_monotonic():
    grid = np.linspace(-30.0, 0.0, 3001)
    fixed = -12.345
    values = [approximate_log_sum_log(x, fixed) for x in grid]
    assert all(later >= earlier for earlier, later in zip(values, values[1:]))
    values = [approximate_log_sum_log(fixed, x) for x in grid]
    assert all(later >= earlier for earlier, later in zip(values, values[1:]))


def test_approximate_log_sum_negative_infinity_is_identity():
    assert approximate_log_sum_log(-4.2, NEG_INF) == -4.2
    assert approximate_log_sum_log(NEG_INF, -4.2) == -4.2
    assert approximate_log_sum_log(NEG_INF, NEG_INF) == NEG_INF


def test_array_version_matches_scalar():
    rng = np.random.default_rng(5)
    a = rng.uniform(-50.0, 0.0, size=1000)
    b = rng.uniform(-50.0, 0.0, size=1000)
    a[::7] = NEG_INF
    b[::11] = NEG_INF
    out = approximate_log_sum_log_array(a, b)
    expected = [approximate_log_sum_log(x, y) for x, y in zip(a, b)]
    finite = np.isfinite(expected)
    assert np.all(out[~finite] == NEG_INF)
    assert np.max(np.abs(out[finite] - np.asarray(expected)[finite])) <= 1e-12 + APPROXIMATE_LOG_SUM_ERROR


def test_log_of_zero_and_positive():
    assert log_of(0) == NEG_INF
    assert log_of(1) == 0.0
    assert log_of(12) == pytest.approx(math.log(12))
    with pytest.raises(ValueError):
        log_of(-1)


def test_log_sum_and_normalize():
    assert log_sum_log([]) == NEG_INF
    assert log_sum_log([math.log(0.25), math.log(0.5)]) == pytest.approx(math.log(0.75))
    norm = normalize_from_log([-1.0, -2.0, -3.0])
    assert np.exp(norm).sum() == pytest.approx(1.0)
    with pytest.raises(ValueError):
        normalize_from_log([NEG_INF, NEG_INF])


def test_log1m_exp():
    assert log1m_exp(math.log(0.25)) == pytest.approx(math.log(0.75))
    assert log1m_exp(-1e-12) == pytest.approx(math.log(1e-12), rel=1e-6)
    assert log1m_exp(0.0) == NEG_INF
    assert log1m_exp(NEG_INF) == 0.0


def test_pl_ordering():
    # A/A, A/B, B/B, A/C, B/C, C/C
    expected = [(0, 0), (0, 1), (1, 1), (0, 2), (1, 2), (2, 2)]
    assert [allele_pair(i) for i in range(num_genotypes(3))] == expected
    assert [pl_index(i, j) for i, j in expected] == list(range(6))
    assert pl_index(2, 1) == pl_index(1, 2) == 4


def test_phred_to_log():
    assert phred_to_log(10) == pytest.approx(math.log(0.1))
    assert phred_to_log(0) == 0.0
