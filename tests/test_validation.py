import math

import numpy as np
import pytest

from exactaf import ReferenceDiploidExactCalculator, flat_log_priors
from exactaf.calculator import SUM_GL_THRESH_NOCALL, prepare_genotype_likelihoods
from exactaf.validation import GenotypeDataError, validate_genotype_likelihoods, validate_log_priors


def test_likelihood_matrix_shape():
    matrix = validate_genotype_likelihoods([[-1, -2, -3, -4, -5, -6]] * 4, 2)
    assert matrix.shape == (4, 6)
    assert matrix.dtype == np.float64
    assert validate_genotype_likelihoods([], 3).shape == (0, 10)


@pytest.mark.parametrize(
    "gls,num_alt",
    [
        (None, 1),
        ([[-1.0, -2.0, -3.0]], -1),
        ([[-1.0, -2.0, -3.0, -4.0]], 1),
        ([[-1.0, -2.0, -3.0], None], 1),
        ([[-1.0, float("nan"), -3.0]], 1),
        ([[-1.0, float("inf"), -3.0]], 1),
        ([[[-1.0, -2.0, -3.0]]], 1),
    ],
)
def test_malformed_likelihoods_are_fatal(gls, num_alt):
    with pytest.raises(GenotypeDataError):
        validate_genotype_likelihoods(gls, num_alt)


def test_negative_infinity_likelihood_is_allowed():
    res = ReferenceDiploidExactCalculator().calculate(
        [[float("-inf"), -10.0, 0.0]], 1, flat_log_priors(2)
    )
    assert res.log_likelihood_af_zero == float("-inf")
    assert res.mle_counts == (2,)


def test_priors_are_checked_and_trimmed():
    priors = validate_log_priors(np.log([0.5, 0.25, 0.125, 0.125]), 2)
    assert priors.shape == (3,)
    with pytest.raises(GenotypeDataError):
        validate_log_priors(None, 2)
    with pytest.raises(GenotypeDataError):
        validate_log_priors([0.0, 0.0], 2)
    with pytest.raises(GenotypeDataError):
        validate_log_priors([0.0, float("nan"), 0.0], 2)
    with pytest.raises(GenotypeDataError):
        validate_log_priors([float("-inf")] * 3, 2)
    with pytest.raises(GenotypeDataError):
        validate_log_priors([[0.0, 0.0, 0.0]], 2)


def test_calculator_rejects_short_priors_and_bad_labels():
    calc = ReferenceDiploidExactCalculator()
    with pytest.raises(GenotypeDataError):
        calc.calculate([[-5.0, -1.0, 0.0]] * 2, 1, flat_log_priors(2))
    with pytest.raises(GenotypeDataError):
        calc.calculate([[-5.0, -1.0, 0.0]], 1, flat_log_priors(2), alleles=("A",))


def test_uninformative_samples_are_dropped():
    gls = [[0.0, 0.0, 0.0], [-5.0, -1.0, 0.0], [0.0, -0.05, -0.1]]
    prepared = prepare_genotype_likelihoods(gls, 1)
    assert prepared.shape == (2, 3)
    np.testing.assert_array_equal(prepared[0], [0.0, 0.0, 0.0])
    np.testing.assert_array_equal(prepared[1], [-5.0, -1.0, 0.0])

    kept = prepare_genotype_likelihoods(gls, 1, keep_uninformative=True)
    assert kept.shape == (4, 3)
    assert SUM_GL_THRESH_NOCALL == pytest.approx(-0.1 * math.log(10))


def test_priors_sized_for_all_samples_cover_dropped_ones():
    gls = [[0.0, 0.0, 0.0], [-50.0, -1.0, 0.0]]
    res = ReferenceDiploidExactCalculator().calculate(gls, 1, flat_log_priors(4))
    assert res.mle_counts == (2,)
