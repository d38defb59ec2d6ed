"""exactaf: exact multi-allelic allele-frequency posteriors for diploid samples.

Public API is intentionally small:

    from exactaf import ReferenceDiploidExactCalculator, flat_log_priors

    calc = ReferenceDiploidExactCalculator()
    result = calc.calculate(genotype_log_likelihoods, num_alt_alleles, flat_log_priors(2 * n_samples))

"""

from __future__ import annotations

__all__ = [
    "__version__",
    "AlleleCounts",
    "AlleleFrequencyCalculator",
    "AlleleFrequencyResult",
    "ExhaustiveDiploidCalculator",
    "GenotypeDataError",
    "ReferenceDiploidExactCalculator",
    "SiteResult",
    "flat_log_priors",
    "heterozygosity_log_priors",
]

__version__ = "0.1.0"

from .calculator import AlleleFrequencyCalculator
from .exact import ReferenceDiploidExactCalculator
from .exhaustive import ExhaustiveDiploidCalculator
from .models import AlleleCounts, AlleleFrequencyResult, SiteResult
from .priors import flat_log_priors, heterozygosity_log_priors
from .validation import GenotypeDataError
