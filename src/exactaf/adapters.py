"""Lift genotype likelihoods out of VCF records for the allele-frequency calculators.

Only the per-sample ``PL`` (or ``GL``) FORMAT field is read; everything else
about the record is left to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pysam
from tqdm import tqdm

from .calculator import AlleleFrequencyCalculator
from .models import SiteResult
from .priors import heterozygosity_log_priors
from .utils import LN_10, num_genotypes, phred_to_log
from .validation import GenotypeDataError

logger = logging.getLogger(__name__)

_SUPPORTED_FIELDS = ("PL", "GL")


def pl_to_log_likelihoods(pl: Sequence[float]) -> np.ndarray:
    """Phred-scaled genotype likelihoods (PL) to natural-log likelihoods."""
    return phred_to_log(np.asarray(pl, dtype=np.float64))


def gl_to_log_likelihoods(gl: Sequence[float]) -> np.ndarray:
    """log10 genotype likelihoods (GL) to natural-log likelihoods."""
    return np.asarray(gl, dtype=np.float64) * LN_10


def _sample_values(sample: pysam.libcbcf.VariantRecordSample, field: str) -> Optional[Tuple[float, ...]]:
    """Per-genotype values of ``field`` or None when the call is missing."""
    if field not in sample:
        return None
    values = sample[field]
    if values is None:
        return None
    if not isinstance(values, (list, tuple)):
        values = (values,)
    if len(values) == 0 or any(v is None for v in values):
        return None
    return tuple(float(v) for v in values)


def genotype_likelihoods_from_record(
    record: pysam.VariantRecord,
    *,
    samples: Optional[Iterable[str]] = None,
    field: str = "PL",
) -> Tuple[np.ndarray, List[str]]:
    """Natural-log genotype likelihoods of each called sample in ``record``.

    Returns a ``samples x genotypes`` array in PL order together with the
    names of the samples it covers; samples without the field are skipped.
    """
    if field not in _SUPPORTED_FIELDS:
        raise ValueError(f"field must be one of {_SUPPORTED_FIELDS}, got {field!r}")

    expected = num_genotypes(len(record.alleles))
    names = list(samples) if samples is not None else list(record.samples)

    rows: List[np.ndarray] = []
    used: List[str] = []
    for name in names:
        values = _sample_values(record.samples[name], field)
        if values is None:
            continue
        if len(values) != expected:
            raise GenotypeDataError(
                f"{record.chrom}:{record.pos} sample {name} has {len(values)} {field} values; "
                f"expected {expected} for {len(record.alleles)} alleles"
            )
        if field == "PL":
            rows.append(pl_to_log_likelihoods(values))
        else:
            rows.append(gl_to_log_likelihoods(values))
        used.append(name)

    if len(used) < len(names):
        logger.debug(
            "%s:%d: %d of %d sample(s) have no %s", record.chrom, record.pos, len(names) - len(used), len(names), field
        )
    if not rows:
        return np.empty((0, expected), dtype=np.float64), used
    return np.vstack(rows), used


def calculate_record(
    record: pysam.VariantRecord,
    calculator: AlleleFrequencyCalculator,
    log_priors: Sequence[float],
    *,
    samples: Optional[Iterable[str]] = None,
    field: str = "PL",
) -> SiteResult:
    """Run ``calculator`` on one VCF record."""
    gls, used = genotype_likelihoods_from_record(record, samples=samples, field=field)
    alleles = tuple(str(a) for a in record.alleles)
    result = calculator.calculate(gls, len(alleles) - 1, log_priors, alleles=alleles)
    return SiteResult(
        chrom=str(record.chrom),
        pos0=int(record.start),
        alleles=alleles,
        num_samples=len(used),
        result=result,
    )


def iter_site_results(
    vcf_path: str | Path,
    calculator: AlleleFrequencyCalculator,
    *,
    log_priors: Optional[Sequence[float]] = None,
    heterozygosity: float = 1e-3,
    samples: Optional[Sequence[str]] = None,
    field: str = "PL",
    progress: bool = True,
) -> Iterator[SiteResult]:
    """Compute allele-frequency results for every record of a VCF, in file order.

    When ``log_priors`` is not given, heterozygosity priors sized for every
    sample in the file are used. Records without alleles are skipped.
    """
    with pysam.VariantFile(str(vcf_path)) as vcf:
        sample_names = list(samples) if samples is not None else list(vcf.header.samples)
        if log_priors is None:
            log_priors = heterozygosity_log_priors(2 * len(sample_names), heterozygosity)

        it: Iterable[pysam.VariantRecord] = vcf
        if progress:
            it = tqdm(it, unit="site", desc="Computing allele frequencies")

        n_sites = 0
        n_skipped = 0
        for record in it:
            if not record.alleles:
                n_skipped += 1
                continue
            yield calculate_record(record, calculator, log_priors, samples=sample_names, field=field)
            n_sites += 1

    logger.info("Computed allele frequencies for %d site(s); skipped %d record(s) without alleles", n_sites, n_skipped)
