from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pysam

from .utils import allele_pair, ensure_outdir, num_genotypes, write_json

_BASES = ("A", "C", "G", "T")


@dataclass(frozen=True)
class ToySite:
    """A simulated site: true genotypes and the PLs a caller would report."""

    pos0: int
    alleles: Tuple[str, ...]
    genotypes: Tuple[Tuple[int, int], ...]
    pls: Tuple[Tuple[int, ...], ...]

    @property
    def num_alt_alleles(self) -> int:
        return len(self.alleles) - 1

    def true_allele_counts(self) -> Tuple[int, ...]:
        counts = [0] * self.num_alt_alleles
        for a, b in self.genotypes:
            for allele in (a, b):
                if allele > 0:
                    counts[allele - 1] += 1
        return tuple(counts)


def _genotype_pls(truth: Tuple[int, int], n_alleles: int, phred_per_allele: int) -> Tuple[int, ...]:
    """PLs that penalise each genotype by the number of alleles it gets wrong."""
    true_pair = sorted(truth)
    pls = []
    for g in range(num_genotypes(n_alleles)):
        pair = list(allele_pair(g))
        mismatches = 2
        for allele in true_pair:
            if allele in pair:
                pair.remove(allele)
                mismatches -= 1
        pls.append(phred_per_allele * mismatches)
    return tuple(pls)


def simulate_site(
    num_samples: int,
    allele_freqs: Sequence[float],
    *,
    pos0: int = 0,
    phred_per_allele: int = 30,
    seed: Optional[int] = None,
) -> ToySite:
    """Draw diploid genotypes from ``allele_freqs`` (reference first) and derive their PLs."""
    freqs = np.asarray(allele_freqs, dtype=np.float64)
    if freqs.ndim != 1 or freqs.size < 1 or (freqs < 0).any():
        raise ValueError("allele_freqs must be a non-empty sequence of non-negative values")
    if freqs.size > len(_BASES):
        raise ValueError(f"at most {len(_BASES)} alleles are supported")
    freqs = freqs / freqs.sum()

    rng = np.random.default_rng(seed)
    draws = rng.choice(freqs.size, size=(num_samples, 2), p=freqs)
    genotypes = tuple((int(min(a, b)), int(max(a, b))) for a, b in draws)
    pls = tuple(_genotype_pls(g, freqs.size, phred_per_allele) for g in genotypes)
    return ToySite(pos0=pos0, alleles=_BASES[: freqs.size], genotypes=genotypes, pls=pls)


def write_toy_vcf(path: str | Path, sites: Sequence[ToySite], *, contig: str = "chr1") -> Path:
    """Write ``sites`` to an uncompressed VCF with GT and PL for every sample."""
    if not sites:
        raise ValueError("no sites to write")
    num_samples = len(sites[0].genotypes)

    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for i in range(num_samples):
        header.add_sample(f"S{i + 1}")
    header.contigs.add(contig, length=max(s.pos0 for s in sites) + 100)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("PL", number="G", type="Integer", description="Phred-scaled genotype likelihoods")

    vcf_path = Path(path)
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for site in sites:
            rec = vcf.new_record(
                contig=contig,
                start=site.pos0,
                stop=site.pos0 + 1,
                alleles=site.alleles,
                qual=60,
                filter="PASS",
            )
            for i, (genotype, pl) in enumerate(zip(site.genotypes, site.pls)):
                rec.samples[i]["GT"] = genotype
                rec.samples[i]["PL"] = pl
            vcf.write(rec)
    return vcf_path


def make_toy_data(*, outdir: str | Path, num_samples: int = 4, seed: int = 7) -> Dict[str, object]:
    """Create a tiny multi-allelic VCF suitable for quick demos/tests.

    The outputs include:
    - toy.vcf (one bi-allelic, one tri-allelic and one monomorphic-looking site)
    - toy_summary.json with the simulated allele counts

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    sites: List[ToySite] = [
        simulate_site(num_samples, [0.5, 0.5], pos0=49, seed=seed),
        simulate_site(num_samples, [0.4, 0.3, 0.3], pos0=119, seed=seed + 1),
        simulate_site(num_samples, [1.0, 0.0], pos0=179, seed=seed + 2),
    ]
    vcf_path = write_toy_vcf(outdir_p / "toy.vcf", sites)

    summary = {
        "toy_vcf": str(vcf_path),
        "outdir": str(outdir_p),
        "true_allele_counts": {str(s.pos0): list(s.true_allele_counts()) for s in sites},
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary

