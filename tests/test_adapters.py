import json
import math
from pathlib import Path

import numpy as np
import pysam
import pytest

from exactaf import ReferenceDiploidExactCalculator
from exactaf.adapters import (
    genotype_likelihoods_from_record,
    gl_to_log_likelihoods,
    iter_site_results,
    pl_to_log_likelihoods,
)
from exactaf.toy_data import make_toy_data, simulate_site
from exactaf.validation import GenotypeDataError


def _make_vcf(path: Path, field: str, values_per_sample: list, alleles=("A", "G")) -> Path:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for i in range(len(values_per_sample)):
        header.add_sample(f"S{i + 1}")
    header.contigs.add("chr1", length=200)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    if field == "PL":
        header.formats.add("PL", number="G", type="Integer", description="Phred-scaled genotype likelihoods")
    else:
        header.formats.add("GL", number="G", type="Float", description="log10 genotype likelihoods")

    vcf_path = path / "calls.vcf"
    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        rec = vcf.new_record(contig="chr1", start=49, stop=50, alleles=alleles, qual=60, filter="PASS")
        for i, values in enumerate(values_per_sample):
            # Number=G fields take their ploidy from GT
            if values is None:
                rec.samples[i]["GT"] = (None, None)
            else:
                rec.samples[i]["GT"] = (0, 1)
                rec.samples[i][field] = values
        vcf.write(rec)
    return vcf_path


def test_likelihood_conversions() -> None:
    np.testing.assert_allclose(pl_to_log_likelihoods([0, 10, 20]), [0.0, -np.log(10), -2 * np.log(10)])
    np.testing.assert_allclose(gl_to_log_likelihoods([0.0, -1.0]), [0.0, -np.log(10)])


def test_record_likelihoods_skip_missing_samples(tmp_path: Path) -> None:
    vcf_path = _make_vcf(tmp_path, "PL", [(0, 30, 60), None, (60, 0, 60)])
    with pysam.VariantFile(str(vcf_path)) as vcf:
        rec = next(iter(vcf))
        gls, used = genotype_likelihoods_from_record(rec)
    assert used == ["S1", "S3"]
    assert gls.shape == (2, 3)
    assert gls[1, 1] == 0.0
    assert gls[0, 2] == pytest.approx(-6 * np.log(10))


def test_gl_field(tmp_path: Path) -> None:
    vcf_path = _make_vcf(tmp_path, "GL", [(-10.0, -5.0, 0.0), (-10.0, -5.0, 0.0)])
    results = list(
        iter_site_results(vcf_path, ReferenceDiploidExactCalculator(), field="GL", progress=False)
    )
    assert len(results) == 1
    assert results[0].num_samples == 2
    assert results[0].result.mle_counts == (4,)
    assert results[0].result.alleles == ("A", "G")


def test_unknown_field_is_rejected(tmp_path: Path) -> None:
    vcf_path = _make_vcf(tmp_path, "PL", [(0, 30, 60)])
    with pysam.VariantFile(str(vcf_path)) as vcf:
        rec = next(iter(vcf))
        with pytest.raises(ValueError):
            genotype_likelihoods_from_record(rec, field="AD")


def test_wrong_number_of_likelihoods(tmp_path: Path) -> None:
    vcf_path = tmp_path / "bad.vcf"
    vcf_path.write_text(
        "##fileformat=VCFv4.2\n"
        "##contig=<ID=chr1,length=200>\n"
        '##FORMAT=<ID=PL,Number=.,Type=Integer,Description="Phred-scaled genotype likelihoods">\n'
        "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tS1\n"
        "chr1\t50\t.\tA\tG\t60\tPASS\t.\tPL\t0,30\n"
    )
    with pysam.VariantFile(str(vcf_path)) as vcf:
        rec = next(iter(vcf))
        with pytest.raises(GenotypeDataError):
            genotype_likelihoods_from_record(rec)


def test_toy_data_end_to_end(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    assert Path(toy["toy_vcf"]).exists()
    summary = json.loads((tmp_path / "toy" / "toy_summary.json").read_text())
    truth = summary["true_allele_counts"]

    calc = ReferenceDiploidExactCalculator(prune=False)
    results = list(iter_site_results(toy["toy_vcf"], calc, progress=False))
    assert [len(r.alleles) for r in results] == [2, 3, 2]
    assert [r.pos0 for r in results] == [49, 119, 179]
    for r in results:
        assert r.num_samples == 4
        assert r.result.mle_counts == tuple(truth[str(r.pos0)])
    assert results[2].result.mle_counts == (0,)
    assert not results[2].result.is_polymorphic(0, math.log(0.99))


def test_simulated_pls_favour_truth() -> None:
    site = simulate_site(3, [0.2, 0.3, 0.5], seed=11)
    assert site.num_alt_alleles == 2
    for genotype, pl in zip(site.genotypes, site.pls):
        assert len(pl) == 6
        assert min(pl) == 0
        assert sum(p == 0 for p in pl) == 1
