from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple, Union

import numpy as np

from .utils import NEG_INF, approximate_log_sum_log_array, log1m_exp, log_sum_log, log_to_phred

# ConformationState lifecycle
CREATED = "created"
ACCUMULATING = "accumulating"
PROCESSED = "processed"
EVICTED = "evicted"

_ALLOWED_TRANSITIONS = {
    CREATED: (ACCUMULATING, PROCESSED),
    ACCUMULATING: (ACCUMULATING, PROCESSED),
    PROCESSED: (EVICTED,),
    EVICTED: (),
}


@dataclass(frozen=True)
class AlleleCounts:
    """Number of chromosome copies of each alternate allele at a site.

    Immutable and hashed by value, so it can key the conformation cache.
    """

    counts: Tuple[int, ...]
    total: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        counts = tuple(int(c) for c in self.counts)
        if any(c < 0 for c in counts):
            raise ValueError(f"allele counts must be non-negative, got {counts}")
        object.__setattr__(self, "counts", counts)
        object.__setattr__(self, "total", sum(counts))

    @classmethod
    def zeros(cls, num_alt_alleles: int) -> "AlleleCounts":
        return cls((0,) * num_alt_alleles)

    def incremented(self, *alleles: int) -> "AlleleCounts":
        """Return a copy with one more copy of each listed allele (repeats allowed)."""
        counts = list(self.counts)
        for a in alleles:
            counts[a] += 1
        return AlleleCounts(tuple(counts))

    def __len__(self) -> int:
        return len(self.counts)

    def __getitem__(self, index: int) -> int:
        return self.counts[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self.counts)


class ConformationState:
    """DP column for one allele-count vector.

    ``log_likelihoods[j]`` is the log-likelihood of the first ``j`` samples
    given the conformation; cell 0 is 0 and every other cell starts at -inf.
    """

    __slots__ = ("counts", "log_likelihoods", "status")

    def __init__(self, counts: AlleleCounts, num_samples: int) -> None:
        self.counts = counts
        self.log_likelihoods = np.full(num_samples + 1, NEG_INF, dtype=np.float64)
        self.log_likelihoods[0] = 0.0
        self.status = CREATED

    def __repr__(self) -> str:
        return f"ConformationState(counts={self.counts.counts}, status={self.status!r})"

    @property
    def num_samples(self) -> int:
        return self.log_likelihoods.size - 1

    @property
    def log_likelihood(self) -> float:
        """Log-likelihood over all samples (the last cell)."""
        return float(self.log_likelihoods[-1])

    def _transition(self, status: str) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise RuntimeError(
                f"illegal transition {self.status} -> {status} for {self.counts.counts}"
            )
        self.status = status

    def push(self, cells: np.ndarray, values: np.ndarray) -> None:
        """Log-sum contributions from a predecessor conformation into ``cells``."""
        self._transition(ACCUMULATING)
        self.log_likelihoods[cells] = approximate_log_sum_log_array(self.log_likelihoods[cells], values)

    def mark_processed(self) -> None:
        self._transition(PROCESSED)

    def mark_evicted(self) -> None:
        self._transition(EVICTED)


@dataclass(frozen=True)
class AlleleFrequencyResult:
    """Outcome of one site's allele-frequency calculation.

    All values are natural logs. ``alleles`` optionally labels the reference
    followed by each alternate allele.

    Attributes
    ----------
    log_likelihood_af_zero / log_posterior_af_zero:
        The all-reference hypothesis.
    mle_counts / log_likelihood_mle:
        Allele counts with the highest likelihood (AF=0 included).
    map_counts / log_posterior_map:
        Allele counts with the highest posterior (AF=0 included).
    log_likelihood_af_gt_zero / log_posterior_af_gt_zero:
        Summed mass of every evaluated non-zero conformation.
    log_prior_af_zero / log_prior_af_gt_zero:
        Priors over AF=0 vs AF>0, normalized.
    log_posterior_by_allele:
        For each alternate allele, summed posterior mass of the conformations
        in which it is present.
    states_evaluated / states_pruned:
        Conformations whose likelihood was computed, and those whose
        successors were skipped.
    """

    log_likelihood_af_zero: float
    log_posterior_af_zero: float
    mle_counts: Tuple[int, ...]
    log_likelihood_mle: float
    map_counts: Tuple[int, ...]
    log_posterior_map: float
    log_likelihood_af_gt_zero: float
    log_posterior_af_gt_zero: float
    log_prior_af_zero: float
    log_prior_af_gt_zero: float
    log_posterior_by_allele: Tuple[float, ...]
    states_evaluated: int = 0
    states_pruned: int = 0
    alleles: Optional[Tuple[str, ...]] = None

    @property
    def num_alt_alleles(self) -> int:
        return len(self.mle_counts)

    def _allele_index(self, allele: Union[int, str]) -> int:
        if isinstance(allele, str):
            if self.alleles is None or allele not in self.alleles[1:]:
                raise KeyError(f"unknown alternate allele {allele!r}")
            return self.alleles.index(allele, 1) - 1
        if not 0 <= allele < self.num_alt_alleles:
            raise IndexError(f"alternate allele index {allele} out of range")
        return allele

    @property
    def log_total_posterior(self) -> float:
        return log_sum_log([self.log_posterior_af_zero, self.log_posterior_af_gt_zero])

    def normalized_log_posteriors(self) -> Tuple[float, float]:
        """``(log P(AF=0 | data), log P(AF>0 | data))``, summing to one."""
        total = self.log_total_posterior
        if total == NEG_INF:
            raise ValueError("posterior mass is zero for every conformation")
        return self.log_posterior_af_zero - total, self.log_posterior_af_gt_zero - total

    def log_p_non_ref(self, allele: Union[int, str]) -> float:
        """Log posterior probability that ``allele`` is present in the population."""
        idx = self._allele_index(allele)
        total = self.log_total_posterior
        if total == NEG_INF:
            raise ValueError("posterior mass is zero for every conformation")
        # approximate accumulation can overshoot the total by a hair
        return min(0.0, self.log_posterior_by_allele[idx] - total)

    def log_p_ref(self, allele: Union[int, str]) -> float:
        """Log posterior probability that ``allele`` is absent."""
        return log1m_exp(self.log_p_non_ref(allele))

    def is_polymorphic(self, allele: Union[int, str], log_threshold: float) -> bool:
        return self.log_p_ref(allele) < log_threshold

    def phred_non_ref(self, allele: Union[int, str]) -> float:
        """QUAL-style confidence that ``allele`` is present, Phred scaled."""
        return log_to_phred(self.log_p_ref(allele))

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["mle_counts"] = list(self.mle_counts)
        out["map_counts"] = list(self.map_counts)
        out["log_posterior_by_allele"] = list(self.log_posterior_by_allele)
        out["alleles"] = list(self.alleles) if self.alleles is not None else None
        return out


@dataclass(frozen=True)
class SiteResult:
    """Allele-frequency result for one VCF record."""

    chrom: str
    pos0: int
    alleles: Tuple[str, ...]
    num_samples: int
    result: AlleleFrequencyResult
