import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KmerCoverage:
    """Summary of per-target base coverage estimated from k-mer hits."""
    total_reads: int
    mapped_reads: int
    total_bases: int
    mapped_bases: int
    mean: float
    q1: float
    median: float
    q3: float
    fold80: Optional[float] = None

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    @property
    def dispersion(self) -> float:
        denom = self.q1 + self.median
        return self.iqr / denom if denom > 0.0 else float('nan')

    @property
    def median_over_mean(self) -> float:
        return self.median / self.mean if self.mean > 0.0 else float('nan')


def _fold80_penalty(coverage: np.ndarray) -> float:
    """
    Mean coverage over the 20th percentile coverage, among targets with
    non-zero coverage. 0 when no target is covered.
    """
    covered = coverage[coverage > 0.0]
    if len(covered) == 0:
        return 0.0
    p20 = covered[2 * (len(covered) - 1) // 10]
    return float(covered.mean() / p20)


def coverage_stats(target_bases: Sequence[int], target_sizes: Sequence[int],
                   total_reads: int = 0, mapped_reads: int = 0,
                   total_bases: int = 0, mapped_bases: int = 0,
                   fold80: bool = True) -> Optional[KmerCoverage]:
    """
    Computes coverage summary statistics across targets.

    Coverage of a target is bases / size. Quartiles use plain rank indices on the
    sorted coverages (n >> 2, n >> 1, 3n >> 2) without interpolation.

    Returns:
        KmerCoverage, or None when there are no targets.
    """
    if len(target_bases) != len(target_sizes):
        raise ValueError(
            f"Number of target counts ({len(target_bases)}) does not match "
            f"number of targets ({len(target_sizes)})"
        )
    n = len(target_bases)
    if n == 0:
        logger.warning("No targets available for coverage estimation")
        return None

    coverage = np.sort(np.asarray(target_bases, dtype=float) / np.asarray(target_sizes, dtype=float))

    return KmerCoverage(
        total_reads=total_reads,
        mapped_reads=mapped_reads,
        total_bases=total_bases,
        mapped_bases=mapped_bases,
        mean=float(coverage.mean()),
        q1=float(coverage[n >> 2]),
        median=float(coverage[n >> 1]),
        q3=float(coverage[(3 * n) >> 2]),
        fold80=_fold80_penalty(coverage) if fold80 else None,
    )
