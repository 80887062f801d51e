# gcqc/analysis/analyzer.py
"""
Per-dataset analysis: mean GC, comparison with the reference GC distribution,
per-cycle base-composition drift and k-mer coverage.
"""
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..core import betabin
from ..core.kmer_coverage import KmerCoverage, coverage_stats
from ..core.regression import SimpleRegression, simple_regression
from ..services.config_loader import PipelineConfig
from ..services.errors import KmerCompatibilityError, OutputError, RegressionError
from ..services.file_system import sidecar_path
from ..services.logging_config import TRACE
from .models import BASES, BisulfiteType, DataResults, DataSet

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]

GC_HIST_EXT = "gc_hist.tsv"
BASE_DIST_EXT = "base_dist.tsv"

# Column order of the per-cycle sidecar; indices into Counts slots (A, C, G, T)
BASE_DIST_COLUMNS = ('A', 'C', 'T', 'G')


def _base_fractions(d: DataSet) -> np.ndarray:
    """(cycles x 4) array of per-cycle base fractions in A, C, G, T order."""
    cts = np.array([c.bases() for c in d.per_pos_cts], dtype=float).reshape(-1, 4)
    with np.errstate(divide='ignore', invalid='ignore'):
        return cts / cts.sum(axis=1, keepdims=True)


def base_content_regressions(d: DataSet, log: Log = logger) -> Optional[List[SimpleRegression]]:
    """
    Regresses each base fraction on normalized cycle over the last two thirds
    of the read.

    Returns:
        Four regressions (A, C, G, T), or None if any of them cannot be fitted.
    """
    n = len(d.per_pos_cts)
    x0 = n // 3
    if n - x0 < 3:
        log.debug(f"Too few cycles ({n}) for base composition regression")
        return None

    fractions = _base_fractions(d)[x0:]
    x = np.arange(n - x0) / (n - x0)

    res = []
    for ix, base in enumerate(BASES):
        try:
            res.append(simple_regression(list(zip(x, fractions[:, ix]))))
        except RegressionError as e:
            log.warning(f"Could not perform regression for base {base} in {d.path}: {e}")
            return None
    return res


def output_per_cycle_bases(d: DataSet, path: Path, log: Log = logger) -> None:
    """Writes the per-cycle base fraction table (columns A, C, T, G)."""
    fractions = _base_fractions(d)
    table = {'Cycle': np.arange(len(d.per_pos_cts)) + 1 + d.trim}
    for base in BASE_DIST_COLUMNS:
        table[base] = fractions[:, BASES.index(base)]
    log.debug(f"Writing per cycle base distribution to {path}")
    pd.DataFrame(table).to_csv(path, sep='\t', index=False, float_format='%.5f', compression='infer')


def compare_to_reference(cfg: PipelineConfig, d: DataSet, path: Path, log: Log = logger) -> Tuple[Optional[float], Optional[float]]:
    """
    Writes the GC histogram sidecar and, when a matching reference exists,
    computes the KL distance to it.

    Returns:
        (kl_distance, ref_mean_gc), both None without a usable reference.
    """
    ref_counts = None
    if cfg.ref_dist is not None:
        rl, counts = cfg.ref_dist.get_closest_reference(d.max_read_length)
        log.log(TRACE, f"Using reference length {rl} for actual length {d.max_read_length}")
        ref_counts = counts.regular if d.bisulfite == BisulfiteType.NONE else counts.bisulfite
        if ref_counts is None:
            log.debug(f"No bisulfite reference for read length {rl}")

    kl = ref_gc = None
    if ref_counts is not None:
        kl = betabin.kl_distance(d.gc_counts, ref_counts)
        ref_gc = betabin.mean_gc(ref_counts)

    betabin.output_gc_hist(path, d.gc_counts, ref_counts)
    return kl, ref_gc


def kmer_coverage(cfg: PipelineConfig, d: DataSet, log: Log = logger) -> Optional[KmerCoverage]:
    """
    Coverage summary of the dataset's k-mer counts against the loaded index.

    Raises:
        KmerCompatibilityError: if the counts were made with a different index.
    """
    kc = d.kmer_counts
    if kc is None:
        return None
    if cfg.kmcv is None:
        log.warning("Cannot process kmer coverage without an input kmer file (use -k option)")
        return None
    if kc.kmcv != cfg.kmcv.core:
        raise KmerCompatibilityError(f"Kmer counts for {d.path} were not generated with the supplied kmer file")
    sizes = cfg.kmcv.target_sizes()
    if len(kc.counts) != len(sizes):
        raise KmerCompatibilityError(
            f"Kmer counts for {d.path} have {len(kc.counts)} targets, kmer file has {len(sizes)}"
        )
    return coverage_stats(
        [bases for _, bases in kc.counts], sizes,
        total_reads=kc.total_reads, mapped_reads=kc.mapped_reads,
        total_bases=kc.total_bases, mapped_bases=kc.mapped_bases,
    )


def analyze_dataset(cfg: PipelineConfig, d: DataSet, log: Log = logger) -> DataResults:
    """
    Runs every analysis for one dataset and writes its sidecar files.

    The dataset's GC histogram must already be materialized (``mk_gc_counts``).

    Raises:
        OutputError: if a sidecar file cannot be written.
        KmerCompatibilityError: see ``kmer_coverage``.
    """
    assert d.gc_counts is not None, "GC histogram not materialized"

    gc_path = sidecar_path(d.path, GC_HIST_EXT, cfg.sidecar_dir, keep_suffix=d.is_group)
    base_path = sidecar_path(d.path, BASE_DIST_EXT, cfg.sidecar_dir, keep_suffix=d.is_group)

    try:
        output_per_cycle_bases(d, base_path, log)
    except OSError as e:
        raise OutputError(f"Error writing per cycle base distribution {base_path}: {e}") from e

    mean_gc = betabin.mean_gc(d.gc_counts)
    try:
        kl, ref_gc = compare_to_reference(cfg, d, gc_path, log)
    except OSError as e:
        raise OutputError(f"Error writing gc distribution file {gc_path}: {e}") from e

    res = DataResults(
        mean_gc=mean_gc,
        ref_mean_gc=ref_gc,
        kl_distance=kl,
        regression=base_content_regressions(d, log),
        kmer_coverage=kmer_coverage(cfg, d, log),
    )
    log.debug(f"Analysis of {d.path} complete: gc={mean_gc:.5f}")
    return res
