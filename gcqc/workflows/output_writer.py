"""Output stage: serializes (DataSet, DataResults) pairs as one TSV table."""
import logging
import math
from typing import List, Optional

from ..analysis.models import BASES, DataResults, DataSet
from ..services.channel import Receiver
from ..services.config_loader import PipelineConfig
from ..services.errors import OutputError
from ..services.file_system import open_output

logger = logging.getLogger(__name__)

NA = "NA"

IDENTITY_COLUMNS = [
    "Sample", "Barcode", "Library", "Flowcell", "Index", "Lane", "Read-end",
    "File", "Bisulfite-type", "Trim", "Min-qual",
]
GC_COLUMNS = ["gc", "ref-gc", "KL-distance"]
KMER_COLUMNS = [
    "Total-reads", "Mapped-reads", "Total-bases", "Mapped-bases", "Mean-coverage",
    "Median-coverage", "Median/Mean", "Dispersion", "Fold_80_base_penalty",
]


def header_columns(with_kmers: bool) -> List[str]:
    cols = IDENTITY_COLUMNS + GC_COLUMNS
    for base in BASES:
        cols += [f"b({base})", f"log10 p_b({base})"]
    if with_kmers:
        cols += KMER_COLUMNS
    return cols


def _fmt(x: Optional[float], spec: str) -> str:
    if x is None or math.isnan(x):
        return NA
    return format(x, spec)


def _fmt_log10_p(p: float) -> str:
    if math.isnan(p):
        return NA
    if p <= 0.0:
        return "-inf"
    return f"{math.log10(p):.4f}"


def result_columns(res: DataResults, with_kmers: bool) -> List[str]:
    cols = [
        _fmt(res.mean_gc, ".5f"),
        _fmt(res.ref_mean_gc, ".5f"),
        _fmt(res.kl_distance, ".6g"),
    ]
    if res.regression is None:
        cols += [NA] * (2 * len(BASES))
    else:
        for reg in res.regression:
            cols += [_fmt(reg.slope.estimate, ".6g"), _fmt_log10_p(reg.slope.p())]

    if with_kmers:
        cov = res.kmer_coverage
        if cov is None:
            cols += [NA] * len(KMER_COLUMNS)
        else:
            cols += [
                str(cov.total_reads),
                str(cov.mapped_reads),
                str(cov.total_bases),
                str(cov.mapped_bases),
                _fmt(cov.mean, ".6g"),
                _fmt(cov.median, ".6g"),
                _fmt(cov.median_over_mean, ".6g"),
                _fmt(cov.dispersion, ".6g"),
                _fmt(cov.fold80, ".6g"),
            ]
    return cols


def format_row(d: DataSet, res: DataResults, with_kmers: bool) -> str:
    return "\t".join(d.columns() + result_columns(res, with_kmers))


def output_thread(cfg: PipelineConfig, rx: Receiver, log: logging.LoggerAdapter) -> None:
    """
    Drains the results channel in arrival order, writing one row per dataset.

    k-mer columns are present iff a k-mer index is configured, for the header
    and every row alike.
    """
    log.debug("Output thread starting up")
    with_kmers = cfg.kmcv is not None
    n_rows = 0
    try:
        with open_output(cfg.output_file) as fh:
            if not cfg.no_header:
                fh.write("\t".join(header_columns(with_kmers)) + "\n")
            for d, res in rx:
                fh.write(format_row(d, res, with_kmers) + "\n")
                n_rows += 1
    except OSError as e:
        raise OutputError(f"Error writing output file {cfg.output_file or '<stdout>'}: {e}") from e
    finally:
        rx.close()
    log.debug(f"Output thread closing down ({n_rows} rows written)")
