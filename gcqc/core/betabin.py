# gcqc/core/betabin.py
"""
Beta-Binomial model of GC-content histograms.

A histogram is a list of ``(GcHistKey, GcHistVal)`` pairs. A key ``(a, b)`` with
weight ``w`` stands for ``w`` reads with ``a`` weak (A/T) and ``b`` strong (C/G)
bases. Each bucket contributes the Beta(b + 1, a + 1) density of the GC fraction
``x``; the histogram density is the weight-normalized mixture of these densities.
"""
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np
import pandas as pd
from scipy.special import betaln, logsumexp

from .quadrature import gauss_legendre_64

if TYPE_CHECKING:
    from ..analysis.models import GcHistKey, GcHistVal

logger = logging.getLogger(__name__)

GC_HIST_BINS = 1000

# Number of histogram keys evaluated at once when discretizing densities
_KEY_CHUNK = 512

GcHist = Sequence[Tuple["GcHistKey", "GcHistVal"]]


def lbeta(a: float, b: float) -> float:
    """Natural log of the Beta function B(a, b)."""
    return float(betaln(a, b))


def _hist_arrays(cts: GcHist) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Splits a histogram into arrays (a, b, weight, log-beta constant)."""
    n = len(cts)
    a = np.empty(n)
    b = np.empty(n)
    w = np.empty(n)
    konst = np.empty(n)
    for i, (key, val) in enumerate(cts):
        a[i], b[i] = key.counts()
        w[i] = val.count
        konst[i] = val.beta_a_b
    return a, b, w, konst


def mean_gc(cts: GcHist) -> float:
    """
    Overall weighted GC fraction: sum(b * w) / sum((a + b) * w).

    The histogram must carry some observations.
    """
    a, b, w, _ = _hist_arrays(cts)
    weak = float(np.dot(a, w))
    strong = float(np.dot(b, w))
    assert weak + strong > 0.0, "GC histogram has no observations"
    return strong / (weak + strong)


def log_mixture_density(x: np.ndarray, cts: GcHist) -> np.ndarray:
    """
    Log of the mixture density at each point of ``x`` (all strictly inside (0, 1)).
    """
    x = np.asarray(x, dtype=float)
    a, b, w, konst = _hist_arrays(cts)
    total = w.sum()
    assert total > 0.0, "GC histogram has zero total weight"
    lnx = np.log(x)
    lnx1 = np.log1p(-x)
    terms = np.outer(b, lnx) + np.outer(a, lnx1) - konst[:, None]
    return logsumexp(terms, axis=0, b=w[:, None]) - np.log(total)


def mixture_density(x: np.ndarray, cts: GcHist) -> np.ndarray:
    return np.exp(log_mixture_density(x, cts))


def kl_distance(cts: GcHist, ref_dist: GcHist) -> float:
    """
    Kullback-Leibler divergence of the sample density p from the reference
    density q, integral of p(x) * ln(p(x) / q(x)) over (0, 1).
    """
    def integrand(x: np.ndarray) -> np.ndarray:
        assert np.all((x > 0.0) & (x < 1.0))
        lp = log_mixture_density(x, cts)
        lq = log_mixture_density(x, ref_dist)
        return np.exp(lp) * (lp - lq)

    return gauss_legendre_64(integrand, 0.0, 1.0)


def gc_bin_midpoints(bins: int = GC_HIST_BINS) -> np.ndarray:
    return (np.arange(bins) + 0.5) / bins


def gc_histogram(cts: GcHist, bins: int = GC_HIST_BINS) -> np.ndarray:
    """
    Discretizes the histogram density into ``bins`` equal-width bins over [0, 1).

    Every key spreads its own weight over the bins in proportion to its Beta density
    at the bin midpoints. The summed result is scaled so that the bin values average
    to 1, i.e. integrate to 1 with bin width 1 / bins.
    """
    x = gc_bin_midpoints(bins)
    lnx = np.log(x)
    lnx1 = np.log1p(-x)
    a, b, w, konst = _hist_arrays(cts)
    total = w.sum()
    assert total > 0.0, "GC histogram has zero total weight"

    hist = np.zeros(bins)
    for start in range(0, len(w), _KEY_CHUNK):
        sl = slice(start, start + _KEY_CHUNK)
        terms = np.outer(b[sl], lnx) + np.outer(a[sl], lnx1) - konst[sl, None]
        terms -= logsumexp(terms, axis=1, keepdims=True)
        hist += w[sl] @ np.exp(terms)

    return hist * bins / total


def output_gc_hist(path: Path, cts: GcHist, ref_cts: Optional[GcHist] = None) -> None:
    """
    Writes the GC density table: GC fraction, sample density and, when available,
    the reference density. One row per bin.
    """
    table = {'GC': gc_bin_midpoints(), 'Sample': gc_histogram(cts)}
    if ref_cts is not None:
        table['Reference'] = gc_histogram(ref_cts)
    logger.debug(f"Writing GC distribution to {path}")
    pd.DataFrame(table).to_csv(path, sep='\t', index=False, compression='infer')
