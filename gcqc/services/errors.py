# gcqc/services/errors.py
"""
Exception hierarchy for gcqc.

Anything derived from GcQcError is an expected, reportable failure: a worker that
raises one is logged and the run is marked as failed. Any other exception escaping
a worker is treated as a fault in the program itself.
"""


class GcQcError(Exception):
    """Base class for all reportable gcqc errors."""


class ConfigError(GcQcError):
    """Invalid run configuration (bad reference/k-mer file, no inputs, bad INI)."""


class DataFormatError(GcQcError):
    """Malformed or inconsistent per-file input data."""


class KmcvFormatError(GcQcError):
    """Violation of the KMCV binary k-mer index format."""


class MergeError(GcQcError):
    """Datasets cannot be grouped or merged."""


class KmerCompatibilityError(MergeError):
    """K-mer counts were generated against different k-mer indices."""


class RegressionError(GcQcError):
    """Regression cannot produce meaningful estimates."""


class OutputError(GcQcError):
    """Failure writing the main table or a sidecar file."""


class ChannelClosed(GcQcError):
    """The other side of a channel has gone away."""


class WorkerPanic(Exception):
    """A worker thread died from an unexpected (non-GcQcError) exception."""
