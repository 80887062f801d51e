import json
import logging
from pathlib import Path
from typing import Dict, Union

from ..analysis.models import BisulfiteType, Counts, DataSet, Fli, KmerCounts, parse_count
from ..services.errors import DataFormatError
from ..services.file_system import open_input, strip_compression_suffix
from ..services.logging_config import TRACE

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('trim', 'min_qual', 'max_read_length', 'bisulfite', 'fli', 'cts', 'per_pos_cts', 'gc_hash')


def _per_pos_counts(raw: Dict[str, dict], trim: int, max_read_length: int):
    """Per-cycle counts, checked to be contiguous from trim + 1 to max_read_length."""
    try:
        cycles = sorted((int(k), v) for k, v in raw.items())
    except (TypeError, ValueError, AttributeError) as e:
        raise DataFormatError(f"Invalid cycle number in per_pos_cts: {e}") from e

    if max_read_length < trim or max_read_length - trim != len(cycles):
        raise DataFormatError(
            f"per_pos_cts has {len(cycles)} cycles, expected {max_read_length - trim} "
            f"(max_read_length={max_read_length}, trim={trim})"
        )
    per_pos_cts = []
    for ix, (cycle, v) in enumerate(cycles):
        if cycle != ix + 1 + trim:
            raise DataFormatError(f"per_pos_cts cycles not contiguous: expected {ix + 1 + trim}, found {cycle}")
        per_pos_cts.append(Counts.from_json(v))
    return per_pos_cts


def dataset_from_json(js: dict, path: Union[str, Path]) -> DataSet:
    """Builds a DataSet from the decoded JSON object of one input file."""
    if not isinstance(js, dict):
        raise DataFormatError("Top level JSON value is not an object")
    missing = [k for k in REQUIRED_FIELDS if k not in js]
    if missing:
        raise DataFormatError(f"Missing field(s): {', '.join(missing)}")

    trim = parse_count(js['trim'], "trim")
    min_qual = parse_count(js['min_qual'], "min_qual")
    max_read_length = parse_count(js['max_read_length'], "max_read_length")
    gc_hash = js['gc_hash']
    if not isinstance(gc_hash, dict):
        raise DataFormatError("gc_hash must be an object")
    gc_hash = {str(k): parse_count(v, f"count for GC bucket '{k}'") for k, v in gc_hash.items()}

    kmer_counts = js.get('kmer_counts')

    return DataSet(
        path=strip_compression_suffix(path),
        trim=trim,
        min_qual=min_qual,
        max_read_length=max_read_length,
        bisulfite=BisulfiteType.from_json(js['bisulfite']),
        fli=Fli.from_json(js['fli']),
        cts=Counts.from_json(js['cts']),
        per_pos_cts=_per_pos_counts(js['per_pos_cts'], trim, max_read_length),
        gc_hash=gc_hash,
        kmer_counts=KmerCounts.from_json(kmer_counts) if kmer_counts is not None else None,
    )


def read_json(path: Union[str, Path]) -> DataSet:
    """
    Reads one (optionally compressed) per-file JSON summary.

    Raises:
        DataFormatError: on I/O failure, invalid JSON or invalid content, with
            the file path in the message.
    """
    path = Path(path)
    logger.log(TRACE, f"Reading from {path}")
    try:
        with open_input(path) as fh:
            js = json.load(fh)
    except OSError as e:
        raise DataFormatError(f"Could not open {path} for input: {e}") from e
    except ValueError as e:
        raise DataFormatError(f"Error parsing JSON file {path}: {e}") from e

    try:
        return dataset_from_json(js, path)
    except DataFormatError as e:
        raise DataFormatError(f"Error reading from {path}: {e}") from e
