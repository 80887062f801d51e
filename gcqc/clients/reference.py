# gcqc/clients/reference.py
"""
Reference GC distributions, indexed by read length.

File format (JSON, optionally compressed):
    {"read_lengths": [50, 100, ...],
     "read_length_specific_counts": {
         "50": {"counts": {"a:b": n, ...}, "bisulfite_counts": {"a:b": n, ...}},
         ...}}
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..analysis.models import GcHist, histogram_from_counts
from ..services.errors import ConfigError, DataFormatError
from ..services.file_system import open_input

logger = logging.getLogger(__name__)


@dataclass
class ReferenceCounts:
    regular: GcHist
    bisulfite: Optional[GcHist] = None


class RefDist:
    """Reference histograms for a set of read lengths."""

    def __init__(self, read_lengths: List[int], read_length_specific_counts: Dict[int, ReferenceCounts]):
        if not read_lengths:
            raise ConfigError("Reference distribution has no read lengths")
        missing = [rl for rl in read_lengths if rl not in read_length_specific_counts]
        if missing:
            raise ConfigError(f"No reference counts for read length(s) {missing}")
        self.read_lengths = read_lengths
        self.read_length_specific_counts = read_length_specific_counts

    @classmethod
    def from_json(cls, js: dict) -> "RefDist":
        try:
            read_lengths = [int(x) for x in js['read_lengths']]
            counts = {}
            for k, v in js['read_length_specific_counts'].items():
                bisulfite = v.get('bisulfite_counts')
                counts[int(k)] = ReferenceCounts(
                    regular=histogram_from_counts(v['counts']),
                    bisulfite=histogram_from_counts(bisulfite) if bisulfite is not None else None,
                )
        except KeyError as e:
            raise ConfigError(f"Could not find {e} field") from None
        except (TypeError, ValueError, AttributeError, DataFormatError) as e:
            raise ConfigError(f"Invalid reference distribution: {e}") from e
        return cls(read_lengths, counts)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "RefDist":
        path = Path(path)
        try:
            with open_input(path) as fh:
                js = json.load(fh)
        except OSError as e:
            raise ConfigError(f"Could not open {path} for input: {e}") from e
        except ValueError as e:
            raise ConfigError(f"Error parsing JSON file {path}: {e}") from e

        ref = cls.from_json(js)
        logger.info(f"Reference distributions read from {path}")
        return ref

    def get_closest_reference(self, read_length: int) -> Tuple[int, ReferenceCounts]:
        """
        Reference for the read length nearest to ``read_length``. On equal distance
        the earlier entry of ``read_lengths`` wins.
        """
        closest = min(range(len(self.read_lengths)),
                      key=lambda i: abs(read_length - self.read_lengths[i]))
        rl = self.read_lengths[closest]
        return rl, self.read_length_specific_counts[rl]
