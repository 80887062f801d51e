# gcqc/analysis/models.py
"""
Data models for GC / base-composition analysis.

This module contains the in-memory shape of one QC dataset, its identity, the
GC-content histogram types and the per-dataset results, separating data
structures from analysis logic.
"""
import enum
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..core.betabin import lbeta
from ..core.kmer_coverage import KmerCoverage
from ..core.regression import SimpleRegression
from ..services.errors import DataFormatError, KmerCompatibilityError, MergeError

logger = logging.getLogger(__name__)


# --- GC histogram ---

@dataclass(frozen=True)
class GcHistKey:
    """Counts of weak (a) and strong (b) bases observed in a read."""
    a: int
    b: int

    @classmethod
    def from_str(cls, s: str) -> "GcHistKey":
        """Parses an 'a:b' bucket key."""
        s1, sep, s2 = s.partition(':')
        try:
            a, b = int(s1), int(s2)
        except ValueError:
            a = b = -1
        if not sep or a < 0 or b < 0:
            raise DataFormatError(f"GC bucket key '{s}' not in correct format (expected 'a:b')")
        return cls(a, b)

    def counts(self) -> Tuple[float, float]:
        return float(self.a), float(self.b)


@dataclass(frozen=True)
class GcHistVal:
    """Observation weight of a bucket plus its log-Beta normalizing constant."""
    count: float
    beta_a_b: float

    @classmethod
    def make(cls, key: GcHistKey, count: float) -> "GcHistVal":
        a, b = key.counts()
        return cls(count=float(count), beta_a_b=lbeta(a + 1.0, b + 1.0))


GcHist = List[Tuple[GcHistKey, GcHistVal]]


def histogram_from_counts(counts: Dict[str, int]) -> GcHist:
    """Materializes a raw {"a:b": count} mapping into histogram pairs."""
    hist = []
    for k, v in counts.items():
        key = GcHistKey.from_str(k)
        hist.append((key, GcHistVal.make(key, v)))
    return hist


# --- Base counts ---

BASES = ('A', 'C', 'G', 'T')


def parse_count(value, what: str) -> int:
    """
    A non-negative integer taken from decoded JSON. Floats, bools, strings and
    negative numbers are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise DataFormatError(f"Invalid {what}: expected a non-negative integer, found {value!r}")
    if value < 0:
        raise DataFormatError(f"Invalid {what}: negative value {value}")
    return value


@dataclass
class Counts:
    """Base tally in slot order A, C, G, T, N (N includes 'Other')."""
    cts: List[int] = field(default_factory=lambda: [0] * 5)

    @classmethod
    def from_json(cls, d: dict) -> "Counts":
        if not isinstance(d, dict):
            raise DataFormatError("Base counts must be an object")
        try:
            cts = [parse_count(d[b], f"count for base {b}") for b in BASES]
        except KeyError as e:
            raise DataFormatError(f"Missing base count {e}") from None
        other = sum(parse_count(d.get(k) or 0, f"count for {k}") for k in ('N', 'Other'))
        return cls(cts + [other])

    def add(self, other: "Counts"):
        for i in range(5):
            self.cts[i] += other.cts[i]

    def bases(self) -> List[int]:
        """The four canonical base counts (A, C, G, T)."""
        return self.cts[:4]


# --- Enumerations ---

class BisulfiteType(enum.Enum):
    NONE = "None"
    FORWARD = "Forward"
    REVERSE = "Reverse"
    NON_STRANDED = "Non-stranded"

    def __str__(self):
        return self.value

    @classmethod
    def from_json(cls, value) -> "BisulfiteType":
        """Accepts the variant name or the legacy ordinal (0..3)."""
        if isinstance(value, bool):
            raise DataFormatError(f"Invalid bisulfite type {value!r}")
        if isinstance(value, int):
            try:
                return _BISULFITE_ORDINALS[value]
            except KeyError:
                raise DataFormatError(f"Invalid bisulfite ordinal {value}") from None
        try:
            return _BISULFITE_NAMES[value]
        except (KeyError, TypeError):
            raise DataFormatError(f"Invalid bisulfite type {value!r}") from None


# JSON names and legacy ordinals of BisulfiteType
_BISULFITE_NAMES = {
    "None": BisulfiteType.NONE,
    "Forward": BisulfiteType.FORWARD,
    "Reverse": BisulfiteType.REVERSE,
    "NonStranded": BisulfiteType.NON_STRANDED,
}
_BISULFITE_ORDINALS = {
    0: BisulfiteType.NONE,
    1: BisulfiteType.FORWARD,
    2: BisulfiteType.REVERSE,
    3: BisulfiteType.NON_STRANDED,
}


class MergeKey(enum.Enum):
    """Identity dimension used to group datasets. DEFAULT means 'infer'."""
    DEFAULT = "default"
    SAMPLE = "sample"
    BARCODE = "barcode"
    LIBRARY = "library"
    FLI = "fli"

    @classmethod
    def from_name(cls, name: str) -> "MergeKey":
        try:
            return cls(name.lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid merge key '{name}' (choose from {choices})") from None


# --- Identity ---

@dataclass
class Fli:
    """Flowcell / lane / index identity of a read set. None means unknown."""
    sample: Optional[str] = None
    barcode: Optional[str] = None
    library: Optional[str] = None
    flowcell: Optional[str] = None
    index: Optional[str] = None
    lane: Optional[int] = None
    read_end: Optional[int] = None

    @classmethod
    def from_json(cls, d: dict) -> "Fli":
        if not isinstance(d, dict):
            raise DataFormatError("'fli' must be an object")
        kwargs = {}
        for k in ('sample', 'barcode', 'library', 'flowcell', 'index'):
            v = d.get(k)
            if v is not None and not isinstance(v, str):
                raise DataFormatError(f"Invalid identity field '{k}': expected a string, found {v!r}")
            kwargs[k] = v
        for k in ('lane', 'read_end'):
            v = d.get(k)
            kwargs[k] = None if v is None else parse_count(v, f"identity field '{k}'")
        return cls(**kwargs)

    def fli(self) -> Optional[str]:
        if self.flowcell is not None and self.lane is not None and self.index is not None:
            return f"{self.flowcell}_{self.lane}_{self.index}"
        return None

    def find_merge_key(self) -> Optional[MergeKey]:
        """First populated identity, in order sample > barcode > library > fli."""
        if self.sample is not None:
            return MergeKey.SAMPLE
        elif self.barcode is not None:
            return MergeKey.BARCODE
        elif self.library is not None:
            return MergeKey.LIBRARY
        elif self.fli() is not None:
            return MergeKey.FLI
        return None

    def get_key(self, key: MergeKey) -> Optional[str]:
        if key == MergeKey.SAMPLE:
            return self.sample
        elif key == MergeKey.BARCODE:
            return self.barcode
        elif key == MergeKey.LIBRARY:
            return self.library
        elif key == MergeKey.FLI:
            return self.fli()
        return None

    def find_common(self, other: "Fli"):
        """Clears every field that differs from ``other``."""
        for f in fields(self):
            if getattr(self, f.name) != getattr(other, f.name):
                setattr(self, f.name, None)

    def columns(self) -> List[str]:
        return ["NA" if getattr(self, f.name) is None else str(getattr(self, f.name))
                for f in fields(self)]


# --- K-mer counts ---

@dataclass(frozen=True)
class KmcvHeaderCore:
    """Identity of a k-mer index; counts are only comparable under equal cores."""
    version: Tuple[int, int]
    kmer_length: int
    max_hits: int
    n_contigs: int
    n_targets: int
    rnd_id: int

    @classmethod
    def from_json(cls, d: dict) -> "KmcvHeaderCore":
        try:
            version = tuple(int(v) for v in d['version'])
            if len(version) != 2:
                raise ValueError("version must have two elements")
            return cls(
                version=version,
                kmer_length=int(d['kmer_length']),
                max_hits=int(d['max_hits']),
                n_contigs=int(d['n_contigs']),
                n_targets=int(d['n_targets']),
                rnd_id=int(d['rnd_id']),
            )
        except KeyError as e:
            raise DataFormatError(f"Missing field {e} in kmer header") from None
        except (TypeError, ValueError) as e:
            raise DataFormatError(f"Invalid kmer header: {e}") from e


@dataclass
class KmerCounts:
    kmcv: KmcvHeaderCore
    total_reads: int
    mapped_reads: int
    total_bases: int
    mapped_bases: int
    counts: List[Tuple[int, int]]  # per target: (reads, bases)

    @classmethod
    def from_json(cls, d: dict) -> "KmerCounts":
        try:
            return cls(
                kmcv=KmcvHeaderCore.from_json(d['kmcv']),
                total_reads=parse_count(d['total_reads'], "total_reads"),
                mapped_reads=parse_count(d['mapped_reads'], "mapped_reads"),
                total_bases=parse_count(d['total_bases'], "total_bases"),
                mapped_bases=parse_count(d['mapped_bases'], "mapped_bases"),
                counts=[(parse_count(r, "target reads"), parse_count(b, "target bases"))
                        for r, b in d['counts']],
            )
        except KeyError as e:
            raise DataFormatError(f"Missing field {e} in kmer counts") from None
        except (TypeError, ValueError) as e:
            raise DataFormatError(f"Invalid kmer counts: {e}") from e

    def add(self, other: "KmerCounts"):
        if self.kmcv != other.kmcv:
            raise KmerCompatibilityError("Cannot merge datasets as kmer files are not compatible")
        if len(self.counts) != len(other.counts):
            raise KmerCompatibilityError(
                f"Cannot merge kmer counts with different numbers of targets "
                f"({len(self.counts)} vs {len(other.counts)})"
            )
        self.total_reads += other.total_reads
        self.mapped_reads += other.mapped_reads
        self.total_bases += other.total_bases
        self.mapped_bases += other.mapped_bases
        self.counts = [(r1 + r2, b1 + b2) for (r1, b1), (r2, b2) in zip(self.counts, other.counts)]


# --- Dataset ---

@dataclass
class DataSet:
    """
    One sequencing-QC unit, as loaded from a JSON file or merged from several.

    Invariant: max_read_length - trim == len(per_pos_cts); per_pos_cts[i] holds
    cycle i + 1 + trim.

    ``is_group`` is set once the dataset heads a merge group; ``path`` is then
    the group key rather than a file.
    """
    path: Path
    trim: int
    min_qual: int
    max_read_length: int
    bisulfite: BisulfiteType
    fli: Fli
    cts: Counts
    per_pos_cts: List[Counts]
    gc_hash: Dict[str, int]
    gc_counts: Optional[GcHist] = None
    kmer_counts: Optional[KmerCounts] = None
    is_group: bool = False

    def mk_gc_counts(self):
        """Materializes the GC histogram from the raw bucket mapping."""
        self.gc_counts = histogram_from_counts(self.gc_hash)

    def check_constants(self, other: "DataSet") -> bool:
        return (self.trim == other.trim
                and self.min_qual == other.min_qual
                and self.bisulfite == other.bisulfite
                and (self.kmer_counts is None) == (other.kmer_counts is None))

    def _add_counts(self, other: "DataSet"):
        self.cts.add(other.cts)
        n = self.max_read_length - self.trim
        while len(self.per_pos_cts) < n:
            self.per_pos_cts.append(Counts())
        for c1, c2 in zip(self.per_pos_cts, other.per_pos_cts):
            c1.add(c2)

    def _add_gc_hash(self, other: "DataSet"):
        for k, v in other.gc_hash.items():
            self.gc_hash[k] = self.gc_hash.get(k, 0) + v

    def merge(self, other: "DataSet"):
        """
        Accumulates ``other`` into this dataset.

        Raises:
            MergeError: if the datasets were generated with different parameters.
            KmerCompatibilityError: if their k-mer counts are not compatible.
        """
        if not self.check_constants(other):
            raise MergeError(
                f"Cannot merge datasets generated with different parameters "
                f"({self.path} and {other.path})"
            )
        if self.kmer_counts is not None:
            self.kmer_counts.add(other.kmer_counts)
        self.max_read_length = max(self.max_read_length, other.max_read_length)
        self.fli.find_common(other.fli)
        self._add_counts(other)
        self._add_gc_hash(other)
        # Raw mapping changed; any materialized histogram is stale
        self.gc_counts = None

    def columns(self) -> List[str]:
        return self.fli.columns() + [str(self.path), str(self.bisulfite), str(self.trim), str(self.min_qual)]


# --- Results ---

@dataclass(frozen=True)
class DataResults:
    mean_gc: float
    ref_mean_gc: Optional[float] = None
    kl_distance: Optional[float] = None
    regression: Optional[List[SimpleRegression]] = None  # bases A, C, G, T
    kmer_coverage: Optional[KmerCoverage] = None
