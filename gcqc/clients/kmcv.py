# gcqc/clients/kmcv.py
"""
Reader for the KMCV binary k-mer index (version 2).

Layout (all integers little-endian):
    header   52 bytes: magic 'KMCV', version (2 x u8), kmer_length (u8),
             max_hits (u8), rnd_id (u32), n_contigs (u32), n_targets (u32),
             remainder reserved
    contigs  n_contigs x (name length u16 > 0, UTF-8 name)
    targets  n_targets x (contig u32, start u32, end u32)
"""
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from ..analysis.models import KmcvHeaderCore
from ..services.errors import ConfigError, KmcvFormatError
from ..services.file_system import open_input
from ..services.logging_config import TRACE

logger = logging.getLogger(__name__)

MAGIC = b'KMCV'
HEADER_SIZE = 52
KMER_TYPE_BITS = 32

_HEADER_FIELDS = struct.Struct('<4s2BBBIII')
_U16 = struct.Struct('<H')
_TARGET = struct.Struct('<III')


def _read_exact(fh: BinaryIO, n: int, what: str) -> bytes:
    buf = fh.read(n)
    if len(buf) != n:
        raise KmcvFormatError(f"Unexpected end of file reading {what} from kmer file")
    return buf


@dataclass
class KmcvHeader:
    core: KmcvHeaderCore

    @classmethod
    def read(cls, fh: BinaryIO) -> "KmcvHeader":
        buf = _read_exact(fh, HEADER_SIZE, "header")
        magic, major, minor, kmer_length, max_hits, rnd_id, n_contigs, n_targets = \
            _HEADER_FIELDS.unpack_from(buf)

        if magic != MAGIC:
            raise KmcvFormatError("Incorrect magic number from header block of kmer file")
        if major != 2:
            raise KmcvFormatError(f"Incorrect version {major}.{minor} for kmer file (expected V2)")
        if kmer_length * 2 > KMER_TYPE_BITS:
            raise KmcvFormatError(f"Kmer length {kmer_length} too large")

        return cls(KmcvHeaderCore(
            version=(major, minor),
            kmer_length=kmer_length,
            max_hits=max_hits,
            n_contigs=n_contigs,
            n_targets=n_targets,
            rnd_id=rnd_id,
        ))


@dataclass
class Target:
    contig: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end + 1 - self.start


@dataclass
class KContig:
    name: str
    targets: List[int] = field(default_factory=list)


class Kmcv:
    """In-memory k-mer index: header, contig names and target intervals."""

    def __init__(self, header: KmcvHeader, contigs: List[KContig], targets: List[Target]):
        self.header = header
        self.contigs = contigs
        self.targets = targets

    @property
    def core(self) -> KmcvHeaderCore:
        return self.header.core

    @staticmethod
    def _read_contig(fh: BinaryIO) -> KContig:
        (length,) = _U16.unpack(_read_exact(fh, _U16.size, "contig name length"))
        if length == 0:
            raise KmcvFormatError("Contig name length is zero")
        raw = _read_exact(fh, length, "contig name")
        try:
            name = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise KmcvFormatError(f"Contig name not utf8: {e}") from e
        logger.log(TRACE, f"Read contig {name}")
        return KContig(name)

    @staticmethod
    def _read_target(fh: BinaryIO, n_contigs: int) -> Target:
        contig, start, end = _TARGET.unpack(_read_exact(fh, _TARGET.size, "target block"))
        if contig >= n_contigs:
            raise KmcvFormatError(f"Contig id {contig} from target definition not in range")
        if end < start:
            raise KmcvFormatError(f"End coordinate of target ({end}) less than start ({start})")
        return Target(contig, start, end)

    @classmethod
    def read(cls, fh: BinaryIO) -> "Kmcv":
        logger.debug("Reading header from kmer file")
        header = KmcvHeader.read(fh)
        n_contigs = header.core.n_contigs

        logger.debug("Reading contig blocks from kmer file")
        contigs = [cls._read_contig(fh) for _ in range(n_contigs)]

        logger.debug("Reading target blocks from kmer file")
        targets = []
        for ix in range(header.core.n_targets):
            target = cls._read_target(fh, n_contigs)
            contigs[target.contig].targets.append(ix)
            targets.append(target)

        if logger.isEnabledFor(TRACE):
            for ctg in contigs:
                logger.log(TRACE, f"Contig {ctg.name} number of targets: {len(ctg.targets)}")

        return cls(header, contigs, targets)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Kmcv":
        """
        Loads an index from disk.

        Raises:
            ConfigError: if the file cannot be opened or is not a valid index.
        """
        path = Path(path)
        try:
            with open_input(path, binary=True) as fh:
                kmcv = cls.read(fh)
        except OSError as e:
            raise ConfigError(f"Could not open kmer file {path}: {e}") from e
        except KmcvFormatError as e:
            raise ConfigError(f"Error reading kmer file {path}: {e}") from e
        logger.info(f"Read kmer file {path}: {len(kmcv.contigs)} contigs, {len(kmcv.targets)} targets")
        return kmcv

    def get_target_size(self, ix: int) -> Optional[int]:
        if 0 <= ix < len(self.targets):
            return self.targets[ix].size
        return None

    def target_sizes(self) -> List[int]:
        return [t.size for t in self.targets]
