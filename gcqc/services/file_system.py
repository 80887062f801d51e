import bz2
import contextlib
import gzip
import logging
import lzma
import sys
from pathlib import Path
from typing import IO, Iterator, Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

COMPRESSION_SUFFIXES = {'.gz': gzip, '.bz2': bz2, '.xz': lzma}


def create_directory(dir_path: PathLike):
    """
    Creates a directory, including any parent directories, if it does not exist.
    """
    Path(dir_path).mkdir(parents=True, exist_ok=True)
    logger.debug(f"Path checked/created: {dir_path}")


def _opener(path: Path):
    return COMPRESSION_SUFFIXES.get(path.suffix.lower())


def open_input(path: PathLike, binary: bool = False) -> IO:
    """Opens a file for reading, decompressing according to its suffix."""
    path = Path(path)
    mode = 'rb' if binary else 'rt'
    module = _opener(path)
    if module is None:
        return open(path, mode) if binary else open(path, mode, encoding='utf-8')
    return module.open(path, mode) if binary else module.open(path, mode, encoding='utf-8')


@contextlib.contextmanager
def open_output(path: Optional[PathLike]) -> Iterator[IO[str]]:
    """
    Opens a text file for writing, compressing according to its suffix.

    With ``path=None`` the handle is stdout, which is flushed but not closed.
    """
    if path is None:
        try:
            yield sys.stdout
        finally:
            sys.stdout.flush()
        return

    path = Path(path)
    module = _opener(path)
    if module is None:
        fh = open(path, 'w', encoding='utf-8', newline='\n')
    else:
        fh = module.open(path, 'wt', encoding='utf-8', newline='\n')
    try:
        yield fh
    finally:
        fh.close()


def strip_compression_suffix(path: PathLike) -> Path:
    """'x/sample.json.gz' -> 'x/sample.json'"""
    path = Path(path)
    if path.suffix.lower() in COMPRESSION_SUFFIXES:
        return path.with_suffix('')
    return path


def sidecar_path(path: PathLike, extension: str, out_dir: Optional[PathLike] = None,
                 keep_suffix: bool = False) -> Path:
    """
    Derives a sidecar file name by replacing the last extension of ``path``.

    'run1/sample.json' + 'gc_hist.tsv' -> 'run1/sample.gc_hist.tsv'.
    With ``keep_suffix`` (merge keys, which are not file names) the whole name
    gains the extension: 'NA1.rep1' -> 'NA1.rep1.gc_hist.tsv'. If ``out_dir`` is
    given, only the file name is kept and placed in that directory.
    """
    path = Path(path)
    stem = path.name if keep_suffix else path.stem
    name = f"{stem}.{extension}" if path.name else extension
    if out_dir is not None:
        return Path(out_dir) / name
    return path.with_name(name) if path.name else Path(name)
