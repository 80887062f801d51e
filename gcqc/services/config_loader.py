# gcqc/services/config_loader.py
import os
import logging
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, TYPE_CHECKING, Tuple

from .errors import ConfigError

if TYPE_CHECKING:
    from ..analysis.models import MergeKey
    from ..clients.kmcv import Kmcv
    from ..clients.reference import RefDist

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Run configuration, shared read-only by every worker.

    ``merge_key`` of None selects the standard pipeline; any MergeKey (including
    DEFAULT) selects the merge pipeline.
    """
    input_files: Tuple[Path, ...]
    output_file: Optional[Path] = None
    threads: int = 1
    merge_key: Optional["MergeKey"] = None
    ref_dist: Optional["RefDist"] = None
    kmcv: Optional["Kmcv"] = None
    no_header: bool = False
    sidecar_dir: Optional[Path] = None


def available_cpus() -> int:
    """CPUs this process may run on (its affinity mask where the platform has one)."""
    getaffinity = getattr(os, "sched_getaffinity", None)
    if getaffinity is not None:
        return len(getaffinity(0)) or 1
    return os.cpu_count() or 1


def calculate_thread_count(n_inputs: int) -> int:
    """min(available CPUs, number of inputs), at least 1."""
    return max(1, min(available_cpus(), n_inputs))


def build_config(input_files: Sequence[str],
                 output_file: Optional[str] = None,
                 threads: Optional[int] = None,
                 merge_key: Optional["MergeKey"] = None,
                 ref_dist_file: Optional[str] = None,
                 kmcv_file: Optional[str] = None,
                 no_header: bool = False,
                 sidecar_dir: Optional[str] = None) -> PipelineConfig:
    """
    Validates options and loads the reference distribution and k-mer index.

    Raises:
        ConfigError: no input files, an invalid thread count, or an unreadable
            reference / k-mer file.
    """
    from ..clients.kmcv import Kmcv
    from ..clients.reference import RefDist
    from .file_system import create_directory

    if not input_files:
        raise ConfigError("No input files specified")

    if threads is None:
        threads = calculate_thread_count(len(input_files))
    elif threads < 1:
        raise ConfigError(f"Thread count must be at least 1 (got {threads})")

    ref_dist = RefDist.from_json_file(ref_dist_file) if ref_dist_file else None
    kmcv = Kmcv.from_file(kmcv_file) if kmcv_file else None

    if sidecar_dir:
        try:
            create_directory(sidecar_dir)
        except OSError as e:
            raise ConfigError(f"Could not create sidecar directory {sidecar_dir}: {e}") from e

    cfg = PipelineConfig(
        input_files=tuple(Path(p) for p in input_files),
        output_file=Path(output_file) if output_file else None,
        threads=threads,
        merge_key=merge_key,
        ref_dist=ref_dist,
        kmcv=kmcv,
        no_header=no_header,
        sidecar_dir=Path(sidecar_dir) if sidecar_dir else None,
    )
    logger.debug(f"Configuration built: {len(cfg.input_files)} input file(s), {cfg.threads} thread(s)")
    return cfg


def load_config(filename: str, section: str = 'gcqc') -> Dict[str, Any]:
    """
    Loads a specific section from an INI file of option defaults.

    Args:
        filename (str): Path of the INI file.
        section (str): The [section] in the INI file to load.

    Returns:
        Dict[str, Any]: A dictionary of the settings. ``threads`` is converted
        to int; ``merge``, ``no_header`` and ``quiet`` to bool.

    Raises:
        FileNotFoundError: If the file cannot be found.
        ConfigError: If the section is missing or a value cannot be converted.
    """
    if not os.path.exists(filename):
        logger.error(f"Configuration file not found at: {filename}")
        raise FileNotFoundError(f"Configuration file not found at: {filename}")

    parser = ConfigParser()
    parser.read(filename)

    if not parser.has_section(section):
        logger.error(f"Section '{section}' not found in the {filename} file")
        raise ConfigError(f"Section '{section}' not found in the {filename} file")

    int_keys = {'threads'}
    bool_keys = {'merge', 'no_header', 'quiet'}

    config: Dict[str, Any] = {}
    for key, value in parser.items(section):
        if key in int_keys and value:
            try:
                config[key] = int(value)
            except ValueError:
                raise ConfigError(f"Invalid integer value for '{key}': {value}") from None
        elif key in bool_keys:
            try:
                config[key] = parser.getboolean(section, key)
            except ValueError:
                raise ConfigError(f"Invalid boolean value for '{key}': {value}") from None
        else:
            config[key] = value

    logger.debug(f"Loaded [{section}] from {filename}: {sorted(config)}")
    return config
