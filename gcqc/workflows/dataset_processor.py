"""Analysis workers: load (optionally) and analyze one dataset at a time."""
import logging
from pathlib import Path
from typing import Tuple

from ..analysis.analyzer import analyze_dataset
from ..analysis.models import DataResults, DataSet
from ..clients.dataset_json import read_json
from ..services.channel import Receiver, Sender
from ..services.config_loader import PipelineConfig
from ..services.errors import ChannelClosed
from ..services.logging_config import TRACE

logger = logging.getLogger(__name__)

Result = Tuple[DataSet, DataResults]


def process_file(cfg: PipelineConfig, path: Path, log: logging.LoggerAdapter) -> Result:
    """Reads one input file and analyzes it."""
    d = read_json(path)
    d.mk_gc_counts()
    return d, analyze_dataset(cfg, d, log)


def _send_result(sd: Sender, res: Result):
    try:
        sd.send(res)
    except ChannelClosed as e:
        raise ChannelClosed(f"Error sending results to output thread: {e}") from e


def process_thread(cfg: PipelineConfig, ix: int, rx: Receiver, sd: Sender,
                   log: logging.LoggerAdapter) -> None:
    """
    Standard pipeline worker: receives input paths, sends (DataSet, DataResults).

    Stops at the first error, which is raised to the orchestrator. Both channel
    handles are closed on exit.
    """
    log.debug(f"Process thread {ix} starting up")
    try:
        for path in rx:
            log.log(TRACE, f"Process thread {ix} received file {path} for processing")
            res = process_file(cfg, path, log)
            log.log(TRACE, f"Process thread {ix} finished processing file {path}")
            _send_result(sd, res)
    finally:
        rx.close()
        sd.close()
    log.debug(f"Process thread {ix} closing down")


def analyze_thread(cfg: PipelineConfig, ix: int, rx: Receiver, sd: Sender,
                   log: logging.LoggerAdapter) -> None:
    """
    Merge pipeline worker: receives merged datasets (histograms already
    materialized), sends (DataSet, DataResults).
    """
    log.debug(f"Analysis thread {ix} starting up")
    try:
        for d in rx:
            log.log(TRACE, f"Analysis thread {ix} received dataset {d.path}")
            res = analyze_dataset(cfg, d, log)
            _send_result(sd, (d, res))
    finally:
        rx.close()
        sd.close()
    log.debug(f"Analysis thread {ix} closing down")
