"""
Pipeline orchestrator: wires channels and worker threads for one run.

Standard pipeline:
    paths --bounded(2n)--> n x process_thread --unbounded--> output_thread
Merge pipeline:
    paths --bounded(2)--> merge_thread --bounded(2n)--> n x analyze_thread
          --unbounded--> output_thread
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List

from ..services.channel import Sender, bounded, unbounded
from ..services.config_loader import PipelineConfig
from ..services.errors import ChannelClosed, WorkerPanic
from ..services.logging_config import TRACE, get_worker_logger
from .dataset_processor import analyze_thread, process_thread
from .helpers import Panic, check_join, spawn
from .merge_processor import merge_thread
from .output_writer import output_thread

logger = logging.getLogger(__name__)


def _feed_inputs(cfg: PipelineConfig, sd: Sender) -> bool:
    """
    Sends every input path, then closes the sender.

    Returns:
        bool: True if the consumers went away before all paths were sent.
    """
    try:
        for p in cfg.input_files:
            sd.send(p)
    except ChannelClosed as e:
        logger.error(f"Error sending input file to worker threads: {e}")
        return True
    finally:
        sd.close()
    return False


def _raise_panics(panics: List[Panic]):
    if panics:
        roles = ", ".join(role for role, _ in panics)
        raise WorkerPanic(f"Worker thread(s) died unexpectedly: {roles}") from panics[0][1]


def std_pipeline(cfg: PipelineConfig) -> bool:
    """Runs the standard pipeline. Returns True if any worker failed."""
    nt = cfg.threads
    logger.log(TRACE, f"Running standard pipeline with {nt} threads")
    error = False
    panics: List[Panic] = []

    # Input paths to process threads
    sd, rx = bounded(nt * 2)
    # Results to output thread
    sd_res, rx_res = unbounded()

    with ThreadPoolExecutor(max_workers=nt + 1, thread_name_prefix="gcqc") as executor:
        output_task = spawn(executor, output_thread, cfg, rx_res, get_worker_logger("output"))

        process_tasks = [
            spawn(executor, process_thread, cfg, ix, rx.clone(), sd_res.clone(),
                  get_worker_logger("process", ix))
            for ix in range(nt)
        ]
        rx.close()
        sd_res.close()

        error = _feed_inputs(cfg, sd)

        for fut in process_tasks:
            error = check_join(fut, "process thread", panics) or error
        error = check_join(output_task, "output thread", panics) or error

    _raise_panics(panics)
    return error


def merge_pipeline(cfg: PipelineConfig) -> bool:
    """Runs the merge pipeline. Returns True if any worker failed."""
    nt = cfg.threads
    logger.log(TRACE, f"Running merge pipeline with {nt} threads")
    error = False
    panics: List[Panic] = []

    # Input paths to merge thread
    sd, rx = bounded(2)
    # Merged datasets to analysis threads
    sd_data, rx_data = bounded(nt * 2)
    # Results to output thread
    sd_res, rx_res = unbounded()

    with ThreadPoolExecutor(max_workers=nt + 2, thread_name_prefix="gcqc") as executor:
        output_task = spawn(executor, output_thread, cfg, rx_res, get_worker_logger("output"))
        merge_task = spawn(executor, merge_thread, cfg, rx, sd_data, get_worker_logger("merge"))

        process_tasks = [
            spawn(executor, analyze_thread, cfg, ix, rx_data.clone(), sd_res.clone(),
                  get_worker_logger("analyze", ix))
            for ix in range(nt)
        ]
        rx_data.close()
        sd_res.close()

        error = _feed_inputs(cfg, sd)

        error = check_join(merge_task, "merge thread", panics) or error
        for fut in process_tasks:
            error = check_join(fut, "analysis thread", panics) or error
        error = check_join(output_task, "output thread", panics) or error

    _raise_panics(panics)
    return error


def run_pipeline(cfg: PipelineConfig) -> bool:
    """
    Runs the pipeline selected by the configuration.

    Returns:
        bool: True if the run failed.

    Raises:
        WorkerPanic: if a worker died from an unexpected exception.
    """
    if cfg.merge_key is None:
        return std_pipeline(cfg)
    return merge_pipeline(cfg)
