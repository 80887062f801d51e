"""Helper functions for running and joining pipeline workers."""
import logging
from concurrent.futures import Executor, Future
from typing import Callable, List, Tuple

from ..services.channel import Receiver, Sender
from ..services.errors import GcQcError

logger = logging.getLogger(__name__)

Panic = Tuple[str, BaseException]


def _run_and_close(fn: Callable, handles: Tuple, args: Tuple):
    try:
        return fn(*args)
    finally:
        # Workers close their own handles; this also covers failures before they get there
        for h in handles:
            h.close()


def spawn(executor: Executor, fn: Callable, *args) -> Future:
    """
    Submits a worker. Every channel handle among ``args`` is closed when the
    worker exits, however it exits.
    """
    handles = tuple(a for a in args if isinstance(a, (Sender, Receiver)))
    return executor.submit(_run_and_close, fn, handles, args)


def check_join(fut: Future, role: str, panics: List[Panic]) -> bool:
    """
    Waits for a worker and reports how it ended.

    A GcQcError is logged as an error. Any other exception is logged as
    critical and recorded in ``panics``.

    Returns:
        bool: True if the worker failed.
    """
    try:
        fut.result()
    except GcQcError as e:
        logger.error(f"Error in {role}: {e}")
        return True
    except Exception as e:
        logger.critical(f"Unexpected failure in {role}: {e!r}", exc_info=e)
        panics.append((role, e))
        return True
    return False
