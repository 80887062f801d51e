import logging
import sys
from dataclasses import dataclass
from typing import Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
    'trace': TRACE,
}

# Timestamp granularity -> (format prefix, datefmt)
TIMESTAMP_FORMATS = {
    'none': ("", None),
    'sec': ("[%(asctime)s] ", "%Y-%m-%dT%H:%M:%S"),
    'ms': ("[%(asctime)s.%(msecs)03d] ", "%Y-%m-%dT%H:%M:%S"),
    'us': ("[%(asctime)s] ", None),
}


@dataclass(frozen=True)
class LogConfig:
    """Logging options, consumed once at start-up."""
    level: str = 'info'
    quiet: bool = False
    timestamp: str = 'none'
    log_file: Optional[str] = None


class WorkerContextFilter(logging.Filter):
    """Makes sure every record has a 'worker' attribute for the formatter."""
    def filter(self, record):
        if not hasattr(record, 'worker'):
            record.worker = "main"
        return True


class _MicrosecondFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        base = super().formatTime(record, "%Y-%m-%dT%H:%M:%S")
        return f"{base}.{int(record.msecs * 1000) % 1000000:06d}"


def _make_formatter(timestamp: str) -> logging.Formatter:
    if timestamp not in TIMESTAMP_FORMATS:
        raise ValueError(f"Unknown timestamp granularity '{timestamp}'")
    prefix, datefmt = TIMESTAMP_FORMATS[timestamp]
    fmt = prefix + "[%(levelname)-8s] [%(worker)-10s] %(message)s"
    if timestamp == 'us':
        return _MicrosecondFormatter(fmt)
    return logging.Formatter(fmt, datefmt)


def setup_main_logging(log_config: LogConfig) -> int:
    """
    Configures the root logger for the process.

    Logs go to stderr (stdout may carry the main report) and, optionally, to a file.

    Returns:
        int: the effective log level.
    """
    if log_config.quiet:
        log_level = logging.CRITICAL + 1
    else:
        try:
            log_level = LOG_LEVELS[log_config.level.lower()]
        except KeyError:
            raise ValueError(f"Unknown log level '{log_config.level}'") from None

    formatter = _make_formatter(log_config.timestamp)
    context_filter = WorkerContextFilter()

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_config.log_file:
        handlers.append(logging.FileHandler(log_config.log_file))
    for h in handlers:
        h.setFormatter(formatter)
        h.addFilter(context_filter)

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(log_level)
    for h in handlers:
        root.addHandler(h)

    logging.captureWarnings(True)

    logging.getLogger(__name__).debug(
        f"Main logger configured. Level: {logging.getLevelName(log_level)}"
        + (f". Log file: {log_config.log_file}" if log_config.log_file else "")
    )
    return log_level


def get_worker_logger(role: str, ix: Optional[int] = None) -> logging.LoggerAdapter:
    """
    Returns a LoggerAdapter that injects the worker name into log records.
    """
    name = role if ix is None else f"{role}-{ix}"
    return logging.LoggerAdapter(logging.getLogger(f"gcqc.worker.{role}"), {"worker": name})
