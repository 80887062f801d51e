"""
Merge stage: groups datasets by an identity key and accumulates each group.

The group map is owned by the single merge thread; grouping is sequential and
parallelism comes from the analysis workers downstream.
"""
import logging
from pathlib import Path
from typing import Dict, Optional

from ..analysis.models import DataSet, MergeKey
from ..clients.dataset_json import read_json
from ..services.channel import Receiver, Sender
from ..services.config_loader import PipelineConfig
from ..services.errors import ChannelClosed, MergeError
from ..services.logging_config import TRACE

logger = logging.getLogger(__name__)


class MergeKeyResolver:
    """
    Holds the key kind of a run. DEFAULT is replaced by the kind inferred from
    the first dataset and never changes afterwards.
    """

    def __init__(self, key: MergeKey):
        self.key = key

    @property
    def resolved(self) -> bool:
        return self.key != MergeKey.DEFAULT

    def key_for(self, d: DataSet) -> str:
        """
        Raises:
            MergeError: if the kind cannot be inferred, or the dataset has no
                value for the resolved kind.
        """
        if not self.resolved:
            inferred = get_merge_key(d, self.key)
            if inferred is None:
                raise MergeError(f"Couldn't determine merge key type for dataset {d.path}")
            logger.debug(f"Merge key type set to {inferred.value}")
            self.key = inferred

        value = d.fli.get_key(self.key)
        if value is None:
            raise MergeError(f"Couldn't establish {self.key.value} merge key for dataset {d.path}")
        return value


def get_merge_key(d: DataSet, key: MergeKey) -> Optional[MergeKey]:
    """Concrete key kind for a dataset: ``key`` itself, or inferred for DEFAULT."""
    if key == MergeKey.DEFAULT:
        return d.fli.find_merge_key()
    return key


def merge_dataset(d: DataSet, resolver: MergeKeyResolver, groups: Dict[str, DataSet]) -> str:
    """
    Adds a dataset to its group, starting a new group named after the key if needed.

    Returns:
        str: the key value of the group.
    """
    key = resolver.key_for(d)
    group = groups.get(key)
    if group is None:
        d.path = Path(key)
        d.is_group = True
        groups[key] = d
    else:
        group.merge(d)
    return key


def merge_thread(cfg: PipelineConfig, rx: Receiver, sd: Sender, log: logging.LoggerAdapter) -> None:
    """
    Reads every input path, merges the datasets by key and, once the inbound
    channel closes, sends each materialized group downstream.
    """
    if cfg.merge_key is None:
        raise MergeError("Cannot merge without a key")

    log.debug("Merge thread starting up")
    resolver = MergeKeyResolver(cfg.merge_key)
    groups: Dict[str, DataSet] = {}

    try:
        for path in rx:
            log.log(TRACE, f"Merge thread received file {path} for reading")
            key = merge_dataset(read_json(path), resolver, groups)
            log.log(TRACE, f"File {path} added to group {key}")
        # Nothing else is read once the inbound side is exhausted
        rx.close()

        log.debug(f"Merge thread finished merging all input files ({len(groups)} groups). "
                  f"Sending results to analysis threads")
        for d in groups.values():
            d.mk_gc_counts()
            try:
                sd.send(d)
            except ChannelClosed as e:
                raise ChannelClosed(f"Error sending results to analysis threads: {e}") from e
    finally:
        rx.close()
        sd.close()
    log.debug("Merge thread closing down")
