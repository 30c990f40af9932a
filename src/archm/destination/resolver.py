# src/archm/destination/resolver.py
"""
Destination path policy: date bucketing plus optional partition segment.

    {destination_root}/{Mon YYYY}[/{P#}]/{item name}

The resolver computes paths only; it never touches the destination tree.
"""
from __future__ import annotations

import os
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from archm.domain.states import DestinationMode
from archm.logging import get_logger

_LOG = get_logger(__name__)

# Fixed English abbreviations; strftime("%b") follows the process locale.
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

Clock = Callable[[], datetime]


def bucket_name(bucket: date) -> str:
    """date(2024, 1, x) -> 'Jan 2024'"""
    return f"{_MONTHS[bucket.month - 1]} {bucket.year:04d}"


def _month_of(ts: float) -> date:
    d = datetime.fromtimestamp(ts)
    return date(d.year, d.month, 1)


class BucketStrategy(ABC):
    """Picks the month/year bucket of a level-0 item."""

    mode: DestinationMode

    @abstractmethod
    def resolve_bucket(self, item: Path) -> date:
        ...


class TransferDateStrategy(BucketStrategy):
    mode = DestinationMode.TRANSFER_DATE

    def __init__(self, clock: Clock = datetime.now) -> None:
        self._clock = clock

    def resolve_bucket(self, item: Path) -> date:
        now = self._clock()
        return date(now.year, now.month, 1)


class CreationDateStrategy(BucketStrategy):
    """
    Creation time where the filesystem records one (st_birthtime, or st_ctime
    on Windows), else last-modified time, else now.
    """

    mode = DestinationMode.CREATION_DATE

    def __init__(self, clock: Clock = datetime.now) -> None:
        self._clock = clock

    def resolve_bucket(self, item: Path) -> date:
        try:
            st = os.stat(item)
        except OSError as e:
            _LOG.debug("Cannot stat %s (%r); using current month.", item, e)
            now = self._clock()
            return date(now.year, now.month, 1)

        created = getattr(st, "st_birthtime", None)
        if created is None and os.name == "nt":
            created = st.st_ctime
        if created is None:
            created = st.st_mtime
        return _month_of(created)


class LastModifiedDateStrategy(BucketStrategy):
    mode = DestinationMode.LAST_MODIFIED_DATE

    def resolve_bucket(self, item: Path) -> date:
        return _month_of(os.stat(item).st_mtime)


def strategy_for(mode: DestinationMode, clock: Clock = datetime.now) -> BucketStrategy:
    if mode == DestinationMode.TRANSFER_DATE:
        return TransferDateStrategy(clock)
    if mode == DestinationMode.CREATION_DATE:
        return CreationDateStrategy(clock)
    if mode == DestinationMode.LAST_MODIFIED_DATE:
        return LastModifiedDateStrategy()
    raise ValueError(f"Unknown destination mode: {mode!r}")


class DestinationResolver:
    def __init__(self, destination_root: Path, strategy: BucketStrategy) -> None:
        self._root = Path(destination_root)
        self._strategy = strategy

    @property
    def destination_root(self) -> Path:
        return self._root

    def resolve_date_directory(self, item: Path) -> Path:
        return self._root / bucket_name(self._strategy.resolve_bucket(item))

    def resolve_final_destination(self, item: Path, partition: Optional[str] = None) -> Path:
        target = self.resolve_date_directory(item)
        if partition is not None and partition.strip():
            target = target / partition.strip()
        return target / Path(item).name
