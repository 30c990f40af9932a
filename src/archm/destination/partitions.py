# src/archm/destination/partitions.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from archm.logging import get_logger

_LOG = get_logger(__name__)

_PARTITION_RE = re.compile(r"P([0-9]+)")


def partition_name(index: int) -> str:
    return f"P{index}"


def find_starting_partition_index(date_dir: Path) -> int:
    """
    First partition index for a run: one past the highest existing P<n>
    subdirectory of date_dir, or 1 when there is none.
    """
    if not date_dir.is_dir():
        return 1

    max_p = 0
    with os.scandir(date_dir) as it:
        for entry in it:
            if not entry.is_dir():
                continue
            m = _PARTITION_RE.fullmatch(entry.name)
            if m:
                max_p = max(max_p, int(m.group(1)))
    return max(1, max_p + 1)


@dataclass
class _BucketCursor:
    index: int
    count: int = 0


class PartitionAllocator:
    """
    Assigns consecutive items of one date bucket to partitions of `limit`
    items each.

    Partition numbering is derived, not stored: each date directory is scanned
    once, on first use in this run, and only indices above anything seen on
    disk are handed out. One allocator per run; not thread-safe.
    """

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._cursors: dict[Path, _BucketCursor] = {}

    @property
    def enabled(self) -> bool:
        return self._limit > 0

    def assign(self, date_dir: Path) -> Optional[str]:
        """Partition name for the next item landing in date_dir, or None when disabled."""
        if not self.enabled:
            return None

        cursor = self._cursors.get(date_dir)
        if cursor is None:
            cursor = _BucketCursor(index=find_starting_partition_index(date_dir))
            self._cursors[date_dir] = cursor
            _LOG.debug("Partitions for %s start at %s", date_dir, partition_name(cursor.index))

        if cursor.count == self._limit:
            cursor.index += 1
            cursor.count = 0

        cursor.count += 1
        return partition_name(cursor.index)
