# src/archm/engine/planner.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from archm.destination import DestinationResolver, PartitionAllocator, strategy_for
from archm.destination.resolver import Clock
from archm.domain.errors import ResetRequiredError, ValidationError
from archm.domain.models import PlannedItemView, RunPlanView, RunRequest
from archm.domain.states import ArchiveType, PipelineState
from archm.logging import get_logger
from archm.tasks import ArchiveDecompressTask, ItemTransferTask, is_shortcut
from archm.tasks.decompress import DEFAULT_KILL_GRACE_S, DEFAULT_WAIT_POLL_S

from .pipeline import PipelineRunner
from .task import Task

_LOG = get_logger(__name__)


def list_level0_items(source_root: Path) -> list[Path]:
    """Direct children of source_root, sorted by name. No recursion."""
    return sorted(source_root.iterdir(), key=lambda p: p.name)


def validate_roots(source: str, destination: str) -> tuple[Path, Path]:
    source = (source or "").strip()
    destination = (destination or "").strip()

    if not source or not Path(source).is_dir():
        raise ValidationError("Invalid source directory.", details={"source": source})
    if not destination or not Path(destination).exists():
        raise ValidationError("Invalid destination directory.", details={"destination": destination})

    src = Path(source)
    dst = Path(destination)
    if not dst.is_dir():
        raise ValidationError("Destination must be a directory.", details={"destination": destination})

    src_abs = src.resolve()
    dst_abs = dst.resolve()
    if dst_abs == src_abs or src_abs in dst_abs.parents:
        raise ValidationError(
            "Destination cannot be inside source.",
            details={"source": str(src_abs), "destination": str(dst_abs)},
        )
    return src, dst


@dataclass(frozen=True)
class PlannedItem:
    source: Path
    destination: Path
    partition: Optional[str]
    decompress: bool


@dataclass
class RunPlan:
    items: list[PlannedItem] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)

    def view(self) -> RunPlanView:
        return RunPlanView(
            items=[
                PlannedItemView(
                    source=str(i.source),
                    destination=str(i.destination),
                    partition=i.partition,
                    decompress=i.decompress,
                )
                for i in self.items
            ],
            task_count=len(self.tasks),
        )


class RunPlanner:
    """
    Turns a run request into tasks and hands them to the runner:

    - validates source/destination before anything is queued
    - one ItemTransferTask per level-0 item, at the path given by the resolver
      and a run-scoped PartitionAllocator
    - an ArchiveDecompressTask right behind the transfer of each supported archive
      when decompression is enabled

    Planning runs on the caller's thread; the allocator is never shared with
    the worker.
    """

    def __init__(
        self,
        runner: PipelineRunner,
        *,
        default_seven_zip: str = "7z",
        kill_grace_s: float = DEFAULT_KILL_GRACE_S,
        wait_poll_s: float = DEFAULT_WAIT_POLL_S,
        clock: Clock = datetime.now,
    ) -> None:
        self._runner = runner
        self._default_seven_zip = default_seven_zip
        self._kill_grace_s = kill_grace_s
        self._wait_poll_s = wait_poll_s
        self._clock = clock

    def plan(self, request: RunRequest) -> RunPlan:
        source_root, destination_root = validate_roots(request.source_directory, request.destination_directory)

        resolver = DestinationResolver(destination_root, strategy_for(request.destination_mode, self._clock))
        allocator = PartitionAllocator(request.partition_item_limit)
        seven_zip = (request.seven_zip_path or "").strip() or self._default_seven_zip

        plan = RunPlan()
        for item in list_level0_items(source_root):
            partition = None
            if allocator.enabled:
                partition = allocator.assign(resolver.resolve_date_directory(item))
            final_dest = resolver.resolve_final_destination(item, partition)

            plan.tasks.append(ItemTransferTask(item, final_dest, skip_shortcuts=request.skip_shortcuts))

            decompress = self._wants_decompress(request, item)
            if decompress:
                plan.tasks.append(
                    ArchiveDecompressTask(
                        final_dest,
                        seven_zip,
                        kill_grace_s=self._kill_grace_s,
                        wait_poll_s=self._wait_poll_s,
                    )
                )

            plan.items.append(PlannedItem(item, final_dest, partition, decompress))

        _LOG.info(
            "Planned %d item(s) / %d task(s) from %s into %s",
            len(plan.items),
            len(plan.tasks),
            source_root,
            destination_root,
        )
        return plan

    def start(self, request: RunRequest) -> RunPlan:
        if self._runner.state == PipelineState.RESET_REQUIRED:
            raise ResetRequiredError("Reset required before starting again.")

        plan = self.plan(request)
        self._runner.submit_all(plan.tasks)
        return plan

    @staticmethod
    def _wants_decompress(request: RunRequest, item: Path) -> bool:
        if not request.decompression_enabled:
            return False
        if request.skip_shortcuts and is_shortcut(item):
            return False
        return item.is_file() and ArchiveType.is_supported_name(item.name)
