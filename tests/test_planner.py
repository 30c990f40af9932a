# tests/test_planner.py
import time
from datetime import datetime
from pathlib import Path

import pytest

from archm.domain.errors import ResetRequiredError, ValidationError
from archm.domain.models import RunRequest
from archm.domain.states import DestinationMode, PipelineState, RunOutcome
from archm.engine.pipeline import PipelineRunner
from archm.engine.planner import RunPlanner, list_level0_items
from archm.tasks import ArchiveDecompressTask, ItemTransferTask


def _clock():
    return datetime(2024, 1, 20, 9, 30)


def _wait_until(fn, timeout_s: float = 5.0, poll_s: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if fn():
            return True
        time.sleep(poll_s)
    return False


@pytest.fixture()
def runner():
    r = PipelineRunner()
    yield r
    r.shutdown()


@pytest.fixture()
def planner(runner: PipelineRunner) -> RunPlanner:
    return RunPlanner(runner, clock=_clock)


def _request(src: Path, dst: Path, **kw) -> RunRequest:
    return RunRequest(source_directory=str(src), destination_directory=str(dst), **kw)


def test_level0_enumeration_is_not_recursive(roots):
    src, _ = roots
    (src / "b.txt").write_text("b")
    (src / "a_dir" / "nested").mkdir(parents=True)
    (src / "a_dir" / "nested" / "deep.txt").write_text("d")

    assert [p.name for p in list_level0_items(src)] == ["a_dir", "b.txt"]


def test_validation_errors(roots, planner: RunPlanner, runner: PipelineRunner):
    src, dst = roots
    a_file = dst / "file.txt"
    a_file.write_text("x")
    inner = src / "inner"
    inner.mkdir()

    cases = [
        (_request(Path(" "), dst), "Invalid source directory."),
        (_request(src / "missing", dst), "Invalid source directory."),
        (RunRequest(source_directory=str(src), destination_directory=""), "Invalid destination directory."),
        (_request(src, dst / "missing"), "Invalid destination directory."),
        (_request(src, a_file), "Destination must be a directory."),
        (_request(src, inner), "Destination cannot be inside source."),
        (_request(src, src), "Destination cannot be inside source."),
    ]
    for req, message in cases:
        with pytest.raises(ValidationError) as ei:
            planner.start(req)
        assert ei.value.message == message

    assert runner.state == PipelineState.IDLE
    assert runner.snapshot().submitted == 0


def test_partitions_across_items(roots, planner: RunPlanner):
    src, dst = roots
    for i in range(5):
        (src / f"item{i}.txt").write_text(str(i))

    plan = planner.plan(_request(src, dst, partition_item_limit=2))

    assert [i.partition for i in plan.items] == ["P1", "P1", "P2", "P2", "P3"]
    assert plan.items[2].destination == dst / "Jan 2024" / "P2" / "item2.txt"
    assert all(isinstance(t, ItemTransferTask) for t in plan.tasks)


def test_new_run_continues_after_existing_partitions(roots, planner: RunPlanner):
    src, dst = roots
    (dst / "Jan 2024" / "P1").mkdir(parents=True)
    (dst / "Jan 2024" / "P2").mkdir()
    for i in range(3):
        (src / f"f{i}").write_text("x")

    plan = planner.plan(_request(src, dst, partition_item_limit=100))

    assert {i.partition for i in plan.items} == {"P3"}


def test_disabled_partitioning_ignores_existing_partitions(roots, planner: RunPlanner):
    src, dst = roots
    (dst / "Jan 2024" / "P4").mkdir(parents=True)
    (src / "f").write_text("x")

    plan = planner.plan(_request(src, dst, partition_item_limit=0))

    assert plan.items[0].partition is None
    assert plan.items[0].destination == dst / "Jan 2024" / "f"


def test_decompress_is_chained_only_for_archives(roots, planner: RunPlanner):
    src, dst = roots
    (src / "a.zip").write_bytes(b"zip")
    (src / "b.txt").write_text("txt")
    (src / "c.7z").mkdir()  # directory with an archive-like name

    plan = planner.plan(_request(src, dst, decompression_enabled=True, seven_zip_path="/opt/7z"))

    kinds = [type(t).__name__ for t in plan.tasks]
    assert kinds == ["ItemTransferTask", "ArchiveDecompressTask", "ItemTransferTask", "ItemTransferTask"]
    decompress = plan.tasks[1]
    assert isinstance(decompress, ArchiveDecompressTask)
    assert decompress.archive == dst / "Jan 2024" / "a.zip"
    assert decompress.build_command()[0] == "/opt/7z"
    assert [i.decompress for i in plan.items] == [True, False, False]


def test_blank_seven_zip_uses_default(roots, runner: PipelineRunner):
    src, dst = roots
    (src / "a.rar").write_bytes(b"rar")
    planner = RunPlanner(runner, default_seven_zip="seven", clock=_clock)

    plan = planner.plan(_request(src, dst, decompression_enabled=True, seven_zip_path="  "))

    assert plan.tasks[1].build_command()[0] == "seven"


def test_start_refused_while_reset_required(roots, planner: RunPlanner, runner: PipelineRunner):
    src, dst = roots
    (src / "f").write_text("x")
    runner.cancel()

    with pytest.raises(ResetRequiredError):
        planner.start(_request(src, dst))
    assert (src / "f").exists()


def test_end_to_end_transfer_into_buckets(roots, planner: RunPlanner, runner: PipelineRunner):
    src, dst = roots
    (src / "doc.txt").write_text("doc")
    (src / "album" / "sub").mkdir(parents=True)
    (src / "album" / "sub" / "pic.jpg").write_text("pic")

    plan = planner.start(_request(src, dst, destination_mode=DestinationMode.TRANSFER_DATE, partition_item_limit=1))

    assert len(plan.tasks) == 2
    assert _wait_until(lambda: runner.snapshot().last_outcome == RunOutcome.SUCCEEDED)
    assert runner.state == PipelineState.IDLE
    assert (dst / "Jan 2024" / "P1" / "album" / "sub" / "pic.jpg").read_text() == "pic"
    assert (dst / "Jan 2024" / "P2" / "doc.txt").read_text() == "doc"
    assert list(src.iterdir()) == []


def test_skip_shortcuts_end_to_end(roots, tmp_path: Path, planner: RunPlanner, runner: PipelineRunner,
                                   require_symlinks):
    src, dst = roots
    outside = tmp_path / "outside"
    (outside / "dir").mkdir(parents=True)
    (outside / "dir" / "inner.txt").write_text("inner")
    (outside / "target.txt").write_text("target")

    (src / "regular.txt").write_text("regular")
    (src / "linked.txt").symlink_to(outside / "target.txt")
    (src / "linked-dir").symlink_to(outside / "dir", target_is_directory=True)

    planner.start(_request(src, dst, skip_shortcuts=True))
    assert _wait_until(lambda: runner.snapshot().last_outcome == RunOutcome.SUCCEEDED)

    bucket = dst / "Jan 2024"
    assert sorted(p.name for p in bucket.iterdir()) == ["regular.txt"]
    assert (src / "linked.txt").is_symlink()
    assert (src / "linked-dir").is_symlink()
    assert (outside / "dir" / "inner.txt").read_text() == "inner"


def test_end_to_end_decompress(roots, runner: PipelineRunner, fake_seven_zip: Path):
    src, dst = roots
    (src / "a.zip").write_bytes(b"PKzip")
    planner = RunPlanner(runner, default_seven_zip=str(fake_seven_zip), clock=_clock)

    planner.start(_request(src, dst, decompression_enabled=True))
    assert _wait_until(lambda: runner.snapshot().last_outcome == RunOutcome.SUCCEEDED, timeout_s=15.0)

    out = dst / "Jan 2024" / "a"
    assert (out / "a.zip").read_bytes() == b"PKzip"
    assert (out / "extracted.txt").exists()
    assert not (dst / "Jan 2024" / "a.zip").exists()
