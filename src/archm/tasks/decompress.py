# src/archm/tasks/decompress.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, Optional, Union

from archm.domain.errors import ExternalProcessError, TaskCancelled, ValidationError
from archm.domain.states import ArchiveType
from archm.engine.runtime import RuntimeToken
from archm.engine.task import Task
from archm.logging import get_logger

from .transfer import move_file

_LOG = get_logger(__name__)

DEFAULT_KILL_GRACE_S = 0.3
DEFAULT_WAIT_POLL_S = 0.1

# The decompressor gets its own process group so wrapper scripts and their
# children can be signalled together; the output pipe only reaches EOF once
# every holder is gone.
_OWN_GROUP = os.name == "posix"


def extraction_dir_for(archive: Path) -> Path:
    """
    Sibling directory named after the archive with its last extension removed:
    a.zip -> a, a.tar.gz -> a.tar
    """
    return archive.parent / archive.stem


class ArchiveDecompressTask(Task):
    """
    Extracts a transferred archive with an external 7-Zip compatible executable:

        <exe> x <archive> -o<extract_dir> -y

    The combined stdout/stderr is drained line by line so the child never
    blocks on a full pipe. On exit code 0 the archive is moved into its own
    extraction directory.

    on_cancel() terminates the child's process group, waits a short grace
    period and kills the group. The output stream is left to the worker, which
    sees EOF and closes it; on_cancel() never blocks for longer than about two
    grace periods.
    """

    def __init__(
        self,
        archive: Path,
        executable: Union[str, Path],
        *,
        kill_grace_s: float = DEFAULT_KILL_GRACE_S,
        wait_poll_s: float = DEFAULT_WAIT_POLL_S,
    ) -> None:
        super().__init__()
        self._archive = Path(archive)
        self._executable = os.fspath(executable)
        self._kill_grace_s = kill_grace_s
        self._wait_poll_s = wait_poll_s

        if not ArchiveType.is_supported_name(self._archive.name):
            raise ValidationError(
                f"Unsupported archive type: {self._archive}",
                details={"archive": str(self._archive), "supported": [t.value for t in ArchiveType]},
            )

        self._io_lock = threading.Lock()
        self._proc: Optional[subprocess.Popen[str]] = None

    @property
    def description(self) -> str:
        return f"Decompress {self._archive.name}"

    @property
    def archive(self) -> Path:
        return self._archive

    @property
    def extract_dir(self) -> Path:
        return extraction_dir_for(self._archive)

    @property
    def pid(self) -> Optional[int]:
        """Pid of the running decompressor, if any."""
        with self._io_lock:
            return self._proc.pid if self._proc is not None else None

    def build_command(self) -> list[str]:
        return [self._executable, "x", str(self._archive), f"-o{self.extract_dir}", "-y"]

    def _run(self, token: RuntimeToken) -> None:
        if not self._archive.is_file():
            raise ValidationError(f"Archive not found: {self._archive}", details={"archive": str(self._archive)})

        extract_dir = self.extract_dir
        extract_dir.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command()
        _LOG.info("Extracting %s into %s", self._archive, extract_dir)
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=_OWN_GROUP,
            )
        except OSError as e:
            raise ExternalProcessError(
                f"Cannot start decompressor {self._executable!r}: {e}",
                details={"executable": self._executable},
            ) from e

        with self._io_lock:
            self._proc = proc

        try:
            # cancel() may have run before the process was registered
            token.raise_if_cancelled()
            self._drain(token, proc.stdout)
            token.await_if_paused()
            exit_code = self._wait_for_exit(token, proc)
        finally:
            with self._io_lock:
                self._proc = None
            if proc.poll() is None:
                self._terminate(proc)
            if proc.stdout is not None and not proc.stdout.closed:
                proc.stdout.close()

        if exit_code != 0:
            raise ExternalProcessError(
                f"7-Zip failed with exit code {exit_code}",
                details={"exit_code": exit_code, "archive": str(self._archive)},
            )

        # example.rar ends up as example/example.rar
        move_file(token, self._archive, extract_dir / self._archive.name)

    def _drain(self, token: RuntimeToken, stream: Optional[IO[str]]) -> None:
        if stream is None:
            return
        while True:
            token.checkpoint()
            try:
                line = stream.readline()
            except OSError:
                if token.is_cancelled():
                    raise TaskCancelled()
                raise
            if not line:
                return
            _LOG.debug("7z: %s", line.rstrip())

    def _wait_for_exit(self, token: RuntimeToken, proc: subprocess.Popen[str]) -> int:
        while True:
            token.raise_if_cancelled()
            try:
                return proc.wait(timeout=self._wait_poll_s)
            except subprocess.TimeoutExpired:
                continue

    def on_cancel(self) -> None:
        super().on_cancel()
        with self._io_lock:
            proc, self._proc = self._proc, None

        if proc is not None:
            self._terminate(proc)

    def _terminate(self, proc: subprocess.Popen[str]) -> None:
        """SIGTERM, grace period, SIGKILL. On POSIX the whole group is signalled."""
        self._signal(proc, force=False)
        try:
            proc.wait(timeout=self._kill_grace_s)
        except subprocess.TimeoutExpired:
            _LOG.warning("Decompressor pid=%s ignored terminate; killing.", proc.pid)
        # descendants may outlive the leader and still hold the pipe
        self._signal(proc, force=True)
        try:
            proc.wait(timeout=self._kill_grace_s)
        except subprocess.TimeoutExpired:
            _LOG.error("Decompressor pid=%s did not exit after kill.", proc.pid)

    @staticmethod
    def _signal(proc: subprocess.Popen[str], *, force: bool) -> None:
        if _OWN_GROUP:
            try:
                os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)
            except ProcessLookupError:
                # group already gone
                pass
        elif proc.poll() is None:
            if force:
                proc.kill()
            else:
                proc.terminate()
