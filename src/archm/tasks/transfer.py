# src/archm/tasks/transfer.py
from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path

from archm.engine.runtime import RuntimeToken
from archm.engine.task import Task
from archm.logging import get_logger

_LOG = get_logger(__name__)

SHORTCUT_SUFFIXES = (".lnk", ".url")


def is_shortcut_name(name: str) -> bool:
    return name.lower().endswith(SHORTCUT_SUFFIXES)


def is_link(path: Path) -> bool:
    """Symbolic link, or an NTFS junction where the platform can tell."""
    if os.path.islink(path):
        return True
    isjunction = getattr(os.path, "isjunction", None)
    return bool(isjunction and isjunction(path))


def is_shortcut(path: Path) -> bool:
    return is_link(path) or is_shortcut_name(path.name)


def move_file(token: RuntimeToken, src: Path, dst: Path) -> None:
    """
    Moves one file, replacing dst.

    Tries an atomic rename first; falls back to copy+delete when source and
    destination live on different filesystems.
    """
    token.checkpoint()
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.replace(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        _LOG.debug("Atomic rename unsupported for %s -> %s; copying.", src, dst)
        shutil.move(os.fspath(src), os.fspath(dst))


def delete_tree(root: Path) -> None:
    """Removes what is left of a transferred source directory (links are removed, not followed)."""
    if is_link(root):
        root.unlink()
    elif root.exists():
        shutil.rmtree(root)


class ItemTransferTask(Task):
    """
    Moves one level-0 item (file or directory) to its resolved destination.

    With skip_shortcuts:
    - a level-0 item that is a link or a .lnk/.url file is not transferred
    - the directory walk does not follow links; linked subdirectories are
      skipped with their subtree, linked or shortcut-named files are left behind

    Every visited directory and file is a poll point. A partially moved
    directory is not rolled back on cancellation.
    """

    def __init__(self, source_item: Path, destination: Path, skip_shortcuts: bool = False) -> None:
        super().__init__()
        self._source = Path(source_item)
        self._destination = Path(destination)
        self._skip_shortcuts = skip_shortcuts
        self._moved = 0

    @property
    def description(self) -> str:
        return f"Transfer {self._source.name}"

    @property
    def source(self) -> Path:
        return self._source

    @property
    def destination(self) -> Path:
        return self._destination

    @property
    def files_moved(self) -> int:
        return self._moved

    def _run(self, token: RuntimeToken) -> None:
        if self._skip_shortcuts and is_shortcut(self._source):
            _LOG.info("Skipping shortcut %s", self._source)
            return

        self._destination.parent.mkdir(parents=True, exist_ok=True)

        if self._source.is_dir():
            self._move_directory(token)
        else:
            move_file(token, self._source, self._destination)
            self._moved += 1

        _LOG.debug("Transferred %s -> %s (%d file(s))", self._source, self._destination, self._moved)

    def _move_directory(self, token: RuntimeToken) -> None:
        self._destination.mkdir(parents=True, exist_ok=True)
        self._walk(token, self._source, self._destination, visited=set())
        delete_tree(self._source)

    def _walk(self, token: RuntimeToken, src_dir: Path, dst_dir: Path, visited: set[tuple[int, int]]) -> None:
        token.checkpoint()

        st = src_dir.stat()
        key = (st.st_dev, st.st_ino)
        if key in visited:
            # Followed link pointing back up the tree.
            _LOG.warning("Directory cycle at %s; not descending again.", src_dir)
            return
        visited.add(key)

        dst_dir.mkdir(parents=True, exist_ok=True)

        with os.scandir(src_dir) as it:
            entries = sorted(it, key=lambda e: e.name)

        follow = not self._skip_shortcuts
        for entry in entries:
            path = Path(entry.path)
            if self._skip_shortcuts and (entry.is_symlink() or is_link(path)):
                continue

            if entry.is_dir(follow_symlinks=follow):
                self._walk(token, path, dst_dir / entry.name, visited)
                continue

            token.checkpoint()
            if self._skip_shortcuts and is_shortcut_name(entry.name):
                continue
            move_file(token, path, dst_dir / entry.name)
            self._moved += 1
