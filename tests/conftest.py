# tests/conftest.py
import importlib
import itertools
import os
import stat
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pytest
from fastapi.testclient import TestClient

_counter = itertools.count(1)

DEFAULT_ENV = {
    "ARCHM_KILL_GRACE_MS": "200",
    "ARCHM_WAIT_POLL_MS": "20",
    "ARCHM_LOG_LEVEL": "warning",
}

# Stand-in for 7z: accepts `x <archive> -o<dir> -y`, behaviour picked by FAKE7Z_MODE.
FAKE_7Z_SOURCE = """#!@PYTHON@
import json, os, signal, sys, time

args = sys.argv[1:]
out = next(a[2:] for a in args if a.startswith("-o"))
mode = os.environ.get("FAKE7Z_MODE", "ok")

if mode == "hang":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    print("hanging", flush=True)
    time.sleep(60)
    sys.exit(0)

if mode == "fail":
    print("ERROR: Can not open the file as archive", flush=True)
    sys.exit(2)

# More output than a pipe buffer holds; only completes if the reader drains it.
for i in range(3000):
    print("- extracting item %05d %s" % (i, "x" * 40))

with open(os.path.join(out, "extracted.txt"), "w") as fh:
    json.dump(args, fh)
sys.exit(0)
"""


def _apply_env(monkeypatch: pytest.MonkeyPatch, db_path: Path, overrides: Optional[dict[str, str]] = None) -> None:
    monkeypatch.setenv("ARCHM_DB_PATH", str(db_path))
    for k, v in DEFAULT_ENV.items():
        monkeypatch.setenv(k, v)
    if overrides:
        for k, v in overrides.items():
            monkeypatch.setenv(k, v)


@contextmanager
def _client_ctx(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, *, overrides: Optional[dict[str, str]] = None,
                db_path: Optional[Path] = None) -> Iterator[TestClient]:
    # Unique DB per client instance unless one is provided
    if db_path is None:
        n = next(_counter)
        db_path = tmp_path / f"archm_{n}.db"

    _apply_env(monkeypatch, db_path, overrides)

    # Import after env is set; reload to avoid cross-test state
    app_mod = importlib.import_module("archm.api.app")
    importlib.reload(app_mod)

    with TestClient(app_mod.app) as client:
        yield client


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    """
    Default integration test client.
    Uses DEFAULT_ENV and a fresh sqlite db per test.
    """
    with _client_ctx(monkeypatch, tmp_path) as c:
        yield c


@pytest.fixture()
def client_factory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """
    Factory for tests that need custom settings or a pre-populated DB.

    Usage:
      with client_factory(overrides={"ARCHM_SEVEN_ZIP": "/opt/7z"}) as client:
          ...
    """

    def _make(*, overrides: Optional[dict[str, str]] = None, db_path: Optional[Path] = None):
        return _client_ctx(monkeypatch, tmp_path, overrides=overrides, db_path=db_path)

    return _make


@pytest.fixture()
def fake_seven_zip(tmp_path: Path) -> Path:
    if os.name == "nt":
        pytest.skip("fake decompressor relies on a shebang script")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "fake7z"
    script.write_text(FAKE_7Z_SOURCE.replace("@PYTHON@", sys.executable), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture()
def roots(tmp_path: Path) -> tuple[Path, Path]:
    """(source root, destination root), both existing and disjoint."""
    src = tmp_path / "src"
    dst = tmp_path / "dst"
    src.mkdir()
    dst.mkdir()
    return src, dst


@pytest.fixture()
def require_symlinks(tmp_path: Path) -> None:
    link = tmp_path / ".symlink-check"
    try:
        link.symlink_to(tmp_path)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not available")
    link.unlink()
