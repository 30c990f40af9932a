# src/archm/main.py
from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from archm.config import Settings, load_settings
from archm.logging import configure_logging, get_logger, parse_level
from archm.storage import SettingsRepo, SQLiteDB, apply_migrations


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="archm", description="Archive machine control service.")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="run the HTTP control API (default)")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)

    sub.add_parser("init-db", help="create or upgrade the preferences database and print it")
    return parser


def init_db(settings: Settings) -> int:
    log = get_logger(__name__)
    with SQLiteDB(settings.db_path).session() as conn:
        applied = apply_migrations(conn)
        prefs = SettingsRepo(conn).load()

    log.info("Preferences DB ready at %s (%d migration(s) applied)", settings.db_path, applied)
    log.info("Current preferences: %s", prefs.model_dump_json())
    return 0


def serve(settings: Settings, host: str, port: int) -> int:
    import uvicorn

    log = get_logger(__name__)
    log.info("Serving archm on %s:%d (preferences DB: %s)", host, port, settings.db_path)

    uvicorn.run(
        "archm.api.app:app",
        host=host,
        port=port,
        # uvicorn only knows the canonical level names
        log_level=logging.getLevelName(parse_level(settings.log_level)).lower(),
        reload=False,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Console entrypoint (`archm`, or `python -m archm.main`).

    For development, `uvicorn archm.api.app:app --reload` works as well.
    """
    settings = load_settings()
    configure_logging(settings.log_level)
    args = _build_parser(settings).parse_args(argv)

    if args.command == "init-db":
        return init_db(settings)
    if args.command == "serve":
        return serve(settings, args.host, args.port)
    return serve(settings, settings.host, settings.port)


if __name__ == "__main__":
    raise SystemExit(main())
