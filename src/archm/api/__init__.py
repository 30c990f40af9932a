# src/archm/api/__init__.py
"""
Control API for archm (FastAPI).

- app: FastAPI instance + lifecycle hooks
- routes: settings, run submission and pipeline control endpoints
- deps: dependency injection helpers
- monitor: listener recording pipeline notifications
"""

from .app import app

__all__ = ["app"]
