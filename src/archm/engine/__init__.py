# src/archm/engine/__init__.py
"""
Execution engine for archm.

- runtime: cooperative cancellation / pause token
- task: task contract shared by the two task kinds
- pipeline: sequential runner + state machine
- planner: validates a run request and turns level-0 items into tasks
"""

from .pipeline import PipelineListener, PipelineRunner
from .runtime import RuntimeToken
from .task import Task

__all__ = ["PipelineListener", "PipelineRunner", "RuntimeToken", "Task"]
