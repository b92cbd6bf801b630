"""Background task execution."""

from triad3.tasks.runner import BackgroundRunner, RunnerClosedError, TaskStatus

__all__ = ["BackgroundRunner", "RunnerClosedError", "TaskStatus"]
