"""Async request layer: HTTP tasks, stage barriers and the bounded job queue."""

from .barrier import CompletionBarrier, CompletionHandle
from .job_queue import BoundedJobQueue

__all__ = ["BoundedJobQueue", "CompletionBarrier", "CompletionHandle"]
