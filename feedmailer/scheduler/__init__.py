"""Scheduling helpers for repeated runs."""

from .apsched_adapter import APSchedulerAdapter

__all__ = ["APSchedulerAdapter"]
