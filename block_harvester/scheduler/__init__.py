"""Scheduling of periodic block collection."""

from .apsched_adapter import CollectionScheduler, SchedulerStatus

__all__ = ["CollectionScheduler", "SchedulerStatus"]
