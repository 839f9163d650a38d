"""
Data Models Layer.

This package contains the data structures used throughout the application,
such as configuration and the job/queue views.
"""

from .config import AppConfig
from .job import Job, JobOutcome, JobProgress, JobStatus, JobView, QueueSnapshot

__all__ = [
    "AppConfig",
    "Job",
    "JobOutcome",
    "JobProgress",
    "JobStatus",
    "JobView",
    "QueueSnapshot",
]
