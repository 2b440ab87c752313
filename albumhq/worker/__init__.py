"""
Background job worker: queue primitives, handlers and the polling loop.
"""
from .handlers import HANDLERS, HandlerContext, JobError
from .queue import (
    backfill_video_previews,
    claim_job,
    enqueue_job,
    mark_done,
    mark_failed,
    reclaim_expired_leases,
)
from .runner import Worker, WorkerState

__all__ = [
    "HANDLERS",
    "HandlerContext",
    "JobError",
    "Worker",
    "WorkerState",
    "backfill_video_previews",
    "claim_job",
    "enqueue_job",
    "mark_done",
    "mark_failed",
    "reclaim_expired_leases",
]
