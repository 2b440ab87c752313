"""
Background job administration (admin only).
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_admin_user
from ..database import get_db
from ..logging_config import api_logger
from ..models.job import JobStatus, JobType
from ..models.user import User
from ..worker.queue import backfill_video_previews, job_stats, list_jobs, retry_failed_job

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=List[dict])
def get_jobs(
    status: Optional[str] = None,
    type: Optional[str] = None,
    limit: int = Query(200, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    """Newest jobs first, optionally filtered by status and type."""
    if status and status not in {s.value for s in JobStatus}:
        raise HTTPException(status_code=400, detail="Invalid status")
    if type and type not in {t.value for t in JobType}:
        raise HTTPException(status_code=400, detail="Invalid job type")

    return [job.to_dict() for job in list_jobs(db, status=status, job_type=type, limit=limit)]


@router.get("/stats")
def get_job_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    return job_stats(db)


@router.post("/backfill/video-previews")
def queue_video_preview_backfill(
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    """Queue poster generation for every video that has none."""
    queued = backfill_video_previews(db)
    api_logger.info("Queued video preview backfill", queued=queued, user_id=admin.id)
    return {"queued": queued}


@router.post("/{job_id}/retry")
def retry_job(
    job_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
):
    """Give a FAILED job a fresh set of attempts."""
    job = retry_failed_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Failed job not found")
    return job.to_dict()
