"""
Database-backed job queue.

The jobs table is the only coordination medium between worker processes. A
claim is a single ``UPDATE ... WHERE id = (SELECT ... FOR UPDATE SKIP
LOCKED LIMIT 1) RETURNING id`` statement, so two workers racing on the same
backlog never get the same row and never wait on each other's locks. On
SQLite the row lock clause is dropped and the single-statement write lock
gives the same guarantee.

Completion updates are fenced on ``(status, attempts)``: a worker whose lease
expired and whose job was handed to someone else cannot overwrite the new
owner's outcome.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, aliased

from ..database import utcnow
from ..models.job import Job, JobStatus, JobType
from ..models.media import Media
from ..metadata import VIDEO_EXTENSIONS

LEASE_EXPIRED_MESSAGE = "Lease expired"


def enqueue_job(db: Session, job_type: JobType, payload: Dict) -> Job:
    """Add a PENDING job to the caller's transaction."""
    job = Job(
        type=JobType(job_type).value,
        payload=payload,
        status=JobStatus.PENDING.value,
        attempts=0,
    )
    db.add(job)
    db.flush()
    return job


def claim_job(
    db: Session,
    job_type: JobType,
    max_attempts: int,
    lease_seconds: float,
    now: Optional[datetime] = None,
) -> Optional[Job]:
    """
    Atomically claim the oldest eligible job of ``job_type``.

    Eligible means PENDING, ``attempts < max_attempts`` and past any retry
    back-off. The claimed row moves to PROCESSING with ``attempts`` already
    incremented. Returns None (and changes nothing) when nothing is eligible.
    """
    now = now or utcnow()
    candidate = aliased(Job, name="candidate")

    candidate_id = (
        select(candidate.id)
        .where(
            candidate.status == JobStatus.PENDING.value,
            candidate.type == JobType(job_type).value,
            candidate.attempts < max_attempts,
            or_(candidate.next_eligible_at.is_(None), candidate.next_eligible_at <= now),
        )
        .order_by(candidate.created_at.asc(), candidate.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )

    stmt = (
        update(Job)
        .where(Job.id == candidate_id)
        .values(
            status=JobStatus.PROCESSING.value,
            attempts=Job.attempts + 1,
            lease_expires_at=now + timedelta(seconds=lease_seconds),
            updated_at=now,
        )
        .returning(Job.id)
        .execution_options(synchronize_session=False)
    )

    try:
        job_id = db.execute(stmt).scalar_one_or_none()
        db.commit()
    except Exception:
        db.rollback()
        raise

    if job_id is None:
        return None
    return db.get(Job, job_id)


def retry_delay(attempts: int, backoff_base: float) -> float:
    """Exponential back-off in seconds after the ``attempts``-th failure."""
    if backoff_base <= 0 or attempts <= 0:
        return 0.0
    return backoff_base * (2 ** (attempts - 1))


def _fenced(job_id: int, attempts: int):
    return (
        Job.id == job_id,
        Job.status == JobStatus.PROCESSING.value,
        Job.attempts == attempts,
    )


def mark_done(db: Session, job_id: int, attempts: int) -> bool:
    result = db.execute(
        update(Job)
        .where(*_fenced(job_id, attempts))
        .values(
            status=JobStatus.DONE.value,
            lease_expires_at=None,
            next_eligible_at=None,
            last_error=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def mark_failed(
    db: Session,
    job_id: int,
    error_message: str,
    attempts: int,
    max_attempts: int,
    backoff_base: float = 0.0,
    now: Optional[datetime] = None,
) -> str:
    """
    Requeue the job if attempts remain, else fail it for good.

    Returns the status written, or "" when the job is no longer ours.
    """
    now = now or utcnow()
    should_retry = attempts < max_attempts
    status = JobStatus.PENDING.value if should_retry else JobStatus.FAILED.value
    delay = retry_delay(attempts, backoff_base) if should_retry else 0.0

    result = db.execute(
        update(Job)
        .where(*_fenced(job_id, attempts))
        .values(
            status=status,
            last_error=error_message,
            lease_expires_at=None,
            next_eligible_at=now + timedelta(seconds=delay) if delay else None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return status if result.rowcount == 1 else ""


def reclaim_expired_leases(db: Session, max_attempts: int, now: Optional[datetime] = None) -> int:
    """Return PROCESSING jobs whose lease ran out to PENDING (or FAILED when exhausted)."""
    now = now or utcnow()
    result = db.execute(
        update(Job)
        .where(
            Job.status == JobStatus.PROCESSING.value,
            Job.lease_expires_at.is_not(None),
            Job.lease_expires_at < now,
        )
        .values(
            status=case(
                (Job.attempts >= max_attempts, JobStatus.FAILED.value),
                else_=JobStatus.PENDING.value,
            ),
            lease_expires_at=None,
            last_error=LEASE_EXPIRED_MESSAGE,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


def retry_failed_job(db: Session, job_id: int) -> Optional[Job]:
    """Manually give a FAILED job a fresh set of attempts."""
    job = db.get(Job, job_id)
    if not job or job.status != JobStatus.FAILED.value:
        return None
    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.next_eligible_at = None
    db.commit()
    db.refresh(job)
    return job


def list_jobs(
    db: Session,
    status: Optional[str] = None,
    job_type: Optional[str] = None,
    limit: int = 200,
) -> List[Job]:
    query = db.query(Job)
    if status:
        query = query.filter(Job.status == status)
    if job_type:
        query = query.filter(Job.type == job_type)
    return query.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit).all()


def job_stats(db: Session) -> Dict[str, int]:
    stats = {status.value: 0 for status in JobStatus}
    for status, count in db.query(Job.status, func.count(Job.id)).group_by(Job.status).all():
        stats[status] = count
    stats["total"] = sum(stats.values())
    return stats


def video_media_filter():
    extension_filters = []
    for ext in sorted(VIDEO_EXTENSIONS):
        extension_filters.append(func.lower(Media.filename).like(f"%{ext}"))
        extension_filters.append(func.lower(Media.storage_path).like(f"%{ext}"))
    return or_(func.lower(Media.mime_type).like("video/%"), *extension_filters)


def backfill_video_previews(db: Session) -> int:
    """Queue GENERATE_VIDEO_PREVIEW for every video that has no poster yet."""
    media_ids = [
        row.id
        for row in db.query(Media.id).filter(Media.preview_path.is_(None), video_media_filter()).all()
    ]
    for media_id in media_ids:
        enqueue_job(db, JobType.GENERATE_VIDEO_PREVIEW, {"media_id": media_id})
    db.commit()
    return len(media_ids)
