"""
Polling worker loop.

One ``Worker`` per process. Each tick reclaims expired leases, then fills
free slots by claiming jobs (metadata first, then HEIC conversion, then video
previews) and starting them as tasks without waiting for them. Everything
that talks to the database runs in a thread so a slow query in one slot
never stalls the others.
"""
import asyncio
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Set

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_session_factory
from ..logging_config import worker_logger
from ..media_tools import CommandRunner
from ..models.job import Job, JobType
from .handlers import HANDLERS, Handler, HandlerContext, JobError
from .heartbeat import write_heartbeat_file
from .queue import claim_job, mark_done, mark_failed, reclaim_expired_leases

JOB_ORDER = (
    JobType.EXTRACT_METADATA,
    JobType.CONVERT_HEIC,
    JobType.GENERATE_VIDEO_PREVIEW,
)


@dataclass
class WorkerState:
    active_count: int = 0
    is_shutting_down: bool = False
    tasks: Set[asyncio.Task] = field(default_factory=set)


class Worker:
    """Claims jobs from the database and runs their handlers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        runner: Optional[CommandRunner] = None,
        handlers: Optional[Dict[str, Handler]] = None,
        health_file: Optional[Path] = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or get_session_factory()
        self.runner = runner or CommandRunner(
            max_concurrency=self.settings.command_max_concurrency,
            timeout=self.settings.command_timeout_seconds,
        )
        self.handlers = handlers if handlers is not None else HANDLERS
        self.health_file = Path(health_file or self.settings.worker_health_file)
        self.context = HandlerContext(session_factory=self.session_factory, runner=self.runner)
        self.state = WorkerState()
        self._stop_event = asyncio.Event()

    # ============================================================
    # DB CALLS (threaded)
    # ============================================================

    def _with_session(self, fn, *args, **kwargs):
        db = self.session_factory()
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()

    def _claim(self, job_type: JobType) -> Optional[Job]:
        return self._with_session(
            claim_job,
            job_type,
            max_attempts=self.settings.worker_max_attempts,
            lease_seconds=self.settings.worker_lease_seconds,
        )

    async def _claim_next(self) -> Optional[Job]:
        for job_type in JOB_ORDER:
            job = await asyncio.to_thread(self._claim, job_type)
            if job is not None:
                return job
        return None

    # ============================================================
    # TICK
    # ============================================================

    async def tick(self) -> int:
        """Run one polling round. Returns how many jobs were started."""
        reclaimed = await asyncio.to_thread(
            self._with_session, reclaim_expired_leases, self.settings.worker_max_attempts
        )
        if reclaimed:
            worker_logger.warning("Reclaimed jobs with expired leases", count=reclaimed)

        started = 0
        while self.state.active_count < self.settings.worker_concurrency and not self.state.is_shutting_down:
            job = await self._claim_next()
            if job is None:
                break
            self._dispatch(job)
            started += 1

        self.write_heartbeat()
        return started

    def _dispatch(self, job: Job):
        worker_logger.info("Job claimed", job_id=job.id, job_type=job.type, attempt=job.attempts)
        self.state.active_count += 1
        task = asyncio.create_task(self.process_job(job), name=f"job-{job.id}")
        self.state.tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self.state.tasks.discard(task)
        self.state.active_count = max(0, self.state.active_count - 1)

    async def process_job(self, job: Job) -> bool:
        """Run the handler for ``job`` and record the outcome. Never raises (except on cancel)."""
        handler = self.handlers.get(job.type)
        log = worker_logger.bind(job_id=job.id, job_type=job.type, attempt=job.attempts)
        try:
            if handler is None:
                raise JobError(f"Unknown job type: {job.type}")
            await handler(job, self.context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            log.error("Job failed", error=e)
            try:
                status = await asyncio.to_thread(
                    self._with_session,
                    mark_failed,
                    job.id,
                    message,
                    job.attempts,
                    self.settings.worker_max_attempts,
                    self.settings.worker_retry_backoff_seconds,
                )
            except Exception as db_error:
                log.error("Could not record job failure", error=db_error)
                return False
            if not status:
                log.warning("Job was reclaimed before it failed")
            return False

        try:
            recorded = await asyncio.to_thread(self._with_session, mark_done, job.id, job.attempts)
        except Exception as db_error:
            log.error("Could not record job completion", error=db_error)
            return False
        if not recorded:
            log.warning("Job was reclaimed before it finished")
        else:
            log.info("Job done")
        return True

    async def drain(self):
        """Wait for every in-flight job."""
        while self.state.tasks:
            await asyncio.gather(*list(self.state.tasks), return_exceptions=True)

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def write_heartbeat(self, status: str = "running"):
        try:
            write_heartbeat_file(
                self.health_file,
                status=status,
                active_count=self.state.active_count,
                is_shutting_down=self.state.is_shutting_down,
            )
        except OSError as e:
            worker_logger.warning("Could not write heartbeat", path=str(self.health_file), error_message=str(e))

    def request_shutdown(self):
        if not self.state.is_shutting_down:
            worker_logger.info("Shutdown requested", active_count=self.state.active_count)
        self.state.is_shutting_down = True
        self._stop_event.set()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_shutdown))

    async def shutdown(self):
        """Stop claiming, give in-flight jobs the grace period, then cancel the rest."""
        self.state.is_shutting_down = True
        self.write_heartbeat("stopping")

        if self.state.tasks:
            _, pending = await asyncio.wait(
                list(self.state.tasks), timeout=self.settings.worker_shutdown_grace
            )
            if pending:
                # Their leases expire and another worker picks them up
                worker_logger.warning("Cancelling unfinished jobs", count=len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self.write_heartbeat("stopped")
        worker_logger.info("Worker stopped")

    async def run_forever(self):
        self.install_signal_handlers()
        worker_logger.info(
            "Worker started",
            concurrency=self.settings.worker_concurrency,
            poll_interval=self.settings.worker_poll_interval,
            max_attempts=self.settings.worker_max_attempts,
        )

        try:
            while not self.state.is_shutting_down:
                try:
                    await self.tick()
                except Exception as e:
                    worker_logger.error("Worker tick failed", error=e)
                    self.write_heartbeat("error")

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.worker_poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.shutdown()
