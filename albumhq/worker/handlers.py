"""
Job handlers: one coroutine per job type.

Handlers raise on any problem (``JobError`` for bad data, ``CommandError``
from the external tools); the worker turns that into a retry or a FAILED job.
Each handler only touches the columns it owns, and only writes a derived
path the first time, so re-running a finished job is harmless.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..logging_config import timed, worker_logger
from ..media_tools import (
    CommandRunner,
    convert_heic_to_jpeg,
    copy_file,
    generate_video_poster,
    is_jpeg_file,
)
from ..metadata import (
    ExtractedMetadata,
    extract_image_metadata,
    extract_video_metadata,
    infer_media_kind,
    is_valid_coordinate,
)
from ..models.job import Job, JobType
from ..models.media import LocationSource, Media, MetadataStatus
from ..storage import (
    build_converted_relative_path,
    build_preview_relative_path,
    resolve_upload_path,
)


class JobError(Exception):
    """The job cannot run with the data it was given."""


@dataclass
class HandlerContext:
    session_factory: Callable[[], Session]
    runner: CommandRunner


Handler = Callable[[Job, HandlerContext], Awaitable[None]]


# ============================================================
# DB HELPERS (run in a thread)
# ============================================================

def _load_media(session_factory, media_id: str):
    db = session_factory()
    try:
        return db.get(Media, media_id)
    finally:
        db.close()


def _set_path_once(session_factory, media_id: str, column: str, value: str) -> bool:
    """Write ``column`` only while it is still NULL."""
    target = getattr(Media, column)
    db = session_factory()
    try:
        result = db.execute(
            update(Media)
            .where(Media.id == media_id, target.is_(None))
            .values({column: value})
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1
    finally:
        db.close()


def _update_media(session_factory, media_id: str, **values):
    db = session_factory()
    try:
        db.execute(
            update(Media)
            .where(Media.id == media_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    finally:
        db.close()


async def _require_media(job: Job, ctx: HandlerContext, require_album: bool = True) -> Media:
    media_id = job.media_id
    if not media_id:
        raise JobError("Job payload is missing media_id")

    media = await asyncio.to_thread(_load_media, ctx.session_factory, media_id)
    if media is None:
        raise JobError(f"Media {media_id} not found")
    if not media.storage_path:
        raise JobError(f"Media {media_id} has no storage_path")
    if require_album and not media.album_id:
        raise JobError(f"Media {media_id} has no album_id")
    return media


def _source_path(media: Media):
    source = resolve_upload_path(media.storage_path)
    if not source.is_file():
        raise JobError(f"Source file for media {media.id} is missing")
    return source


# ============================================================
# HANDLERS
# ============================================================

@timed(worker_logger)
async def handle_convert_heic(job: Job, ctx: HandlerContext):
    media = await _require_media(job, ctx)

    relative = media.converted_path or build_converted_relative_path(media.album_id, media.id)
    destination = resolve_upload_path(relative)

    if media.converted_path and destination.is_file():
        worker_logger.info("HEIC already converted", media_id=media.id, converted_path=relative)
        return

    source = _source_path(media)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if await asyncio.to_thread(is_jpeg_file, source):
        # Some "HEIC" uploads are JPEGs with the wrong extension
        await asyncio.to_thread(copy_file, source, destination)
    else:
        await convert_heic_to_jpeg(source, destination, ctx.runner)

    await asyncio.to_thread(_set_path_once, ctx.session_factory, media.id, "converted_path", relative)
    worker_logger.info("HEIC converted", media_id=media.id, converted_path=relative)


@timed(worker_logger)
async def handle_generate_video_preview(job: Job, ctx: HandlerContext):
    media = await _require_media(job, ctx)

    relative = media.preview_path or build_preview_relative_path(media.album_id, media.id)
    destination = resolve_upload_path(relative)

    if media.preview_path and destination.is_file():
        worker_logger.info("Video preview already exists", media_id=media.id, preview_path=relative)
        return

    source = _source_path(media)
    destination.parent.mkdir(parents=True, exist_ok=True)
    await generate_video_poster(source, destination, ctx.runner)

    await asyncio.to_thread(_set_path_once, ctx.session_factory, media.id, "preview_path", relative)
    worker_logger.info("Video preview generated", media_id=media.id, preview_path=relative)


@timed(worker_logger)
async def handle_extract_metadata(job: Job, ctx: HandlerContext):
    media = await _require_media(job, ctx, require_album=False)

    await asyncio.to_thread(
        _update_media, ctx.session_factory, media.id,
        metadata_status=MetadataStatus.PROCESSING.value,
    )

    try:
        source = _source_path(media)
        kind = infer_media_kind(media.mime_type, media.filename or media.storage_path)

        if kind == "image":
            extracted = await asyncio.to_thread(extract_image_metadata, source)
            found_source = LocationSource.EXIF
        elif kind == "video":
            extracted = await extract_video_metadata(source, ctx.runner)
            found_source = LocationSource.VIDEO_META
        else:
            extracted = ExtractedMetadata()
            found_source = LocationSource.NONE

        has_location = is_valid_coordinate(extracted.latitude, extracted.longitude)
        await asyncio.to_thread(
            _update_media, ctx.session_factory, media.id,
            captured_at=extracted.captured_at,
            location_auto_lat=extracted.latitude if has_location else None,
            location_auto_lng=extracted.longitude if has_location else None,
            location_source=(found_source if has_location else LocationSource.NONE).value,
            metadata_status=MetadataStatus.DONE.value,
        )
    except Exception:
        await asyncio.to_thread(
            _update_media, ctx.session_factory, media.id,
            metadata_status=MetadataStatus.FAILED.value,
        )
        raise

    worker_logger.info(
        "Metadata extracted",
        media_id=media.id,
        kind=kind,
        has_location=has_location,
        has_captured_at=extracted.captured_at is not None,
    )


HANDLERS: Dict[str, Handler] = {
    JobType.CONVERT_HEIC.value: handle_convert_heic,
    JobType.GENERATE_VIDEO_PREVIEW.value: handle_generate_video_preview,
    JobType.EXTRACT_METADATA.value: handle_extract_metadata,
}
