#!/usr/bin/env python3
"""
Queue Poster Generation For Existing Videos
===========================================
Finds every video without a preview poster and queues a
GENERATE_VIDEO_PREVIEW job for it. The worker picks them up on its next tick.

Usage:
    python scripts/backfill_video_previews.py [--dry-run]
"""

import argparse

from albumhq.database import SessionLocal, engine, Base
from albumhq import models  # noqa: F401
from albumhq.models.media import Media
from albumhq.worker.queue import video_media_filter, backfill_video_previews


def main():
    parser = argparse.ArgumentParser(description="Queue video preview jobs for videos without a poster")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count the videos that would be queued"
    )
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.dry_run:
            count = db.query(Media).filter(Media.preview_path.is_(None), video_media_filter()).count()
            print(f"[DRY RUN] Would queue {count} video preview job(s)")
            return

        queued = backfill_video_previews(db)
        print(f"Queued {queued} video preview job(s)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
