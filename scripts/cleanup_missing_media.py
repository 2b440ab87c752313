#!/usr/bin/env python3
"""
Remove Media Rows Whose File Is Gone
====================================
Deletes every media row without an original file under the upload root,
for example after files were removed by hand or a restore left gaps.

Usage:
    python scripts/cleanup_missing_media.py [--dry-run]
"""

import argparse

from albumhq.database import SessionLocal, engine, Base
from albumhq import models  # noqa: F401
from albumhq.maintenance import delete_media_with_missing_files


def main():
    parser = argparse.ArgumentParser(description="Delete media rows whose original file is missing")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list the rows that would be deleted"
    )
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        media_ids = delete_media_with_missing_files(db, dry_run=args.dry_run)
        if not media_ids:
            print("No media rows to delete.")
            return

        if args.dry_run:
            for media_id in media_ids:
                print(f"  {media_id}")
            print(f"[DRY RUN] Would delete {len(media_ids)} media row(s)")
            return

        print(f"Deleted {len(media_ids)} media row(s)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
