"""
Run the job worker.

Usage:
    python -m albumhq.worker           # poll until SIGINT/SIGTERM
    python -m albumhq.worker --once    # one tick, wait for its jobs, exit
"""
import argparse
import asyncio

from ..database import Base, engine
from ..logging_config import worker_logger
from .. import models  # noqa: F401  (registers tables)
from .runner import Worker


async def run_once(worker: Worker):
    started = await worker.tick()
    await worker.drain()
    worker.write_heartbeat("stopped")
    worker_logger.info("Single pass finished", jobs=started)


def main():
    parser = argparse.ArgumentParser(description="AlbumHQ background job worker")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)

    worker = Worker()
    if args.once:
        asyncio.run(run_once(worker))
    else:
        asyncio.run(worker.run_forever())


if __name__ == "__main__":
    main()
