import argparse
import asyncio
from typing import List, Optional

from loguru import logger

from sonarium.core.db import init_db
from sonarium.core.exceptions import SonariumError
from sonarium.core.logger import setup_logging
from sonarium.core.models import ScanJobStatus
from sonarium.worker.interruption import ScanJobInterruptionRunner
from sonarium.worker.scanner import ScanJobService


async def run_scan(paths: Optional[List[str]] = None) -> bool:
    """Runs a FULL scan to completion.

    Args:
        paths: Library folders to scan; LIBRARY_FOLDERS when omitted.

    Returns:
        True if the scan job completed.
    """
    await init_db()
    await ScanJobInterruptionRunner().run()

    service = ScanJobService()
    try:
        job = await service.run_scan_job(paths or None)
    except SonariumError as e:
        logger.error(str(e))
        return False
    finally:
        await service.shutdown()

    result = job.scan_result
    if job.status != ScanJobStatus.COMPLETE or result is None:
        logger.error(f"Scan job {job.id} ended as {job.status.value}: {job.log_message}")
        return False

    logger.success(f"Scan job {job.id} complete in {result.duration / 1000:.1f}s.")
    logger.info(
        f"Songs: {result.song_count} (+{result.created_song_count} "
        f"~{result.updated_song_count} -{result.deleted_song_count}), "
        f"Albums: {result.album_count}, Artists: {result.artist_count}, "
        f"Genres: {result.genre_count}, Artworks: {result.artwork_count}"
    )
    if result.failed_paths:
        logger.warning(f"{len(result.failed_paths)} path(s) failed:")
        for path in result.failed_paths:
            logger.warning(f"  {path}")
    return True


async def run_list_jobs(limit: int) -> None:
    """Prints the most recent scan jobs."""
    await init_db()
    service = ScanJobService()
    try:
        page = await service.get_scan_jobs(0, limit)
    finally:
        await service.shutdown()

    if not page.scan_jobs:
        logger.info("No scan jobs yet.")
    for job in page.scan_jobs:
        logger.info(
            f"#{job.id} {job.scan_type.value:<4} {job.status.value:<11} "
            f"{job.created_at:%Y-%m-%d %H:%M:%S} {job.log_message or ''}"
        )


def main():
    setup_logging("sonarium-worker")
    parser = argparse.ArgumentParser(description="Sonarium Worker")
    subparsers = parser.add_subparsers(dest="command")

    # Init DB Command
    subparsers.add_parser("init-db", help="Initialize Database Tables")

    # Scan Command
    scan_parser = subparsers.add_parser(
        "scan", help="Scan library folders and update the library"
    )
    scan_parser.add_argument(
        "paths", nargs="*", help="Folders to scan (default: LIBRARY_FOLDERS)"
    )

    # Jobs Command
    jobs_parser = subparsers.add_parser("jobs", help="List recent scan jobs")
    jobs_parser.add_argument(
        "--limit", type=int, default=20, help="Number of jobs to show"
    )

    args = parser.parse_args()

    if args.command == "init-db":
        asyncio.run(init_db())
        logger.info("Database initialized.")

    elif args.command == "scan":
        if not asyncio.run(run_scan(args.paths)):
            raise SystemExit(1)

    elif args.command == "jobs":
        asyncio.run(run_list_jobs(args.limit))

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
