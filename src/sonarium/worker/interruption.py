"""Startup recovery of scan jobs left in flight by an unclean shutdown."""

from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sonarium.core.db import AsyncSessionLocal
from sonarium.core.models import IN_FLIGHT_STATUSES, ScanJobStatus
from sonarium.core.repositories import ScanJobRepository


class ScanJobInterruptionRunner:
    """Marks STARTING/STARTED scan jobs as INTERRUPTED, once per process.

    Must run before the process accepts new scans: any in-flight row found
    at that point belongs to a process that is gone.
    """

    def __init__(
        self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self._done = False

    async def mark_current_jobs_as_interrupted(self) -> int:
        async with self.session_factory() as session, session.begin():
            jobs = await ScanJobRepository(session).find_by_status_in(IN_FLIGHT_STATUSES)
            for job in jobs:
                job.set_status(ScanJobStatus.INTERRUPTED)
                job.log_message = "Scan job was interrupted by application shutdown."
        if jobs:
            logger.warning(
                f"Marked {len(jobs)} scan job(s) as interrupted: "
                f"{', '.join(str(job.id) for job in jobs)}"
            )
        return len(jobs)

    async def run(self) -> int:
        """Run the recovery; later calls on the same runner do nothing."""
        if self._done:
            return 0
        self._done = True
        return await self.mark_current_jobs_as_interrupted()
