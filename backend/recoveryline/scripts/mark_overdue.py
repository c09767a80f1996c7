"""Mark open tasks from earlier days as overdue.

Meant for a daily cron shortly after midnight UTC. Sweeping twice is
harmless: already-overdue tasks are left alone.

Usage:
    python -m recoveryline.scripts.mark_overdue
    python -m recoveryline.scripts.mark_overdue --today 2026-03-14
"""

import argparse
import asyncio
import logging
from datetime import date

from recoveryline.database import async_session_maker
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TaskRepository
from recoveryline.services.task_board import TaskBoard
from recoveryline.utils.time_helpers import utc_today

logger = logging.getLogger(__name__)


async def mark_overdue(today: date) -> int:
    async with async_session_maker() as session:
        board = TaskBoard(PatientRepository(session), TaskRepository(session))
        return await board.mark_overdue(today)


def main() -> None:
    parser = argparse.ArgumentParser(description="Sweep past open tasks to overdue")
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Reference date in ISO format (default: today, UTC)",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    today = args.today or utc_today()
    marked = asyncio.run(mark_overdue(today))
    logger.info("Marked %d task(s) overdue as of %s", marked, today)


if __name__ == "__main__":
    main()
