"""Seed a demo patient with a short recovery plan and login tokens.

Creates one patient whose surgery was three days ago, tasks from day -1 to
day 7, and bearer sessions for the patient and a provider so the API can
be exercised immediately.

Usage:
    python -m recoveryline.scripts.seed_demo
    python -m recoveryline.scripts.seed_demo --surgery-days-ago 5

Idempotent: skips if the demo patient already exists.
"""

import argparse
import asyncio
import uuid
from datetime import timedelta

from sqlalchemy import text

from recoveryline.database import async_session_maker, engine
from recoveryline.models.auth import AuthSession, UserRole
from recoveryline.models.task import TaskType
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TaskRepository
from recoveryline.schemas.patient import PatientCreate
from recoveryline.services.recovery_day import date_for_day
from recoveryline.utils.time_helpers import utc_now, utc_today

DEMO_TENANT_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")
DEMO_PATIENT_USER = "demo-patient"
DEMO_PROVIDER_USER = "demo-provider"
SESSION_DAYS = 7

# (day, type, title, description)
DEMO_PLAN: list[tuple[int, TaskType, str, str | None]] = [
    (-1, TaskType.FORM, "Pre-surgery checklist", "Confirm fasting, ride home and medications."),
    (-1, TaskType.VIDEO, "What to expect on surgery day", None),
    (0, TaskType.CHECK_IN, "Post-op check-in", None),
    (1, TaskType.MEDICATION, "Take pain medication as prescribed", None),
    (1, TaskType.EXERCISE, "Ankle pumps", "10 reps every hour while awake."),
    (2, TaskType.EXERCISE, "Quad sets", "3 sets of 10, hold each for 5 seconds."),
    (3, TaskType.CHECK_IN, "Daily pain check-in", None),
    (3, TaskType.EXERCISE, "Heel slides", "2 sets of 10."),
    (3, TaskType.VIDEO, "Caring for your incision", None),
    (5, TaskType.FORM, "Wound photo upload", None),
    (7, TaskType.MESSAGE, "One-week follow-up with your care team", None),
]


async def seed_demo(surgery_days_ago: int) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    print("  Database: connected")

    async with async_session_maker() as session:
        patients = PatientRepository(session)
        existing = await patients.get_by_user(DEMO_PATIENT_USER)
        if existing:
            print(f"  Demo patient already exists (id={existing.id})")
            return

        surgery_date = utc_today() - timedelta(days=surgery_days_ago)
        patient = await patients.create(
            PatientCreate(
                tenant_id=DEMO_TENANT_ID,
                user_id=DEMO_PATIENT_USER,
                first_name="Jordan",
                last_name="Demo",
                surgery_date=surgery_date,
                surgery_type="Total knee replacement",
            )
        )

        tasks = TaskRepository(session)
        for day, task_type, title, description in DEMO_PLAN:
            await tasks.create(patient.id, task_type, title, date_for_day(surgery_date, day), description)

        expires = utc_now() + timedelta(days=SESSION_DAYS)
        tokens = {}
        for user_id, role in ((DEMO_PATIENT_USER, UserRole.PATIENT), (DEMO_PROVIDER_USER, UserRole.PROVIDER)):
            token = uuid.uuid4().hex
            session.add(AuthSession(token=token, user_id=user_id, role=role, expires_at=expires))
            tokens[role.value] = token
        await session.commit()

    print(f"  Demo patient created (id={patient.id}, surgery {surgery_date}, {len(DEMO_PLAN)} tasks)")
    for role, token in tokens.items():
        print(f"  {role} bearer token: {token}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a RecoveryLine demo patient")
    parser.add_argument(
        "--surgery-days-ago",
        type=int,
        default=3,
        help="How many days ago the demo surgery happened (default: 3)",
    )
    args = parser.parse_args()
    asyncio.run(seed_demo(args.surgery_days_ago))


if __name__ == "__main__":
    main()
