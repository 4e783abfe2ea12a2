"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import SessionLocal, close_engine
from app.core.enums import RecurrenceFrequencyEnum, RoleEnum, WeekdayEnum
from app.core.security import Actor
from app.modules.audit.repository import AuditRepository
from app.modules.booking.intervals import Interval
from app.modules.booking.models import Booking
from app.modules.booking.recurrence import RecurrenceRule
from app.modules.booking.repository import BookingRepository
from app.modules.booking.service import BookingService
from app.modules.spaces.models import Space
from app.modules.spaces.repository import SpaceRepository
from app.shared.utils import utc_now

DEMO_TENANT_ID = "demo"
DEMO_MEMBER_ID = UUID("00000000-0000-4000-8000-000000000001")

DEMO_SPACES = (
    # name, capacity, requires_approval
    ("Hot desk A1", 1, False),
    ("Focus room", 4, False),
    ("Board room", 12, True),
)

DEMO_SERIES_WEEKS = 8
DEMO_SERIES_START_HOUR = 9
DEMO_SERIES_DURATION_HOURS = 2


@dataclass(slots=True)
class SeedStats:
    spaces_created: int = 0
    series_created: bool = False
    occurrences_accepted: int = 0
    occurrences_rejected: int = 0


async def _ensure_spaces(session: AsyncSession) -> tuple[list[Space], int]:
    spaces: list[Space] = []
    created = 0
    for name, capacity, requires_approval in DEMO_SPACES:
        space = await session.scalar(
            select(Space).where(Space.tenant_id == DEMO_TENANT_ID, Space.name == name),
        )
        if space is None:
            space = Space(
                tenant_id=DEMO_TENANT_ID,
                name=name,
                capacity=capacity,
                requires_approval=requires_approval,
            )
            session.add(space)
            created += 1
        spaces.append(space)
    await session.flush()
    return spaces, created


async def _ensure_demo_series(session: AsyncSession, space: Space) -> tuple[int, int] | None:
    existing = await session.scalar(
        select(Booking.id).where(
            Booking.resource_id == space.id,
            Booking.requested_by == DEMO_MEMBER_ID,
            Booking.series_id.is_not(None),
        ),
    )
    if existing is not None:
        return None

    start_date = utc_now().date() + timedelta(days=1)
    start_at = datetime.combine(start_date, time(DEMO_SERIES_START_HOUR), tzinfo=UTC)
    base = Interval(start_at, start_at + timedelta(hours=DEMO_SERIES_DURATION_HOURS))
    rule = RecurrenceRule(
        frequency=RecurrenceFrequencyEnum.WEEKLY,
        start_date=start_date,
        days_of_week=frozenset({WeekdayEnum(start_date.weekday())}),
        occurrence_count=DEMO_SERIES_WEEKS,
    )

    service = BookingService(
        booking_repository=BookingRepository(session),
        space_repository=SpaceRepository(session),
        audit_repository=AuditRepository(session),
    )
    result = await service.create_series(
        space.id,
        base,
        rule,
        Actor(id=DEMO_MEMBER_ID, role=RoleEnum.MEMBER, tenant_id=DEMO_TENANT_ID),
        title="Weekly team sync",
    )
    return len(result.accepted), len(result.rejected)


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            spaces, stats.spaces_created = await _ensure_spaces(session)
            outcome = await _ensure_demo_series(session, spaces[1])
            if outcome is not None:
                stats.series_created = True
                stats.occurrences_accepted, stats.occurrences_rejected = outcome

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seed idempotent demo data for CoworkBooking (spaces and a weekly series).",
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Spaces created: {stats.spaces_created}")
    print(f"- Weekly series created: {stats.series_created}")
    print(f"- Occurrences accepted: {stats.occurrences_accepted}")
    print(f"- Occurrences rejected: {stats.occurrences_rejected}")
    print(f"- Demo member id: {DEMO_MEMBER_ID}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
