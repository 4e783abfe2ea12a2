"""Core enums used across modules."""

from enum import IntEnum, StrEnum


class RoleEnum(StrEnum):
    """Roles asserted by the identity provider."""

    MEMBER = "member"
    SPACE_ADMIN = "space_admin"
    PLATFORM_ADMIN = "platform_admin"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RecurrenceFrequencyEnum(StrEnum):
    """Supported recurrence frequencies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class WeekdayEnum(IntEnum):
    """ISO-style weekday numbering matching ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class OutboxStatusEnum(StrEnum):
    """Outbox event status for integration publishing."""

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


ACTIVE_BOOKING_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.CONFIRMED)
APPROVER_ROLES = (RoleEnum.SPACE_ADMIN, RoleEnum.PLATFORM_ADMIN)
