"""
Application status transitions and the regeneration guard.

pending -> approved | rejected. Leaving approved or rejected takes a new record (resubmission)
or the explicit administrative status override.
"""

from typing import Dict, FrozenSet, Optional, Union

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ApplicationStatus
from app.core.exceptions import RegenerationDenied, ServiceError
from app.core.models import AggregateStatus

ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}),
    ApplicationStatus.APPROVED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}

# A document in front of a reviewer, or already accepted, blocks a new generation
REGENERATION_BLOCKING = frozenset({ApplicationStatus.PENDING, ApplicationStatus.APPROVED})

StatusLike = Union[ApplicationStatus, str]


def _as_status(value: StatusLike) -> ApplicationStatus:
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ServiceError(f"Unknown application status '{value}'", status.HTTP_400_BAD_REQUEST)


def can_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    return _as_status(to_status) in ALLOWED_TRANSITIONS[_as_status(from_status)]


def ensure_transition(from_status: StatusLike, to_status: StatusLike) -> None:
    if not can_transition(from_status, to_status):
        raise ServiceError(
            f"Application cannot move from '{_as_status(from_status).value}' to '{_as_status(to_status).value}'",
            status.HTTP_409_CONFLICT,
        )


async def get_aggregate_status(db: AsyncSession, student_key: str) -> Optional[AggregateStatus]:
    result = await db.execute(select(AggregateStatus).where(AggregateStatus.student_key == student_key))
    return result.scalar_one_or_none()


async def ensure_regeneration_allowed(db: AsyncSession, student_key: str) -> None:
    """Read-only check. Raises RegenerationDenied while the student's last generation is pending or approved."""
    aggregate = await get_aggregate_status(db, student_key)
    if aggregate is None:
        return
    current = (aggregate.status or "").lower()
    if current in {s.value for s in REGENERATION_BLOCKING}:
        raise RegenerationDenied(current)
