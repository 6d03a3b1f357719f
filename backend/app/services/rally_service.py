"""
Rally service layer for rally management operations.

Handles rally creation, retrieval, archiving and cancellation. Status
changes driven by the clock live in app.core.reconciler instead.
"""

from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session

from app.core.lifecycle import RallyStatus, as_utc, resolve_status
from app.models.rally import Rally


def _to_db_time(value: datetime) -> datetime:
    """Convert to the naive UTC form stored in the database."""
    return as_utc(value).replace(tzinfo=None)


def validate_rally_name(name: str) -> tuple[bool, Optional[str]]:
    """
    Validate rally name format.

    Args:
        name: Rally name to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not name or not name.strip():
        return False, "Rally name is required"

    if len(name.strip()) > 200:
        return False, "Rally name must not exceed 200 characters"

    return True, None


def create_rally(
    db: Session,
    name: str,
    competition_date: datetime,
    registration_deadline: datetime,
    now: datetime,
    description: Optional[str] = None,
    max_participants: Optional[int] = None,
    is_featured: bool = False
) -> Rally:
    """
    Create a new rally with its status set for ``now``.

    Args:
        db: Database session
        name: Rally display name
        competition_date: When the competition starts
        registration_deadline: When registration closes
        now: Current instant, used for the initial status
        description: Optional description
        max_participants: Optional participant cap
        is_featured: Highlight on the landing page

    Returns:
        Created Rally object

    Raises:
        ValueError: If validation fails
    """
    is_valid, error_message = validate_rally_name(name)
    if not is_valid:
        raise ValueError(error_message)

    if as_utc(registration_deadline) > as_utc(competition_date):
        raise ValueError("Registration deadline must not be after the competition date")

    rally = Rally(
        name=name.strip(),
        description=description,
        competition_date=_to_db_time(competition_date),
        registration_deadline=_to_db_time(registration_deadline),
        max_participants=max_participants,
        status=resolve_status(competition_date, registration_deadline, now).value,
        is_active=True,
        is_featured=is_featured,
        created_at=_to_db_time(now),
        updated_at=_to_db_time(now),
    )

    db.add(rally)
    db.commit()
    db.refresh(rally)

    return rally


def get_rally_by_id(db: Session, rally_id: int) -> Optional[Rally]:
    """
    Get rally by ID.

    Args:
        db: Database session
        rally_id: Rally ID to lookup

    Returns:
        Rally object if found, None otherwise
    """
    return db.query(Rally).filter(Rally.id == rally_id).first()


def list_rallies(
    db: Session,
    status: Optional[RallyStatus] = None,
    active_only: bool = False
) -> List[Rally]:
    """
    List rallies, newest competition first.

    Args:
        db: Database session
        status: Only include rallies with this status
        active_only: Only include rallies taking part in reconciliation

    Returns:
        List of Rally objects
    """
    query = db.query(Rally)
    if status is not None:
        query = query.filter(Rally.status == status.value)
    if active_only:
        query = query.filter(Rally.is_active.is_(True))
    return query.order_by(Rally.competition_date.desc()).all()


def set_rally_active(db: Session, rally_id: int, is_active: bool, now: datetime) -> Optional[Rally]:
    """
    Include or exclude a rally from status reconciliation.

    Returns:
        Updated Rally, or None if not found
    """
    rally = get_rally_by_id(db, rally_id)
    if not rally:
        return None

    rally.is_active = is_active
    rally.updated_at = _to_db_time(now)
    db.commit()
    db.refresh(rally)

    return rally


def cancel_rally(db: Session, rally_id: int, now: datetime) -> Optional[Rally]:
    """
    Mark a rally as cancelled. The clock never moves it out of this state.

    Returns:
        Updated Rally, or None if not found

    Raises:
        ValueError: If the rally has already completed
    """
    rally = get_rally_by_id(db, rally_id)
    if not rally:
        return None

    if rally.status == RallyStatus.COMPLETED.value:
        raise ValueError("Completed rallies cannot be cancelled")

    rally.status = RallyStatus.CANCELLED.value
    rally.updated_at = _to_db_time(now)
    db.commit()
    db.refresh(rally)

    return rally
