"""
Rally API endpoints.

Provides rally management operations:
- Create rally
- List rallies (optionally by status)
- Get rally details
- Archive / restore a rally (is_active)
- Cancel a rally
"""

from datetime import datetime
from typing import Callable, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.lifecycle import (
    RallyStatus,
    as_utc,
    can_register,
    get_clock,
    is_finished,
    status_label,
)
from app.database import get_db
from app.models.rally import Rally
from app.services import rally_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rallies", tags=["rallies"])


# Request/Response models
class CreateRallyRequest(BaseModel):
    """Request model for rally creation."""
    name: str = Field(..., min_length=1, max_length=200, description="Rally display name")
    description: Optional[str] = Field(default=None, description="Rally description")
    competition_date: datetime = Field(..., description="Competition start (UTC if no offset given)")
    registration_deadline: datetime = Field(..., description="Registration close (UTC if no offset given)")
    max_participants: Optional[int] = Field(default=None, ge=1, description="Participant cap")
    is_featured: bool = Field(default=False, description="Highlight on the landing page")


class SetActiveRequest(BaseModel):
    """Request model for archiving or restoring a rally."""
    is_active: bool


class RallyResponse(BaseModel):
    """Response model for rally data."""
    id: int
    name: str
    description: Optional[str]
    competition_date: datetime
    registration_deadline: datetime
    max_participants: Optional[int]
    status: str
    status_label: str
    is_active: bool
    is_featured: bool
    can_register: bool
    is_finished: bool
    created_at: datetime
    updated_at: datetime


def _rally_to_response(rally: Rally, now: datetime) -> RallyResponse:
    """Convert a Rally row into a response with computed flags."""
    return RallyResponse(
        id=rally.id,
        name=rally.name,
        description=rally.description,
        competition_date=as_utc(rally.competition_date),
        registration_deadline=as_utc(rally.registration_deadline),
        max_participants=rally.max_participants,
        status=rally.status,
        status_label=status_label(rally.status),
        is_active=rally.is_active,
        is_featured=rally.is_featured,
        can_register=(
            rally.status != RallyStatus.CANCELLED.value
            and can_register(rally.competition_date, rally.registration_deadline, now)
        ),
        is_finished=is_finished(rally.competition_date, now),
        created_at=as_utc(rally.created_at),
        updated_at=as_utc(rally.updated_at),
    )


@router.post("", response_model=RallyResponse, status_code=201)
async def create_rally(
    request: CreateRallyRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Create a new rally.

    The initial status is computed from the dates at creation time.

    Raises:
        400: Invalid name or deadline after the competition date
    """
    now = clock()
    try:
        rally = rally_service.create_rally(
            db,
            name=request.name,
            competition_date=request.competition_date,
            registration_deadline=request.registration_deadline,
            now=now,
            description=request.description,
            max_participants=request.max_participants,
            is_featured=request.is_featured,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Created rally {rally.id}: '{rally.name}' ({rally.status})")
    return _rally_to_response(rally, now)


@router.get("", response_model=List[RallyResponse])
async def list_rallies(
    status: Optional[str] = Query(default=None, description="Filter by status"),
    active_only: bool = Query(default=False, description="Only rallies with is_active set"),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    List rallies, newest competition first.

    Raises:
        400: Unknown status filter
    """
    status_filter = None
    if status:
        try:
            status_filter = RallyStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in RallyStatus)
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status: {status}. Must be one of: {valid}"
            )

    now = clock()
    rallies = rally_service.list_rallies(db, status=status_filter, active_only=active_only)
    return [_rally_to_response(rally, now) for rally in rallies]


@router.get("/{rally_id}", response_model=RallyResponse)
async def get_rally(
    rally_id: int,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Get rally by ID.

    Raises:
        404: Rally not found
    """
    rally = rally_service.get_rally_by_id(db, rally_id)
    if not rally:
        raise HTTPException(status_code=404, detail="Rally not found")

    return _rally_to_response(rally, clock())


@router.patch("/{rally_id}/active", response_model=RallyResponse)
async def set_rally_active(
    rally_id: int,
    request: SetActiveRequest,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Archive or restore a rally. Archived rallies are ignored by status updates.

    Raises:
        404: Rally not found
    """
    now = clock()
    rally = rally_service.set_rally_active(db, rally_id, request.is_active, now)
    if not rally:
        raise HTTPException(status_code=404, detail="Rally not found")

    return _rally_to_response(rally, now)


@router.post("/{rally_id}/cancel", response_model=RallyResponse)
async def cancel_rally(
    rally_id: int,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Cancel a rally.

    Raises:
        400: Rally already completed
        404: Rally not found
    """
    now = clock()
    try:
        rally = rally_service.cancel_rally(db, rally_id, now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not rally:
        raise HTTPException(status_code=404, detail="Rally not found")

    logger.info(f"Cancelled rally {rally.id}: '{rally.name}'")
    return _rally_to_response(rally, now)
