"""
Rally status update endpoints.

Two triggers share the same reconciler:
- /cron/rally-status-update for an external scheduler (Vercel Cron, cPanel, ...)
- /rallies/update-statuses for an administrator pressing a button

Both answer 200 when every rally was handled, 207 when some rally updates
failed and 500 when the rallies could not be listed at all.
"""

from datetime import datetime
from typing import Callable, Optional
import logging

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.lifecycle import get_clock
from app.core.reconciler import (
    ReconcileOutcome,
    TransitionReport,
    preview_rally_statuses,
    reconcile_rally_statuses,
)
from app.database import get_db
from app.services.rally_store import SQLAlchemyRallyStore, StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_code(report: TransitionReport) -> int:
    # 207 Multi-Status when at least one rally failed to update
    if report.outcome is ReconcileOutcome.PARTIAL_FAILURE:
        return 207
    return 200


def _failure_response(error: str, details: str, now: datetime, source: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": error,
            "details": details,
            "timestamp": now.isoformat(),
            "source": source,
        },
    )


async def _run_cron_update(
    authorization: Optional[str],
    db: Session,
    clock: Callable[[], datetime],
    source: str
) -> JSONResponse:
    settings = get_settings()
    expected_token = settings.cron.SECRET_TOKEN

    if expected_token and authorization != f"Bearer {expected_token}":
        logger.warning("CRON: Unauthorized access attempt")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    now = clock()
    logger.info(f"CRON: Starting rally status update ({source})")

    try:
        report = reconcile_rally_statuses(SQLAlchemyRallyStore(db), now)
    except StoreError as e:
        logger.error(f"CRON: Rally status update failed: {str(e)}")
        return _failure_response("CRON rally status update failed", str(e), now, source)

    content = {"success": True, **report.to_dict(), "source": source}
    if report.total_evaluated == 0:
        content["message"] = "No rallies found"

    return JSONResponse(status_code=_status_code(report), content=content)


@router.get("/cron/rally-status-update", tags=["cron"])
async def cron_rally_status_update(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Scheduled rally status update.

    If CRON_SECRET_TOKEN is configured the caller must send it as a
    bearer token.

    Returns:
        Transition report (200 / 207), or an error body (401 / 500)
    """
    return await _run_cron_update(authorization, db, clock, source="cron")


@router.post("/cron/rally-status-update", tags=["cron"])
async def cron_rally_status_update_post(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """Same as GET, for schedulers that only send POST."""
    return await _run_cron_update(authorization, db, clock, source="cron")


@router.put("/cron/rally-status-update", tags=["cron"])
async def cron_rally_status_update_manual(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """Admin-triggered test run of the scheduled update."""
    logger.info("MANUAL: Admin triggered the cron rally status update")
    return await _run_cron_update(authorization, db, clock, source="cron-test")


@router.post("/rallies/update-statuses", tags=["rallies"])
async def update_rally_statuses(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Update every active rally's status right now.

    Returns:
        Transition report with a human-readable summary message (200 / 207),
        or an error body (500)
    """
    now = clock()
    logger.info("Starting manual rally status update")

    try:
        report = reconcile_rally_statuses(SQLAlchemyRallyStore(db), now)
    except StoreError as e:
        logger.error(f"Rally status update failed: {str(e)}")
        return _failure_response("Rally status update failed", str(e), now, "manual")

    content = {
        "success": True,
        "message": report.summary() if report.total_evaluated else "No rallies found",
        **report.to_dict(),
        "source": "manual",
    }
    return JSONResponse(status_code=_status_code(report), content=content)


@router.get("/rallies/update-statuses", tags=["rallies"])
async def preview_statuses(
    limit: Optional[int] = Query(default=None, ge=1, description="Maximum rallies to include"),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock)
):
    """
    Show stored versus expected status for active rallies without changing them.

    Args:
        limit: Maximum rallies to include (defaults to the configured preview limit)

    Returns:
        Per-rally status comparison and counts
    """
    settings = get_settings()
    if limit is None:
        limit = settings.lifecycle.PREVIEW_LIMIT
    limit = min(limit, settings.lifecycle.MAX_PREVIEW_LIMIT)

    now = clock()
    try:
        previews = preview_rally_statuses(SQLAlchemyRallyStore(db), now, limit=limit)
    except StoreError as e:
        logger.error(f"Rally status preview failed: {str(e)}")
        return _failure_response("Health check failed", str(e), now, "preview")

    return {
        "success": True,
        "total_rallies": len(previews),
        "rallies_needing_update": sum(1 for p in previews if p.needs_update),
        "rallies": [p.to_dict() for p in previews],
        "timestamp": now.isoformat(),
    }
