"""
Health check endpoints.

Provides basic health and status information about the server.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.database import get_db
from app.config import get_settings
from app.core.lifecycle import utc_now

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)) -> dict:
    """
    Basic health check endpoint.

    Returns:
        dict: Server status information including version and database state.

    Example response:
        {
            "status": "healthy",
            "app_name": "RallyDesk",
            "version": "0.1.0",
            "timestamp": "2026-10-18T23:00:00+00:00",
            "database": "connected"
        }
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": utc_now().isoformat(),
        "database": db_status,
    }


@router.get("/health/ready")
async def readiness_check(db: Session = Depends(get_db)) -> dict:
    """
    Readiness check for the service.

    The service is ready once the rallies table can be queried, since
    both status update triggers depend on it.

    Returns:
        dict: Readiness status.
    """
    try:
        db.execute(text("SELECT COUNT(*) FROM rallies"))
        return {
            "ready": True,
            "checks": {
                "database": "ok"
            }
        }
    except SQLAlchemyError as e:
        return {
            "ready": False,
            "checks": {
                "database": f"failed: {str(e)}"
            }
        }
