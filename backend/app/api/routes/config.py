"""
Configuration API endpoints.

Provides access to server configuration for clients.
"""

from fastapi import APIRouter
from typing import Dict, Any

from app.config import get_settings
from app.core.lifecycle import COMPLETION_GRACE, LIFECYCLE_STATUSES, STATUS_LABELS

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/lifecycle")
async def get_lifecycle_config() -> Dict[str, Any]:
    """
    Get rally lifecycle parameters.

    Lets the frontend compute the same status the server will assign,
    and show the same labels.

    Returns:
        dict: Lifecycle configuration
    """
    settings = get_settings()

    return {
        "COMPLETION_GRACE_SECONDS": int(COMPLETION_GRACE.total_seconds()),
        "LIFECYCLE_STATUSES": [status.value for status in LIFECYCLE_STATUSES],
        "STATUS_LABELS": {status.value: label for status, label in STATUS_LABELS.items()},
        "PREVIEW_LIMIT": settings.lifecycle.PREVIEW_LIMIT,
        "CRON_AUTH_REQUIRED": bool(settings.cron.SECRET_TOKEN),
    }
