"""
Rally store used by the lifecycle reconciler.

The reconciler only needs two capabilities from persistence: list the
active rallies and overwrite one rally's status. ``RallyStore`` describes
that contract and ``SQLAlchemyRallyStore`` implements it on top of the
``rallies`` table.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.lifecycle import RallyStatus, as_utc
from app.models.rally import Rally

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the rally store cannot complete a read or write."""
    pass


@dataclass(frozen=True)
class RallySnapshot:
    """Fields of a rally the lifecycle engine reads."""
    id: int
    name: str
    competition_date: datetime
    registration_deadline: datetime
    status: str


class RallyStore(ABC):
    """Persistence capability consumed by the reconciler."""

    @abstractmethod
    def list_active_rallies(self) -> List[RallySnapshot]:
        """
        Return every rally with ``is_active`` set, newest competition first.

        Raises:
            StoreError: If the rallies cannot be fetched
        """

    @abstractmethod
    def update_rally_status(
        self,
        rally_id: int,
        new_status: RallyStatus,
        updated_at: datetime
    ) -> None:
        """
        Overwrite the status of a single rally.

        Raises:
            StoreError: If the write fails or no rally matches ``rally_id``
        """


class SQLAlchemyRallyStore(RallyStore):
    """Rally store backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_active_rallies(self) -> List[RallySnapshot]:
        try:
            rows = (
                self.db.query(Rally)
                .filter(Rally.is_active.is_(True))
                .order_by(Rally.competition_date.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch active rallies: {str(e)}")
            raise StoreError(f"Failed to fetch rallies: {str(e)}") from e

        return [
            RallySnapshot(
                id=row.id,
                name=row.name,
                competition_date=row.competition_date,
                registration_deadline=row.registration_deadline,
                status=row.status,
            )
            for row in rows
        ]

    def update_rally_status(
        self,
        rally_id: int,
        new_status: RallyStatus,
        updated_at: datetime
    ) -> None:
        # Stored timestamps are naive UTC
        naive_updated_at = as_utc(updated_at).replace(tzinfo=None)

        try:
            matched = (
                self.db.query(Rally)
                .filter(Rally.id == rally_id)
                .update(
                    {
                        Rally.status: RallyStatus(new_status).value,
                        Rally.updated_at: naive_updated_at,
                    },
                    synchronize_session=False,
                )
            )
            if matched == 0:
                self.db.rollback()
                raise StoreError(f"Rally {rally_id} not found")
            self.db.commit()
        except SQLAlchemyError as e:
            # Keep the session usable for the remaining rallies
            self.db.rollback()
            raise StoreError(f"Failed to update rally {rally_id}: {str(e)}") from e
