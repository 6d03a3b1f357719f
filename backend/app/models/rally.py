"""
Rally model for scheduled racing competitions.

A rally has a registration window that ends at ``registration_deadline``
and a competition that starts at ``competition_date``. Its ``status`` is
kept in step with the clock by the lifecycle reconciler.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from datetime import datetime

from app.database import Base


class Rally(Base):
    """
    Rally model for persisting competition events.

    Attributes:
        id: Primary key
        name: Rally display name
        description: Optional free-form description
        competition_date: When the competition starts (naive UTC)
        registration_deadline: Last moment registration is accepted (naive UTC)
        max_participants: Optional participant cap
        status: Lifecycle status (see app.core.lifecycle.RallyStatus)
        is_active: Whether the rally takes part in status reconciliation
        is_featured: Highlighted on the landing page
        created_at: Rally creation timestamp
        updated_at: Last modification timestamp
    """
    __tablename__ = "rallies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    competition_date = Column(DateTime, nullable=False, index=True)
    registration_deadline = Column(DateTime, nullable=False)
    max_participants = Column(Integer, nullable=True)
    status = Column(String(30), nullable=False, default="upcoming")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Rally(id={self.id}, name='{self.name}', status='{self.status}')>"
