"""
Database table definitions using SQLAlchemy.

Each session document is stored whole as JSON, alongside its campaign id
(for listing by campaign) and a revision counter for optimistic concurrency.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord(Base):
    """
    Session table.

    Attributes:
        session_id: Session identifier (UUID-class string)
        campaign_id: Copy of ``session.campaign_id`` for filtering
        document: Complete validated session document
        revision: Incremented on every write
        created_at: When the session was first stored
        updated_at: When the session was last written
    """

    __tablename__ = "pokedm_sessions"

    session_id = Column(String, primary_key=True)
    campaign_id = Column(String, nullable=False, default="", index=True)
    document = Column(JSON, nullable=False)
    revision = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
