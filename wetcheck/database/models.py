"""
SQLAlchemy ORM model for schemaless documents.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """One JSON document in a named collection."""
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    document_id = Column(String, primary_key=True)
    body = Column(JSON, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

