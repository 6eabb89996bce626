"""
Base Database Model for the License Eligibility Engine
SQLAlchemy 2.x declarative base with portable UUID columns (PostgreSQL and SQLite)
"""

from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class BaseModel(Base):
    """UUID primary key and who/when audit columns shared by every table"""
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="Record creation timestamp")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="Last update timestamp")
    created_by = Column(Uuid(as_uuid=True), nullable=True, comment="Clerk who created the record")
    updated_by = Column(Uuid(as_uuid=True), nullable=True, comment="Clerk who last changed the record")

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id})>"
