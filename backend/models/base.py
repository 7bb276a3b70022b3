"""Base model utilities for SQLAlchemy."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Uuid

from database.base import Base
from utils.time_utils import utcnow


class TimestampMixin:
    """Mixin that adds created_at and updated_at fields to models."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When the record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="When the record was last updated"
    )


class UUIDMixin:
    """Mixin that adds UUID primary key."""

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
        comment="Unique identifier"
    )


class BaseModel(UUIDMixin, TimestampMixin, Base):
    """
    Base model class for all round engine tables.

    Provides:
    - UUID primary key
    - Automatic timestamps (created_at, updated_at)
    """
    __abstract__ = True
