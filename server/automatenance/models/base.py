"""Declarative base and shared column mixins."""

import uuid

from sqlalchemy import Column, DateTime, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """Generate a string UUID primary key."""
    return str(uuid.uuid4())


class TimestampMixin:
    """Adds created_at / updated_at columns maintained by the database."""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
