"""Declarative base and shared column mixins."""

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

from upkeep.utils.clock import utcnow

Base = declarative_base()


class TimestampMixin:
    """Adds created_at / updated_at columns maintained on insert and update."""

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
