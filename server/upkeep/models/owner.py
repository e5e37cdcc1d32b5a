"""Owner model."""

import re

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship, validates

from upkeep.models.base import Base, TimestampMixin


class Owner(Base, TimestampMixin):
    """Vehicle owner as seen by the reminder engine.

    Identity and authentication live elsewhere; the engine only needs a stable
    id for ownership scoping and the contact details notification channels
    deliver to.
    """

    __tablename__ = "owners"

    # Primary Identity
    id = Column(Integer, primary_key=True, index=True)

    # Contact Information
    email = Column(String(255), unique=True, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    push_token = Column(String(255))  # Device token handed to the push relay

    # Relationships
    vehicles = relationship("Vehicle", back_populates="owner", cascade="all, delete-orphan")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    @validates("email")
    def validate_email(self, key, value):
        """Validate email format and normalize to lowercase."""
        if not value:
            return value

        value = value.lower()

        if len(value) > 255:
            raise ValueError(f"Email must be <= 255 characters, got {len(value)}")

        email_pattern = (
            r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?@[a-z0-9]([a-z0-9.-]*[a-z0-9])?\.[a-z]{2,}$"
        )
        if not re.match(email_pattern, value):
            raise ValueError(f"Invalid email format: {value}")

        return value

    def __repr__(self):
        return f"<Owner(id={self.id}, name='{self.first_name} {self.last_name}', email='{self.email}')>"
