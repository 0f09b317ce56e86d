"""
SQLAlchemy models for owned phone numbers.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from numberops.shared.database import Base
from numberops.shared.exceptions import InvalidStatusTransitionError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PhoneNumberStatus(str, Enum):
    """Ownership record lifecycle state."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


# Forward-only; inactive is terminal and precedes deletion.
ALLOWED_STATUS_TRANSITIONS: dict[PhoneNumberStatus, frozenset[PhoneNumberStatus]] = {
    PhoneNumberStatus.PENDING: frozenset({PhoneNumberStatus.ACTIVE}),
    PhoneNumberStatus.ACTIVE: frozenset({PhoneNumberStatus.INACTIVE}),
    PhoneNumberStatus.INACTIVE: frozenset(),
}


class OwnedNumber(Base):
    """A phone number purchased by this account."""

    __tablename__ = "owned_phone_numbers"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
    )
    country: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
    )
    friendly_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    number_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="local",
    )
    capabilities: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    provider_sid: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    status: Mapped[PhoneNumberStatus] = mapped_column(
        SQLEnum(
            PhoneNumberStatus,
            name="phone_number_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=PhoneNumberStatus.PENDING,
    )
    assigned_agent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
    )
    voice_ai_registration_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    is_test_account: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    @property
    def is_synced(self) -> bool:
        return self.voice_ai_registration_id is not None

    def transition_to(self, status: PhoneNumberStatus) -> None:
        """Move to ``status`` or raise if the edge is not allowed."""
        if status not in ALLOWED_STATUS_TRANSITIONS[self.status]:
            raise InvalidStatusTransitionError(
                message=f"Cannot move phone number from {self.status.value} to {status.value}",
                details={"owned_number_id": str(self.id), "from": self.status.value, "to": status.value},
            )
        self.status = status

    def __repr__(self) -> str:
        return f"<OwnedNumber(id={self.id}, number={self.number}, status={self.status})>"
