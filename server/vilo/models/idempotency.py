"""Idempotency record model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class IdempotencyRecord(Base):
    """Stored response of a mutating request, replayed for retries with the same key."""

    __tablename__ = "idempotency_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Operation name plus caller, e.g. "bookings.create:<user id>"
    scope: Mapped[str] = mapped_column(String(150), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    response_status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    response_body: Mapped[str] = mapped_column(Text, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("length(idempotency_key) > 0", name="ck_idempotency_key_not_empty"),
        CheckConstraint("length(request_hash) = 64", name="ck_idempotency_hash_length"),
        UniqueConstraint("idempotency_key", "scope", name="uq_idempotency_key_scope"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecord(key='{self.idempotency_key}', scope='{self.scope}', "
            f"status={self.response_status_code}, expires_at={self.expires_at})>"
        )
