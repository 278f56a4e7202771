"""Refund request and refund status history model definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class RefundStatus(str, Enum):
    """Refund request lifecycle status."""
    REQUESTED = "requested"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    WITHDRAWN = "withdrawn"


ACTIVE_REFUND_STATUSES = frozenset({
    RefundStatus.REQUESTED.value,
    RefundStatus.UNDER_REVIEW.value,
    RefundStatus.APPROVED.value,
    RefundStatus.PROCESSING.value,
})


class RefundItemStatus(str, Enum):
    """Status of one payment's share of a refund."""
    PENDING = "pending"
    MANUAL_PENDING = "manual_pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundRequest(Base):
    """A guest claim against money paid on a booking."""

    __tablename__ = "refund_requests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Amounts in minor units
    requested_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    suggested_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RefundStatus.REQUESTED.value, index=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    cancellation_policy: Mapped[str] = mapped_column(String(20), nullable=False, default="moderate")

    # [{"payment_id", "method", "amount", "status", "gateway_refund_id",
    #   "refund_reference", "processed_at", "error_message"}, ...]
    refund_breakdown: Mapped[list | None] = mapped_column(JSON, nullable=True)

    requested_by: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    reviewed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    auto_process_failed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="ck_refund_requested_positive"),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount > 0", name="ck_refund_approved_positive"
        ),
        CheckConstraint("refunded_amount >= 0", name="ck_refund_refunded_non_negative"),
        CheckConstraint("length(reason) > 0", name="ck_refund_reason_not_empty"),
    )

    history: Mapped[list["RefundStatusHistory"]] = relationship(
        "RefundStatusHistory",
        back_populates="refund_request",
        cascade="all, delete-orphan",
        order_by="RefundStatusHistory.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<RefundRequest(id={self.id}, booking_id={self.booking_id}, "
            f"status={self.status}, requested={self.requested_amount})>"
        )


class RefundStatusHistory(Base):
    """One recorded transition of a refund request."""

    __tablename__ = "refund_status_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    refund_request_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("refund_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    refund_request: Mapped["RefundRequest"] = relationship("RefundRequest", back_populates="history")
