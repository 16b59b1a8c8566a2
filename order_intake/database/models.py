"""SQLAlchemy models for the case store."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, TIMESTAMP, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_intake.core.database import Base


class OrderCaseRecord(Base):
    """Current projection of an order case.

    Rows are created on upload and never deleted; every mutation is also
    appended to ``case_events``.
    """

    __tablename__ = "order_cases"

    case_id: Mapped[str] = mapped_column(String, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    correlation_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="storing_file"
    )  # storing_file | parsing | running_committee | ... | completed | failed | cancelled
    current_step: Mapped[str | None] = mapped_column(String, nullable=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    file_blob_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    file_sha256: Mapped[str | None] = mapped_column(String, nullable=True)
    order_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    zoho_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    zoho_order_number: Mapped[str | None] = mapped_column(String, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )

    events: Mapped[list["CaseEventRecord"]] = relationship(
        "CaseEventRecord", back_populates="case", order_by="CaseEventRecord.sequence"
    )


class CaseEventRecord(Base):
    """Append-only audit entry for a case."""

    __tablename__ = "case_events"
    __table_args__ = (
        Index("ix_case_events_case_sequence", "case_id", "sequence", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    case_id: Mapped[str] = mapped_column(
        String, ForeignKey("order_cases.case_id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    actor: Mapped[str | None] = mapped_column(String, nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String, nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )

    case: Mapped["OrderCaseRecord"] = relationship("OrderCaseRecord", back_populates="events")


class FingerprintRecord(Base):
    """Idempotency fingerprint guarding draft order creation."""

    __tablename__ = "order_fingerprints"

    fingerprint: Mapped[str] = mapped_column(String, primary_key=True)
    case_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="in_flight"
    )  # in_flight | created | queued | abandoned
    zoho_order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    zoho_order_number: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
