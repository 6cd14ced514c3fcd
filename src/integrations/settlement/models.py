"""Settlement switch submissions, one row per attempt."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK


class SettlementLogStatus(StrEnum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


class SettlementTransactionLog(Base):
    __tablename__ = "settlement_transaction_logs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    school_id: Mapped[int] = mapped_column(BigIntPK, nullable=False, index=True)
    payment_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    request_payload: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    narration: Mapped[str | None] = mapped_column(String(255), nullable=True)
    txn_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    offset_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    response_payload: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    http_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    response_message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    settlement_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementLogStatus.PENDING.value, index=True
    )
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def mark(
        self,
        status: SettlementLogStatus,
        *,
        duration_ms: int,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.status = status.value
        self.duration_ms = duration_ms
        self.responded_at = datetime.now().astimezone()
        if error_code:
            self.error_code = error_code
        if error_message:
            self.error_message = error_message[:2000]
