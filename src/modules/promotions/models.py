"""Scheduled year-end promotion configuration."""

from datetime import date, datetime
from enum import StrEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel, SchoolOwnedMixin


class PromotionStatus(StrEnum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class AcademicYearConfig(SchoolOwnedMixin, BaseModel):
    """
    End-of-year date and promotion parameters for one school and academic year.

    The daily scheduler runs every active SCHEDULED config whose
    end_of_year_date has passed.
    """

    __tablename__ = "academic_year_configs"

    academic_year: Mapped[int] = mapped_column(Integer, nullable=False)
    end_of_year_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    next_year: Mapped[int] = mapped_column(Integer, nullable=False)
    next_term: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    carry_forward_balances: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # grade -> fee structure dict
    fee_structures: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    default_fee_structure: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )

    promotion_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PromotionStatus.SCHEDULED.value, index=True
    )
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    students_promoted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    students_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    promotion_errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("school_id", "academic_year", name="uq_academic_year_config_school_year"),
    )

    @property
    def is_scheduled(self) -> bool:
        return self.promotion_status == PromotionStatus.SCHEDULED.value

    def is_due(self, today: date) -> bool:
        return self.is_active and self.is_scheduled and self.end_of_year_date <= today

    def _append_note(self, text: str) -> None:
        self.notes = f"{self.notes}\n{text}" if self.notes else text

    def mark_in_progress(self) -> None:
        self.promotion_status = PromotionStatus.IN_PROGRESS.value

    def mark_completed(self, promoted: int, completed: int, errors: int) -> None:
        self.promotion_status = PromotionStatus.COMPLETED.value
        self.executed_at = datetime.now().astimezone()
        self.students_promoted = promoted
        self.students_completed = completed
        self.promotion_errors = errors

    def mark_failed(self, error_message: str) -> None:
        self.promotion_status = PromotionStatus.FAILED.value
        self.executed_at = datetime.now().astimezone()
        self._append_note(f"FAILED: {error_message}")

    def cancel(self, reason: str) -> None:
        self.promotion_status = PromotionStatus.CANCELLED.value
        self._append_note(f"CANCELLED: {reason}")
