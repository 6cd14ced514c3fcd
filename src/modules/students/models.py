"""Student model."""

from enum import StrEnum

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel, SchoolOwnedMixin


class CompletionStatus(StrEnum):
    """Terminal academic status reached instead of a further grade."""

    COMPLETED_PRIMARY = "COMPLETED_PRIMARY"
    COMPLETED_O_LEVEL = "COMPLETED_O_LEVEL"
    COMPLETED_A_LEVEL = "COMPLETED_A_LEVEL"


class Student(SchoolOwnedMixin, BaseModel):
    """
    Student enrolled in a school.

    Registration and guardian details are maintained by the student directory;
    the fee core only reads identity and changes grade/completion on promotion.
    """

    __tablename__ = "students"

    student_ref: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)  # "Grade 3", "Form 4"
    class_name: Mapped[str | None] = mapped_column(String(50), nullable=True)

    completion_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("school_id", "student_ref", name="uq_students_school_ref"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def has_completed(self) -> bool:
        return self.completion_status is not None
