"""School (tenant) model."""

from enum import StrEnum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BaseModel


class SchoolType(StrEnum):
    """Academic track of a school. Drives the progression table."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    COMBINED = "COMBINED"


class School(BaseModel):
    """
    Tenant. Every fee record, payment and student belongs to exactly one school.

    Onboarding and profile management live outside this service; the fields here
    are the ones the ledger, settlement and promotion code need.
    """

    __tablename__ = "schools"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    school_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SchoolType.PRIMARY.value
    )

    # Credit side of bank-channel settlements
    collection_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    branch_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Form 4 students continue to Form 5 instead of completing O-level
    continue_to_a_level: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
