"""Explicit tenant scope passed to every ledger, payment and promotion call."""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.exceptions import NotFoundError, ValidationError
from src.core.schools.models import School


@dataclass(frozen=True)
class SchoolScope:
    """Immutable snapshot of the current school context."""

    school_id: int
    code: str
    name: str
    school_type: str
    collection_account: str | None = None
    branch_code: str | None = None
    continue_to_a_level: bool = False
    actor: str = "SYSTEM"

    @classmethod
    def from_school(cls, school: School, actor: str = "SYSTEM") -> "SchoolScope":
        return cls(
            school_id=school.id,
            code=school.code,
            name=school.name,
            school_type=school.school_type,
            collection_account=school.collection_account,
            branch_code=school.branch_code,
            continue_to_a_level=school.continue_to_a_level,
            actor=actor,
        )


async def load_scope(db: AsyncSession, school_code: str, actor: str = "SYSTEM") -> SchoolScope:
    """Resolve an active school by code."""
    code = (school_code or "").strip().upper()
    if not code:
        raise ValidationError("School code is required", field="school_code")
    school = await db.scalar(select(School).where(School.code == code))
    if school is None or not school.is_active:
        raise NotFoundError(f"School {code}")
    return SchoolScope.from_school(school, actor=actor)


async def get_school_scope(
    x_school_code: Annotated[str | None, Header()] = None,
    x_actor: Annotated[str | None, Header()] = None,
    db: AsyncSession = Depends(get_db),
) -> SchoolScope:
    """
    Dependency resolving the tenant from the X-School-Code header.

    Usage:
        @router.get("/fee-records")
        async def list_records(scope: CurrentScope): ...
    """
    if not x_school_code:
        raise ValidationError("X-School-Code header required", field="X-School-Code")
    return await load_scope(db, x_school_code, actor=x_actor or "SYSTEM")


CurrentScope = Annotated[SchoolScope, Depends(get_school_scope)]
