"""Read-mostly access to the student directory."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import NotFoundError, ValidationError
from src.core.schools.scope import SchoolScope
from src.modules.students.models import Student


class StudentDirectory:
    """Student lookups scoped to one school."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_student(self, scope: SchoolScope, student_id: int) -> Student:
        result = await self.db.execute(
            select(Student).where(
                Student.id == student_id,
                Student.school_id == scope.school_id,
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise NotFoundError("Student", student_id)
        return student

    async def get_by_ref(self, scope: SchoolScope, student_ref: str) -> Student:
        """Get student by school-issued reference (admission number)."""
        ref = (student_ref or "").strip()
        if not ref:
            raise ValidationError("Student reference is required", field="student_ref")
        result = await self.db.execute(
            select(Student).where(
                Student.student_ref == ref,
                Student.school_id == scope.school_id,
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise NotFoundError(f"Student {ref}")
        return student

    async def list_promotable(self, scope: SchoolScope) -> list[Student]:
        """Active, not completed students that have a grade, in a stable order."""
        result = await self.db.execute(
            select(Student)
            .where(
                Student.school_id == scope.school_id,
                Student.is_active == True,  # noqa: E712
                Student.completion_status.is_(None),
                Student.grade.is_not(None),
            )
            .order_by(Student.id)
        )
        return list(result.scalars().all())
