from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents.models import DocumentSequence
from src.core.schools.scope import SchoolScope


class DocumentNumberGenerator:
    """
    Generates sequential reference numbers per school in format:
    PREFIX-SCHOOLCODE-YYYY-NNNNNN

    Examples:
        PAY-STMARYS-2026-000001
        PAY-GREENWOOD-2026-000042
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(self, prefix: str, scope: SchoolScope, year: int | None = None) -> str:
        """
        Generate next reference number for given school, prefix and year.

        Uses SELECT FOR UPDATE so concurrent payments never share a number.
        """
        if year is None:
            year = date.today().year

        stmt = (
            select(DocumentSequence)
            .where(
                DocumentSequence.school_id == scope.school_id,
                DocumentSequence.prefix == prefix,
                DocumentSequence.year == year,
            )
            .with_for_update()
        )
        sequence = (await self.session.execute(stmt)).scalar_one_or_none()

        if sequence is None:
            sequence = DocumentSequence(
                school_id=scope.school_id, prefix=prefix, year=year, last_number=0
            )
            self.session.add(sequence)
            await self.session.flush()

            # Re-fetch with lock
            sequence = (await self.session.execute(stmt)).scalar_one()

        sequence.last_number += 1
        await self.session.flush()

        return f"{prefix}-{scope.code}-{year}-{sequence.last_number:06d}"


async def get_document_number(
    session: AsyncSession, prefix: str, scope: SchoolScope, year: int | None = None
) -> str:
    """Convenience function to generate a reference number."""
    return await DocumentNumberGenerator(session).generate(prefix, scope, year)
