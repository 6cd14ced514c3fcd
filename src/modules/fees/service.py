"""Service for Fees module."""

import logging
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import DuplicateError, NotFoundError, ValidationError
from src.core.schools.scope import SchoolScope
from src.modules.fees import ledger
from src.modules.fees.models import (
    ACTIVE_PERIOD_INDEX,
    FeeCategory,
    FeeRecord,
    PaymentStatusClass,
)
from src.modules.fees.schemas import (
    BulkFeeAssignment,
    BulkFeeAssignmentResult,
    CollectionSummary,
    DiscountApply,
    FeeComponents,
    FeeRecordCreate,
    FeeRecordFilters,
    FeeRecordUpdate,
)
from src.modules.students.models import Student
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)


def _period(record: FeeRecord) -> str:
    return f"{record.year}/T{record.term}/{record.currency}"


def _snapshot(record: FeeRecord) -> dict[str, str]:
    return {
        "gross_amount": str(record.gross_amount),
        "net_amount": str(record.net_amount),
        "outstanding_balance": str(record.outstanding_balance),
        "payment_status": record.payment_status,
    }


def _is_active_period_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    # SQLite names the columns, PostgreSQL names the index
    return ACTIVE_PERIOD_INDEX in message or (
        "unique" in message and "fee_records.student_id" in message
    )


class FeeRecordService:
    """Fee record assignment, discounts and lookups for one school at a time."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.students = StudentDirectory(db)

    # --- Creation ---

    async def add_fee_record(
        self,
        scope: SchoolScope,
        student: Student,
        *,
        year: int,
        term: int,
        currency: str,
        components: FeeComponents,
        fee_category: str = FeeCategory.STANDARD.value,
        previous_balance: Decimal = Decimal("0.00"),
        scholarship_amount: Decimal = Decimal("0.00"),
        sibling_discount: Decimal = Decimal("0.00"),
        early_payment_discount: Decimal = Decimal("0.00"),
        bursar_notes: str | None = None,
    ) -> FeeRecord:
        """
        Insert a new active fee record (flush only, caller commits).

        Raises DuplicateError if the student already has an active record for
        the same year, term and currency.
        """
        if student.school_id != scope.school_id:
            raise NotFoundError("Student", student.id)
        currency = (currency or "").upper()
        period = f"{student.student_ref} {year}/T{term}/{currency}"
        existing = await self._find_active(scope, student.id, year, term, currency)
        if existing is not None:
            raise DuplicateError("Active fee record", "period", period)

        record = FeeRecord(
            school_id=scope.school_id,
            student_id=student.id,
            year=year,
            term=term,
            currency=currency,
            fee_category=str(fee_category),
            tuition_fee=components.tuition_fee,
            boarding_fee=components.boarding_fee,
            development_levy=components.development_levy,
            exam_fee=components.exam_fee,
            other_fees=components.other_fees,
            scholarship_amount=scholarship_amount,
            sibling_discount=sibling_discount,
            early_payment_discount=early_payment_discount,
            previous_balance=round_money(previous_balance),
            amount_paid=Decimal("0.00"),
            bursar_notes=bursar_notes,
            is_active=True,
        )
        ledger.recompute(record)
        # A concurrent insert for the same period loses on the unique index
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError as exc:
            if not _is_active_period_conflict(exc):
                raise
            logger.warning("Concurrent fee record insert for %s rejected", period)
            raise DuplicateError("Active fee record", "period", period) from exc

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="FeeRecord",
            entity_id=record.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=f"{student.student_ref} {_period(record)}",
            new_values=_snapshot(record),
        )
        return record

    async def create_fee_record(self, scope: SchoolScope, data: FeeRecordCreate) -> FeeRecord:
        student = await self.students.get_student(scope, data.student_id)
        record = await self.add_fee_record(
            scope,
            student,
            year=data.year,
            term=data.term,
            currency=data.currency,
            components=data,
            fee_category=data.fee_category.value,
            previous_balance=data.previous_balance,
            scholarship_amount=data.scholarship_amount,
            sibling_discount=data.sibling_discount,
            early_payment_discount=data.early_payment_discount,
            bursar_notes=data.bursar_notes,
        )
        await self.db.commit()
        logger.info(
            "Fee record %s created for %s (%s)", record.id, student.student_ref, _period(record)
        )
        return await self.get_fee_record(scope, record.id)

    # --- Lookups ---

    async def get_fee_record(self, scope: SchoolScope, record_id: int) -> FeeRecord:
        result = await self.db.execute(
            select(FeeRecord).where(
                FeeRecord.id == record_id,
                FeeRecord.school_id == scope.school_id,
            )
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFoundError("Fee record", record_id)
        return record

    async def get_for_update(self, scope: SchoolScope, record_id: int) -> FeeRecord:
        """Load a fee record with a row lock. Every mutation path goes through here."""
        result = await self.db.execute(
            select(FeeRecord)
            .where(FeeRecord.id == record_id, FeeRecord.school_id == scope.school_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFoundError("Fee record", record_id)
        return record

    async def _find_active(
        self,
        scope: SchoolScope,
        student_id: int,
        year: int,
        term: int,
        currency: str,
    ) -> FeeRecord | None:
        result = await self.db.execute(
            select(FeeRecord).where(
                FeeRecord.school_id == scope.school_id,
                FeeRecord.student_id == student_id,
                FeeRecord.year == year,
                FeeRecord.term == term,
                FeeRecord.currency == currency,
                FeeRecord.is_active == True,  # noqa: E712
            )
        )
        return result.scalars().first()

    async def find_active_for_term(
        self,
        scope: SchoolScope,
        student_id: int,
        year: int,
        term: int,
        lock: bool = False,
    ) -> list[FeeRecord]:
        """Active records of a student for (year, term), any currency."""
        query = (
            select(FeeRecord)
            .where(
                FeeRecord.school_id == scope.school_id,
                FeeRecord.student_id == student_id,
                FeeRecord.year == year,
                FeeRecord.term == term,
                FeeRecord.is_active == True,  # noqa: E712
            )
            .order_by(FeeRecord.id)
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_latest_active(self, scope: SchoolScope, student_id: int) -> FeeRecord | None:
        """Most recent active record (by year, term, id) or None."""
        result = await self.db.execute(
            select(FeeRecord)
            .where(
                FeeRecord.school_id == scope.school_id,
                FeeRecord.student_id == student_id,
                FeeRecord.is_active == True,  # noqa: E712
            )
            .order_by(FeeRecord.year.desc(), FeeRecord.term.desc(), FeeRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_fee_records(
        self, scope: SchoolScope, filters: FeeRecordFilters
    ) -> tuple[list[FeeRecord], int]:
        query = select(FeeRecord).where(FeeRecord.school_id == scope.school_id)

        if not filters.include_inactive:
            query = query.where(FeeRecord.is_active == True)  # noqa: E712
        if filters.student_id:
            query = query.where(FeeRecord.student_id == filters.student_id)
        if filters.year:
            query = query.where(FeeRecord.year == filters.year)
        if filters.term:
            query = query.where(FeeRecord.term == filters.term)
        if filters.currency:
            query = query.where(FeeRecord.currency == filters.currency.upper())
        if filters.payment_status:
            query = query.where(FeeRecord.payment_status == filters.payment_status.value)
        if filters.fee_category:
            query = query.where(FeeRecord.fee_category == filters.fee_category.value)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(FeeRecord.year.desc(), FeeRecord.term.desc(), FeeRecord.id.desc())
        query = query.offset((filters.page - 1) * filters.limit).limit(filters.limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # --- Mutations ---

    async def update_fee_record(
        self, scope: SchoolScope, record_id: int, data: FeeRecordUpdate
    ) -> FeeRecord:
        """Update components of an active record. amount_paid is never edited here."""
        record = await self.get_for_update(scope, record_id)
        if not record.is_active:
            raise ValidationError("Cannot update an inactive fee record")

        old_values = _snapshot(record)
        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if value is None:
                continue
            if field == "fee_category":
                value = FeeCategory(value).value
            setattr(record, field, value)
        ledger.recompute(record)

        await self.audit.log(
            action=AuditAction.UPDATE,
            entity_type="FeeRecord",
            entity_id=record.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=_period(record),
            old_values=old_values,
            new_values={**_snapshot(record), "changed": sorted(changes)},
        )
        await self.db.commit()
        return await self.get_fee_record(scope, record_id)

    async def apply_discount(
        self, scope: SchoolScope, record_id: int, data: DiscountApply
    ) -> FeeRecord:
        record = await self.get_for_update(scope, record_id)
        if not record.is_active:
            raise ValidationError("Cannot apply a discount to an inactive fee record")

        old_values = _snapshot(record)
        ledger.apply_discount(record, data.kind, data.amount)

        await self.audit.log(
            action=AuditAction.APPLY_DISCOUNT,
            entity_type="FeeRecord",
            entity_id=record.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=_period(record),
            old_values=old_values,
            new_values={**_snapshot(record), "kind": data.kind.value, "amount": str(data.amount)},
            comment=data.reason,
        )
        await self.db.commit()
        logger.info("%s discount of %s applied to fee record %s", data.kind, data.amount, record_id)
        return await self.get_fee_record(scope, record_id)

    async def deactivate_fee_record(
        self, scope: SchoolScope, record_id: int, reason: str | None = None
    ) -> FeeRecord:
        """Soft delete. The row and its payment history are kept."""
        record = await self.get_for_update(scope, record_id)
        if not record.is_active:
            raise ValidationError("Fee record is already inactive")

        record.is_active = False
        await self.audit.log(
            action=AuditAction.DEACTIVATE,
            entity_type="FeeRecord",
            entity_id=record.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=_period(record),
            old_values={"is_active": True},
            new_values={"is_active": False},
            comment=reason,
        )
        await self.db.commit()
        return await self.get_fee_record(scope, record_id)

    async def bulk_assign(
        self, scope: SchoolScope, data: BulkFeeAssignment
    ) -> BulkFeeAssignmentResult:
        """
        Assign fee components to every targeted student.

        Students that already hold an active record for the period get their
        components replaced (payments and discounts preserved); the rest get a
        new record. Inactive students are skipped.
        """
        query = select(Student).where(Student.school_id == scope.school_id)
        if data.grades:
            query = query.where(Student.grade.in_(data.grades))
        if data.class_name:
            query = query.where(Student.class_name == data.class_name)
        students = list((await self.db.execute(query.order_by(Student.id))).scalars().all())

        created = updated = skipped = 0
        record_ids: list[int] = []
        for student in students:
            if not student.is_active:
                skipped += 1
                continue

            existing = await self._find_active(
                scope, student.id, data.year, data.term, data.currency
            )
            if existing is not None:
                record = await self.get_for_update(scope, existing.id)
                for field in ledger.COMPONENT_FIELDS:
                    setattr(record, field, getattr(data, field))
                record.fee_category = data.fee_category.value
                ledger.recompute(record)
                updated += 1
            else:
                record = await self.add_fee_record(
                    scope,
                    student,
                    year=data.year,
                    term=data.term,
                    currency=data.currency,
                    components=data,
                    fee_category=data.fee_category.value,
                )
                created += 1
            record_ids.append(record.id)

        await self.db.commit()
        logger.info(
            "Bulk fee assignment for %s %s/T%s: %d created, %d updated, %d skipped",
            scope.code,
            data.year,
            data.term,
            created,
            updated,
            skipped,
        )
        return BulkFeeAssignmentResult(
            created=created, updated=updated, skipped_inactive=skipped, record_ids=record_ids
        )

    # --- Reporting ---

    async def collection_summary(
        self,
        scope: SchoolScope,
        currency: str,
        year: int | None = None,
        term: int | None = None,
    ) -> CollectionSummary:
        currency = currency.upper()
        query = select(
            func.count(FeeRecord.id),
            func.coalesce(func.sum(FeeRecord.gross_amount), 0),
            func.coalesce(func.sum(FeeRecord.scholarship_amount), 0),
            func.coalesce(func.sum(FeeRecord.amount_paid), 0),
            func.coalesce(func.sum(FeeRecord.outstanding_balance), 0),
            func.coalesce(func.sum(case((FeeRecord.payment_status == PaymentStatusClass.ARREARS.value, 1), else_=0)), 0),
            func.coalesce(func.sum(case((FeeRecord.payment_status == PaymentStatusClass.PARTIALLY_PAID.value, 1), else_=0)), 0),
            func.coalesce(func.sum(case((FeeRecord.payment_status == PaymentStatusClass.PAID.value, 1), else_=0)), 0),
        ).where(
            FeeRecord.school_id == scope.school_id,
            FeeRecord.currency == currency,
            FeeRecord.is_active == True,  # noqa: E712
        )
        if year:
            query = query.where(FeeRecord.year == year)
        if term:
            query = query.where(FeeRecord.term == term)

        row = (await self.db.execute(query)).one()
        count, gross, scholarships, collected, outstanding, arrears, partial, paid = row
        gross = round_money(gross)
        collected = round_money(collected)
        rate = round_money(collected * 100 / gross) if gross > 0 else Decimal("0.00")

        return CollectionSummary(
            currency=currency,
            record_count=count,
            total_gross=gross,
            total_scholarships=round_money(scholarships),
            total_collected=collected,
            total_outstanding=round_money(outstanding),
            collection_rate=rate,
            arrears_count=int(arrears),
            partially_paid_count=int(partial),
            paid_count=int(paid),
        )
