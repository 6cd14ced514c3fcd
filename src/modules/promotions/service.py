"""Year-end promotion engine and academic year configuration."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.audit.service import AuditAction, AuditService
from src.core.database import async_session
from src.core.exceptions import (
    AppException,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.core.notifications import notifications
from src.core.schools.models import School
from src.core.schools.scope import SchoolScope, load_scope
from src.modules.fees.service import FeeRecordService
from src.modules.promotions.models import AcademicYearConfig, PromotionStatus
from src.modules.promotions.progression import (
    get_next_level,
    is_valid_grade_for_school,
    normalize_grade,
)
from src.modules.promotions.schemas import (
    AcademicYearConfigCreate,
    CompletedStudent,
    DemotionRequest,
    DemotionResult,
    FeeStructure,
    GradePromotionStats,
    PromotionErrorDetail,
    PromotionRequest,
    PromotionSummary,
)
from src.modules.students.models import Student
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    student_id: int
    student_ref: str
    full_name: str
    grade: str
    outstanding_balance: Decimal


CohortSnapshot = tuple[SnapshotEntry, ...]


def _append_note(student: Student, text: str) -> None:
    student.notes = f"{student.notes}\n{text}" if student.notes else text


class PromotionEngine:
    """Moves a school's cohort to the next grade and bills the new term."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.students = StudentDirectory(db)
        self.fees = FeeRecordService(db)

    # --- Snapshot ---

    async def build_snapshot(
        self, scope: SchoolScope, excluded_ids: set[int] | None = None
    ) -> tuple[CohortSnapshot, int]:
        """
        Capture grade and outstanding balance of every promotable student.

        Returns the snapshot and the number of students left out because they
        were explicitly excluded.
        """
        excluded_ids = excluded_ids or set()
        entries: list[SnapshotEntry] = []
        excluded = 0
        for student in await self.students.list_promotable(scope):
            if student.id in excluded_ids:
                excluded += 1
                continue
            latest = await self.fees.get_latest_active(scope, student.id)
            outstanding = latest.outstanding_balance if latest is not None else Decimal("0.00")
            entries.append(
                SnapshotEntry(
                    student_id=student.id,
                    student_ref=student.student_ref,
                    full_name=student.full_name,
                    grade=student.grade,
                    outstanding_balance=round_money(outstanding),
                )
            )
        return tuple(entries), excluded

    # --- Promotion run ---

    @staticmethod
    def _fee_structure_for(
        request: PromotionRequest, grade: str
    ) -> FeeStructure | None:
        structure = request.fee_structures.get(grade)
        if structure is None:
            # Keys may be written loosely ("form 2"), match on the normalized name
            for key, value in request.fee_structures.items():
                if normalize_grade(key) == grade:
                    structure = value
                    break
        return structure or request.default_fee_structure

    async def _promote_entry(
        self,
        scope: SchoolScope,
        entry: SnapshotEntry,
        request: PromotionRequest,
        summary: PromotionSummary,
        stats: GradePromotionStats,
    ) -> None:
        """Process one snapshot entry. Raises on any failure; the caller rolls back."""
        # Decisions use the snapshot grade, never the live row.
        outcome = get_next_level(entry.grade, scope.school_type, scope.continue_to_a_level)
        student = await self.students.get_student(scope, entry.student_id)
        today = date.today().isoformat()

        if outcome.is_completed:
            student.completion_status = outcome.completion_status.value
            student.is_active = False
            _append_note(student, f"[{today}] {outcome.completion_status.value} from {entry.grade}")
            await self.db.flush()
            await self.audit.log(
                action=AuditAction.COMPLETE_STUDENT,
                entity_type="Student",
                entity_id=student.id,
                actor=scope.actor,
                school_id=scope.school_id,
                entity_identifier=entry.student_ref,
                old_values={"grade": entry.grade, "is_active": True},
                new_values={"completion_status": outcome.completion_status.value, "is_active": False},
            )
            stats.to_grade = stats.to_grade or outcome.completion_status.value
            summary.completed_students.append(
                CompletedStudent(
                    student_id=entry.student_id,
                    student_ref=entry.student_ref,
                    student_name=entry.full_name,
                    completion_status=outcome.completion_status.value,
                )
            )
            summary.completed_count += 1
            return

        new_grade = outcome.next_grade
        structure = self._fee_structure_for(request, new_grade)
        if structure is None:
            raise ValidationError(f"No fee structure for grade {new_grade}", field="fee_structures")

        student.grade = new_grade
        _append_note(
            student,
            f"[{today}] PROMOTED: {entry.grade} -> {new_grade} ({request.new_year} Term {request.new_term})",
        )
        # Flush inside the savepoint so a rollback also reverts the grade change
        await self.db.flush()
        previous_balance = (
            entry.outstanding_balance if request.carry_forward_balances else Decimal("0.00")
        )
        record = await self.fees.add_fee_record(
            scope,
            student,
            year=request.new_year,
            term=request.new_term,
            currency=request.currency,
            components=structure,
            fee_category=structure.fee_category.value,
            previous_balance=previous_balance,
            scholarship_amount=structure.default_scholarship,
            sibling_discount=structure.default_sibling_discount,
            bursar_notes=f"Auto-created on promotion from {entry.grade}",
        )
        await self.audit.log(
            action=AuditAction.PROMOTE_STUDENT,
            entity_type="Student",
            entity_id=student.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=entry.student_ref,
            old_values={"grade": entry.grade},
            new_values={"grade": new_grade, "fee_record_id": record.id},
        )
        stats.to_grade = new_grade
        summary.promoted_students.append(entry.student_ref)
        summary.fee_record_ids.append(record.id)
        summary.promoted_count += 1

    async def run_promotion(
        self, scope: SchoolScope, request: PromotionRequest
    ) -> PromotionSummary:
        """
        Promote every active student of the school one level.

        Each student is processed in its own SAVEPOINT. A failure rolls back
        that student only and is reported in the summary; the run carries on.
        """
        if request.new_year is None or request.new_term is None:
            raise ValidationError("new_year and new_term are required for a promotion run")
        if not 2000 <= request.new_year <= 2100:
            raise ValidationError(f"Invalid year: {request.new_year}", field="new_year")
        if not 1 <= request.new_term <= 3:
            raise ValidationError(f"Invalid term: {request.new_term}", field="new_term")

        snapshot, excluded = await self.build_snapshot(scope, set(request.excluded_student_ids))
        logger.info(
            "Promotion run for %s -> %s Term %s: %d students in snapshot, %d excluded",
            scope.code,
            request.new_year,
            request.new_term,
            len(snapshot),
            excluded,
        )

        summary = PromotionSummary(
            new_year=request.new_year,
            new_term=request.new_term,
            total_processed=len(snapshot),
            excluded_count=excluded,
        )

        for entry in snapshot:
            stats = summary.grade_breakdown.setdefault(
                entry.grade, GradePromotionStats(from_grade=entry.grade)
            )
            stats.student_count += 1
            try:
                async with self.db.begin_nested():
                    await self._promote_entry(scope, entry, request, summary, stats)
            except Exception as exc:
                message = exc.message if isinstance(exc, AppException) else str(exc)
                logger.warning(
                    "Promotion failed for %s (%s): %s", entry.student_ref, entry.grade, message
                )
                stats.error_count += 1
                summary.error_count += 1
                summary.errors.append(
                    PromotionErrorDetail(
                        student_id=entry.student_id,
                        student_ref=entry.student_ref,
                        student_name=entry.full_name,
                        grade=entry.grade,
                        error=message,
                    )
                )
            else:
                stats.success_count += 1

        summary.message = (
            "Year-end promotion complete for %s Term %s: %d students promoted, "
            "%d completed, %d errors"
            % (
                request.new_year,
                request.new_term,
                summary.promoted_count,
                summary.completed_count,
                summary.error_count,
            )
        )

        await self.audit.log(
            action=AuditAction.RUN_PROMOTION,
            entity_type="School",
            entity_id=scope.school_id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=scope.code,
            new_values={
                "new_year": request.new_year,
                "new_term": request.new_term,
                "promoted": summary.promoted_count,
                "completed": summary.completed_count,
                "excluded": summary.excluded_count,
                "errors": summary.error_count,
            },
            comment=request.notes,
        )
        await self.db.commit()

        if summary.error_count:
            logger.warning("%s: %s", scope.code, summary.message)
        else:
            logger.info("%s: %s", scope.code, summary.message)
        notifications.promotion_completed(scope.code, summary.message)
        return summary

    # --- Demotion ---

    async def demote_student(
        self, scope: SchoolScope, student_id: int, request: DemotionRequest
    ) -> DemotionResult:
        """Put a student back into a grade and create the fee record for that term."""
        student = await self.students.get_student(scope, student_id)
        new_grade = normalize_grade(request.grade)
        if not is_valid_grade_for_school(new_grade, scope.school_type):
            raise ValidationError(
                f"{request.grade} is not a grade of a {scope.school_type} school", field="grade"
            )
        old_grade = student.grade
        old_values = {
            "grade": old_grade,
            "class_name": student.class_name,
            "completion_status": student.completion_status,
            "is_active": student.is_active,
        }

        previous_balance = Decimal("0.00")
        if request.carry_forward_balance:
            latest = await self.fees.get_latest_active(scope, student.id)
            if latest is not None:
                previous_balance = latest.outstanding_balance

        student.grade = new_grade
        if request.class_name is not None:
            student.class_name = request.class_name
        student.completion_status = None
        student.is_active = True
        _append_note(
            student,
            f"[{date.today().isoformat()}] DEMOTION: {old_grade or '-'} -> {new_grade}. "
            f"Reason: {request.reason}",
        )

        structure = request.fee_structure
        record = await self.fees.add_fee_record(
            scope,
            student,
            year=request.year,
            term=request.term,
            currency=request.currency,
            components=structure,
            fee_category=structure.fee_category.value,
            previous_balance=previous_balance,
            scholarship_amount=structure.default_scholarship,
            sibling_discount=structure.default_sibling_discount,
            bursar_notes=f"Created on demotion from {old_grade or '-'}",
        )

        await self.audit.log(
            action=AuditAction.DEMOTE_STUDENT,
            entity_type="Student",
            entity_id=student.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=student.student_ref,
            old_values=old_values,
            new_values={
                "grade": new_grade,
                "class_name": student.class_name,
                "is_active": True,
                "fee_record_id": record.id,
            },
            comment=request.reason,
        )
        await self.db.commit()
        logger.info(
            "Student %s demoted %s -> %s (fee record %s)",
            student.student_ref,
            old_grade,
            new_grade,
            record.id,
        )

        return DemotionResult(
            student_id=student.id,
            student_ref=student.student_ref,
            grade=student.grade,
            class_name=student.class_name,
            is_active=student.is_active,
            completion_status=student.completion_status,
            notes=student.notes,
            fee_record_id=record.id,
            previous_balance=record.previous_balance,
            outstanding_balance=record.outstanding_balance,
        )

    # --- Academic year configuration ---

    async def get_config(self, scope: SchoolScope, config_id: int) -> AcademicYearConfig:
        result = await self.db.execute(
            select(AcademicYearConfig).where(
                AcademicYearConfig.id == config_id,
                AcademicYearConfig.school_id == scope.school_id,
            )
        )
        config = result.scalar_one_or_none()
        if not config:
            raise NotFoundError("Academic year config", config_id)
        return config

    async def list_configs(self, scope: SchoolScope) -> list[AcademicYearConfig]:
        result = await self.db.execute(
            select(AcademicYearConfig)
            .where(AcademicYearConfig.school_id == scope.school_id)
            .order_by(AcademicYearConfig.academic_year.desc())
        )
        return list(result.scalars().all())

    async def create_or_update_config(
        self, scope: SchoolScope, data: AcademicYearConfigCreate
    ) -> AcademicYearConfig:
        """Upsert the config of an academic year. Only SCHEDULED configs can change."""
        result = await self.db.execute(
            select(AcademicYearConfig).where(
                AcademicYearConfig.school_id == scope.school_id,
                AcademicYearConfig.academic_year == data.academic_year,
            )
        )
        config = result.scalar_one_or_none()

        values = {
            "end_of_year_date": data.end_of_year_date,
            "next_year": data.next_year or data.academic_year + 1,
            "next_term": data.next_term,
            "currency": data.currency,
            "carry_forward_balances": data.carry_forward_balances,
            "fee_structures": {
                grade: structure.model_dump(mode="json")
                for grade, structure in data.fee_structures.items()
            },
            "default_fee_structure": (
                data.default_fee_structure.model_dump(mode="json")
                if data.default_fee_structure
                else None
            ),
            "notes": data.notes,
            "is_active": data.is_active,
        }

        if config is None:
            config = AcademicYearConfig(
                school_id=scope.school_id,
                academic_year=data.academic_year,
                promotion_status=PromotionStatus.SCHEDULED.value,
                created_by=scope.actor,
                **values,
            )
            self.db.add(config)
            action = AuditAction.CREATE
        else:
            if not config.is_scheduled:
                raise ValidationError(
                    f"Cannot modify config for {config.academic_year}: "
                    f"promotion is {config.promotion_status}"
                )
            for field, value in values.items():
                setattr(config, field, value)
            action = AuditAction.UPDATE

        await self.db.flush()
        await self.audit.log(
            action=action,
            entity_type="AcademicYearConfig",
            entity_id=config.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=str(config.academic_year),
            new_values={
                "end_of_year_date": config.end_of_year_date.isoformat(),
                "next_year": config.next_year,
                "next_term": config.next_term,
            },
        )
        await self.db.commit()
        return await self.get_config(scope, config.id)

    @staticmethod
    def request_from_config(config: AcademicYearConfig) -> PromotionRequest:
        return PromotionRequest(
            new_year=config.next_year,
            new_term=config.next_term,
            currency=config.currency,
            carry_forward_balances=config.carry_forward_balances,
            fee_structures=config.fee_structures or {},
            default_fee_structure=config.default_fee_structure,
            notes=f"Academic year {config.academic_year} end-of-year promotion",
        )

    async def execute_config(
        self, scope: SchoolScope, config: AcademicYearConfig
    ) -> PromotionSummary:
        """Run the promotion described by a config and record the outcome on it."""
        if not config.is_scheduled:
            raise InvalidTransitionError(
                "Academic year config", config.promotion_status, PromotionStatus.IN_PROGRESS.value
            )
        config_id = config.id
        config.mark_in_progress()
        await self.db.commit()

        try:
            summary = await self.run_promotion(scope, self.request_from_config(config))
        except Exception as exc:
            await self.db.rollback()
            message = exc.message if isinstance(exc, AppException) else str(exc)
            config = await self.get_config(scope, config_id)
            config.mark_failed(message)
            await self.db.commit()
            logger.error(
                "Promotion for %s academic year %s failed: %s",
                scope.code,
                config.academic_year,
                message,
            )
            raise

        config.mark_completed(summary.promoted_count, summary.completed_count, summary.error_count)
        await self.db.commit()
        return summary

    async def trigger_promotion(self, scope: SchoolScope, config_id: int) -> PromotionSummary:
        """Run a scheduled config now, ahead of its end-of-year date."""
        config = await self.get_config(scope, config_id)
        return await self.execute_config(scope, config)

    async def cancel_promotion(
        self, scope: SchoolScope, config_id: int, reason: str
    ) -> AcademicYearConfig:
        config = await self.get_config(scope, config_id)
        if not config.is_scheduled:
            raise InvalidTransitionError(
                "Academic year config", config.promotion_status, PromotionStatus.CANCELLED.value
            )
        config.cancel(reason)
        await self.audit.log(
            action=AuditAction.CANCEL,
            entity_type="AcademicYearConfig",
            entity_id=config.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=str(config.academic_year),
            old_values={"promotion_status": PromotionStatus.SCHEDULED.value},
            new_values={"promotion_status": PromotionStatus.CANCELLED.value},
            comment=reason,
        )
        await self.db.commit()
        return await self.get_config(scope, config_id)


async def run_due_promotions(
    today: date | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[int, str]:
    """
    Execute every due config across all schools.

    Each config runs in its own session and school scope. A failing config
    is logged and left FAILED; the remaining ones still run. Returns the
    final status per config id.
    """
    today = today or date.today()
    session_factory = session_factory or async_session

    async with session_factory() as db:
        result = await db.execute(
            select(AcademicYearConfig.id, School.code)
            .join(School, School.id == AcademicYearConfig.school_id)
            .where(
                School.is_active == True,  # noqa: E712
                AcademicYearConfig.is_active == True,  # noqa: E712
                AcademicYearConfig.promotion_status == PromotionStatus.SCHEDULED.value,
                AcademicYearConfig.end_of_year_date <= today,
            )
            .order_by(AcademicYearConfig.end_of_year_date, AcademicYearConfig.id)
        )
        due = [(row.id, row.code) for row in result]

    if not due:
        logger.debug("No promotions due on %s", today)
        return {}

    logger.info("%d promotion(s) due on %s", len(due), today)
    outcomes: dict[int, str] = {}
    for config_id, school_code in due:
        async with session_factory() as db:
            engine = PromotionEngine(db)
            try:
                scope = await load_scope(db, school_code, actor="SCHEDULER")
                config = await engine.get_config(scope, config_id)
                if not config.is_due(today):
                    # Triggered or cancelled since the due list was read
                    logger.info("Promotion config %s no longer due, skipping", config_id)
                    outcomes[config_id] = config.promotion_status
                    continue
                await engine.execute_config(scope, config)
                outcomes[config_id] = PromotionStatus.COMPLETED.value
            except Exception:
                logger.exception(
                    "Scheduled promotion %s for school %s failed", config_id, school_code
                )
                outcomes[config_id] = PromotionStatus.FAILED.value
    return outcomes
