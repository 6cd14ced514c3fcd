"""Tests for the year-end promotion engine and academic year configs."""

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog
from src.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from src.core.schools.models import School, SchoolType
from src.core.schools.scope import SchoolScope
from src.modules.fees import ledger
from src.modules.fees.models import FeeRecord
from src.modules.fees.schemas import FeeComponents
from src.modules.fees.service import FeeRecordService
from src.modules.promotions.models import AcademicYearConfig, PromotionStatus
from src.modules.promotions.schemas import (
    AcademicYearConfigCreate,
    DemotionRequest,
    FeeStructure,
    PromotionRequest,
)
from src.modules.promotions.service import PromotionEngine, run_due_promotions
from src.modules.students.models import CompletionStatus


GRADE_4 = FeeStructure(tuition_fee=Decimal("400"), exam_fee=Decimal("20"))
GRADE_5 = FeeStructure(
    tuition_fee=Decimal("450"),
    default_scholarship=Decimal("50"),
    default_sibling_discount=Decimal("25"),
)


def _request(**overrides) -> PromotionRequest:
    data = {
        "new_year": 2027,
        "new_term": 1,
        "currency": "USD",
        "fee_structures": {"Grade 4": GRADE_4, "Grade 5": GRADE_5},
    }
    data.update(overrides)
    return PromotionRequest(**data)


async def _secondary_school(db: AsyncSession, code: str = "HIGHVIEW", **kwargs) -> School:
    school = School(
        code=code,
        name="Highview High",
        school_type=SchoolType.SECONDARY.value,
        collection_account="2000300040",
        branch_code="121",
        **kwargs,
    )
    db.add(school)
    await db.commit()
    return school


async def _bill(db: AsyncSession, scope: SchoolScope, student, amount: str, paid: str = "0", term: int = 3):
    record = await FeeRecordService(db).add_fee_record(
        scope,
        student,
        year=2026,
        term=term,
        currency="USD",
        components=FeeComponents(tuition_fee=Decimal(amount)),
    )
    if Decimal(paid):
        ledger.apply_payment(record, Decimal(paid))
    await db.commit()
    return record


async def _records_for(db: AsyncSession, student_id: int, year: int = 2027) -> list[FeeRecord]:
    result = await db.execute(
        select(FeeRecord).where(FeeRecord.student_id == student_id, FeeRecord.year == year)
    )
    return list(result.scalars().all())


class TestRunPromotion:
    async def test_promotes_and_bills_new_term(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        student = await make_student(school, grade="Grade 3", class_name="3 Blue")

        summary = await PromotionEngine(db_session).run_promotion(scope, _request())

        assert summary.promoted_count == 1
        assert summary.error_count == 0
        assert summary.promoted_students == [student.student_ref]
        assert "1 students promoted" in summary.message

        await db_session.refresh(student)
        assert student.grade == "Grade 4"
        assert student.class_name == "3 Blue"
        assert "PROMOTED: Grade 3 -> Grade 4 (2027 Term 1)" in student.notes

        (record,) = await _records_for(db_session, student.id)
        assert record.id == summary.fee_record_ids[0]
        assert (record.term, record.currency) == (1, "USD")
        assert record.gross_amount == Decimal("420.00")
        assert record.previous_balance == Decimal("0.00")
        assert record.outstanding_balance == Decimal("420.00")

    async def test_each_student_moves_exactly_one_level(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        grade_3 = await make_student(school, grade="Grade 3")
        grade_4 = await make_student(school, grade="Grade 4")

        summary = await PromotionEngine(db_session).run_promotion(
            scope,
            _request(fee_structures={"Grade 4": GRADE_4, "Grade 5": GRADE_5}),
        )

        assert summary.total_processed == 2
        assert summary.promoted_count == 2
        await db_session.refresh(grade_3)
        await db_session.refresh(grade_4)
        assert grade_3.grade == "Grade 4"
        assert grade_4.grade == "Grade 5"
        assert len(await _records_for(db_session, grade_3.id)) == 1

        breakdown = summary.grade_breakdown
        assert breakdown["Grade 3"].to_grade == "Grade 4"
        assert breakdown["Grade 4"].to_grade == "Grade 5"
        assert breakdown["Grade 4"].success_count == 1

    async def test_default_discounts_applied(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(school, grade="Grade 4")

        await PromotionEngine(db_session).run_promotion(scope, _request())

        (record,) = await _records_for(db_session, student.id)
        assert record.scholarship_amount == Decimal("50.00")
        assert record.sibling_discount == Decimal("25.00")
        assert record.net_amount == Decimal("375.00")

    async def test_form_4_completes_o_level(self, db_session: AsyncSession, make_student):
        school = await _secondary_school(db_session)
        scope = SchoolScope.from_school(school, actor="head")
        student = await make_student(school, grade="Form 4")

        summary = await PromotionEngine(db_session).run_promotion(
            scope, PromotionRequest(new_year=2027, new_term=1)
        )

        assert summary.completed_count == 1
        assert summary.promoted_count == 0
        assert summary.completed_students[0].completion_status == "COMPLETED_O_LEVEL"

        await db_session.refresh(student)
        assert student.completion_status == CompletionStatus.COMPLETED_O_LEVEL.value
        assert student.is_active is False
        assert student.grade == "Form 4"
        assert await _records_for(db_session, student.id) == []

    async def test_a_level_school_keeps_form_4(self, db_session: AsyncSession, make_student):
        school = await _secondary_school(db_session, continue_to_a_level=True)
        scope = SchoolScope.from_school(school)
        student = await make_student(school, grade="Form 4")

        summary = await PromotionEngine(db_session).run_promotion(
            scope,
            PromotionRequest(
                new_year=2027, new_term=1, default_fee_structure=FeeStructure(tuition_fee=Decimal("900"))
            ),
        )

        assert summary.promoted_count == 1
        await db_session.refresh(student)
        assert student.grade == "Form 5"

    async def test_grade_7_completes_primary(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(school, grade="Grade 7")

        summary = await PromotionEngine(db_session).run_promotion(scope, _request())

        assert summary.completed_count == 1
        await db_session.refresh(student)
        assert student.completion_status == CompletionStatus.COMPLETED_PRIMARY.value
        assert "COMPLETED_PRIMARY from Grade 7" in student.notes

    async def test_missing_structure_is_per_student(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        ok = await make_student(school, grade="Grade 3")
        stuck = await make_student(school, grade="Grade 5", first_name="Rudo", last_name="Chari")

        summary = await PromotionEngine(db_session).run_promotion(
            scope, _request(fee_structures={"Grade 4": GRADE_4})
        )

        assert summary.promoted_count == 1
        assert summary.error_count == 1
        error = summary.errors[0]
        assert error.student_ref == stuck.student_ref
        assert error.student_name == "Rudo Chari"
        assert error.grade == "Grade 5"
        assert "No fee structure for grade Grade 6" in error.error
        assert summary.grade_breakdown["Grade 5"].error_count == 1

        await db_session.refresh(ok)
        await db_session.refresh(stuck)
        assert ok.grade == "Grade 4"
        assert stuck.grade == "Grade 5"
        assert stuck.notes is None
        assert await _records_for(db_session, stuck.id) == []

    async def test_loose_structure_keys(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(school, grade="Grade 3")

        summary = await PromotionEngine(db_session).run_promotion(
            scope, _request(fee_structures={"grade4": GRADE_4})
        )

        assert summary.promoted_count == 1
        (record,) = await _records_for(db_session, student.id)
        assert record.tuition_fee == Decimal("400.00")

    async def test_unknown_grade_is_an_error(self, db_session: AsyncSession, scope, school, make_student):
        await make_student(school, grade="Form 2")

        summary = await PromotionEngine(db_session).run_promotion(scope, _request())

        assert summary.error_count == 1
        assert "Unknown grade/form progression" in summary.errors[0].error

    async def test_skips_inactive_completed_and_excluded(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        await make_student(school, grade="Grade 3", is_active=False)
        await make_student(school, grade="Grade 3", completion_status="COMPLETED_PRIMARY")
        await make_student(school, grade=None)
        excluded = await make_student(school, grade="Grade 3")
        included = await make_student(school, grade="Grade 3")

        summary = await PromotionEngine(db_session).run_promotion(
            scope, _request(excluded_student_ids=[excluded.id])
        )

        assert summary.total_processed == 1
        assert summary.excluded_count == 1
        assert summary.promoted_students == [included.student_ref]
        await db_session.refresh(excluded)
        assert excluded.grade == "Grade 3"

    async def test_other_schools_untouched(self, db_session: AsyncSession, scope, school, make_student):
        other = await _secondary_school(db_session)
        outsider = await make_student(other, grade="Form 1")
        await make_student(school, grade="Grade 3")

        summary = await PromotionEngine(db_session).run_promotion(scope, _request())

        assert summary.total_processed == 1
        await db_session.refresh(outsider)
        assert outsider.grade == "Form 1"

    async def test_carry_forward_balances(self, db_session: AsyncSession, scope, school, make_student):
        owing = await make_student(school, grade="Grade 3")
        in_credit = await make_student(school, grade="Grade 3")
        await _bill(db_session, scope, owing, "500", paid="300")
        await _bill(db_session, scope, in_credit, "500", paid="550")

        await PromotionEngine(db_session).run_promotion(scope, _request())

        (owing_record,) = await _records_for(db_session, owing.id)
        assert owing_record.previous_balance == Decimal("200.00")
        assert owing_record.outstanding_balance == Decimal("620.00")

        (credit_record,) = await _records_for(db_session, in_credit.id)
        assert credit_record.previous_balance == Decimal("-50.00")
        assert credit_record.outstanding_balance == Decimal("370.00")

    async def test_carry_forward_uses_latest_record(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        student = await make_student(school, grade="Grade 3")
        await _bill(db_session, scope, student, "100", term=1)
        await _bill(db_session, scope, student, "300", paid="100", term=3)

        await PromotionEngine(db_session).run_promotion(scope, _request())

        (record,) = await _records_for(db_session, student.id)
        assert record.previous_balance == Decimal("200.00")

    async def test_carry_forward_disabled(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(school, grade="Grade 3")
        await _bill(db_session, scope, student, "500")

        await PromotionEngine(db_session).run_promotion(scope, _request(carry_forward_balances=False))

        (record,) = await _records_for(db_session, student.id)
        assert record.previous_balance == Decimal("0.00")
        assert record.outstanding_balance == Decimal("420.00")

    async def test_rerun_for_same_term_reports_duplicates(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        student = await make_student(school, grade="Grade 3")
        engine = PromotionEngine(db_session)
        await engine.run_promotion(scope, _request())

        summary = await engine.run_promotion(scope, _request())

        assert summary.promoted_count == 0
        assert summary.error_count == 1
        assert "already exists" in summary.errors[0].error
        await db_session.refresh(student)
        assert student.grade == "Grade 4"
        assert len(await _records_for(db_session, student.id)) == 1

    async def test_concurrent_record_insert_is_per_student_error(
        self, db_session: AsyncSession, scope, school, make_student, monkeypatch
    ):
        student = await make_student(school, grade="Grade 3")
        engine = PromotionEngine(db_session)
        await engine.run_promotion(scope, _request())

        async def _not_found(self, *args):
            return None

        # Another run inserted the record after this one checked for it
        monkeypatch.setattr(FeeRecordService, "_find_active", _not_found)
        summary = await engine.run_promotion(scope, _request())

        assert summary.promoted_count == 0
        assert summary.error_count == 1
        assert "already exists" in summary.errors[0].error
        await db_session.refresh(student)
        assert student.grade == "Grade 4"
        assert len(await _records_for(db_session, student.id)) == 1

        assert len(await _records_for(db_session, student.id)) == 1

    @pytest.mark.parametrize(
        "overrides",
        [{"new_year": None}, {"new_term": None}, {"new_year": 1999}, {"new_term": 4}],
    )
    async def test_invalid_target_term_rejects_run(
        self, db_session: AsyncSession, scope, school, make_student, overrides
    ):
        student = await make_student(school, grade="Grade 3")

        with pytest.raises(ValidationError):
            await PromotionEngine(db_session).run_promotion(scope, _request(**overrides))

        await db_session.refresh(student)
        assert student.grade == "Grade 3"

    async def test_run_is_audited(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(school, grade="Grade 3")

        await PromotionEngine(db_session).run_promotion(scope, _request(notes="Year end"))

        actions = (
            await db_session.execute(select(AuditLog.action, AuditLog.entity_type, AuditLog.entity_id))
        ).all()
        assert ("PROMOTE_STUDENT", "Student", student.id) in actions
        assert ("RUN_PROMOTION", "School", school.id) in actions


class TestDemotion:
    async def test_demote_completed_student(self, db_session: AsyncSession, scope, school, make_student):
        student = await make_student(
            school, grade="Grade 7", is_active=False, completion_status="COMPLETED_PRIMARY"
        )
        await _bill(db_session, scope, student, "300", paid="200")

        result = await PromotionEngine(db_session).demote_student(
            scope,
            student.id,
            DemotionRequest(
                grade="grade 6",
                class_name="6 Red",
                reason="Repeat year",
                year=2027,
                term=1,
                fee_structure=FeeStructure(tuition_fee=Decimal("350")),
                carry_forward_balance=True,
            ),
        )

        assert result.grade == "Grade 6"
        assert result.class_name == "6 Red"
        assert result.is_active is True
        assert result.completion_status is None
        assert "DEMOTION: Grade 7 -> Grade 6. Reason: Repeat year" in result.notes
        assert result.previous_balance == Decimal("100.00")
        assert result.outstanding_balance == Decimal("450.00")

        record = await FeeRecordService(db_session).get_fee_record(scope, result.fee_record_id)
        assert record.student_id == student.id
        assert record.bursar_notes == "Created on demotion from Grade 7"

    async def test_demote_without_carry_forward(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        student = await make_student(school, grade="Grade 5")
        await _bill(db_session, scope, student, "300")

        result = await PromotionEngine(db_session).demote_student(
            scope,
            student.id,
            DemotionRequest(grade="Grade 4", reason="Parent request", year=2027, term=1),
        )

        assert result.previous_balance == Decimal("0.00")
        assert result.outstanding_balance == Decimal("0.00")

    async def test_demote_unknown_student(self, db_session: AsyncSession, scope, school):
        with pytest.raises(NotFoundError):
            await PromotionEngine(db_session).demote_student(
                scope, 999, DemotionRequest(grade="Grade 4", reason="x", year=2027, term=1)
            )

    @pytest.mark.parametrize("grade", ["Form 2", "Grade 9", "Nursery"])
    async def test_demote_to_grade_outside_school_rejected(
        self, db_session: AsyncSession, scope, school, make_student, grade
    ):
        student = await make_student(school, grade="Grade 5")

        with pytest.raises(ValidationError):
            await PromotionEngine(db_session).demote_student(
                scope, student.id, DemotionRequest(grade=grade, reason="x", year=2027, term=1)
            )

        await db_session.refresh(student)
        assert student.grade == "Grade 5"
        assert await _records_for(db_session, student.id) == []


class TestAcademicYearConfig:
    async def test_create_then_update(self, db_session: AsyncSession, scope, school):
        engine = PromotionEngine(db_session)

        config = await engine.create_or_update_config(
            scope,
            AcademicYearConfigCreate(
                academic_year=2026,
                end_of_year_date=date(2026, 12, 4),
                fee_structures={"Grade 4": GRADE_4},
            ),
        )
        assert config.promotion_status == PromotionStatus.SCHEDULED.value
        assert config.next_year == 2027
        assert config.next_term == 1
        assert config.created_by == "bursar"
        assert config.fee_structures["Grade 4"]["tuition_fee"] == "400"

        updated = await engine.create_or_update_config(
            scope,
            AcademicYearConfigCreate(
                academic_year=2026, end_of_year_date=date(2026, 12, 11), next_term=2
            ),
        )
        assert updated.id == config.id
        assert updated.end_of_year_date == date(2026, 12, 11)
        assert updated.next_term == 2
        assert len(await engine.list_configs(scope)) == 1

    async def test_trigger_runs_and_records_outcome(
        self, db_session: AsyncSession, scope, school, make_student
    ):
        await make_student(school, grade="Grade 3")
        await make_student(school, grade="Grade 7")
        engine = PromotionEngine(db_session)
        config = await engine.create_or_update_config(
            scope,
            AcademicYearConfigCreate(
                academic_year=2026,
                end_of_year_date=date(2026, 12, 4),
                fee_structures={"Grade 4": GRADE_4},
            ),
        )

        summary = await engine.trigger_promotion(scope, config.id)

        assert summary.new_year == 2027
        assert (summary.promoted_count, summary.completed_count) == (1, 1)
        config = await engine.get_config(scope, config.id)
        assert config.promotion_status == PromotionStatus.COMPLETED.value
        assert config.executed_at is not None
        assert (config.students_promoted, config.students_completed, config.promotion_errors) == (1, 1, 0)

        with pytest.raises(InvalidTransitionError):
            await engine.trigger_promotion(scope, config.id)
        with pytest.raises(ValidationError):
            await engine.create_or_update_config(
                scope, AcademicYearConfigCreate(academic_year=2026, end_of_year_date=date(2026, 12, 4))
            )

    async def test_cancel(self, db_session: AsyncSession, scope, school):
        engine = PromotionEngine(db_session)
        config = await engine.create_or_update_config(
            scope, AcademicYearConfigCreate(academic_year=2026, end_of_year_date=date(2026, 12, 4))
        )

        cancelled = await engine.cancel_promotion(scope, config.id, "Calendar moved")

        assert cancelled.promotion_status == PromotionStatus.CANCELLED.value
        assert "CANCELLED: Calendar moved" in cancelled.notes
        with pytest.raises(InvalidTransitionError):
            await engine.cancel_promotion(scope, config.id, "Again")
        with pytest.raises(InvalidTransitionError):
            await engine.trigger_promotion(scope, config.id)

    async def test_failed_run_marks_config(self, db_session: AsyncSession, scope, school):
        config = AcademicYearConfig(
            school_id=school.id,
            academic_year=2026,
            end_of_year_date=date(2026, 12, 4),
            next_year=2027,
            next_term=5,
        )
        db_session.add(config)
        await db_session.commit()
        engine = PromotionEngine(db_session)

        with pytest.raises(ValidationError):
            await engine.trigger_promotion(scope, config.id)

        config = await engine.get_config(scope, config.id)
        assert config.promotion_status == PromotionStatus.FAILED.value
        assert "FAILED: Invalid term: 5" in config.notes

    async def test_configs_are_tenant_scoped(self, db_session: AsyncSession, scope, school):
        config = await PromotionEngine(db_session).create_or_update_config(
            scope, AcademicYearConfigCreate(academic_year=2026, end_of_year_date=date(2026, 12, 4))
        )
        other = await _secondary_school(db_session)

        with pytest.raises(NotFoundError):
            await PromotionEngine(db_session).get_config(SchoolScope.from_school(other), config.id)


class TestScheduledPromotions:
    async def test_runs_due_configs_only(
        self, db_session: AsyncSession, session_factory, scope, school, make_student
    ):
        student = await make_student(school, grade="Grade 3")
        closed = await _secondary_school(db_session, code="CLOSED", is_active=False)
        engine = PromotionEngine(db_session)
        due = await engine.create_or_update_config(
            scope,
            AcademicYearConfigCreate(
                academic_year=2026,
                end_of_year_date=date(2026, 12, 4),
                default_fee_structure=GRADE_4,
            ),
        )
        later = await engine.create_or_update_config(
            scope, AcademicYearConfigCreate(academic_year=2027, end_of_year_date=date(2027, 12, 3))
        )
        dormant = AcademicYearConfig(
            school_id=closed.id,
            academic_year=2026,
            end_of_year_date=date(2026, 12, 1),
            next_year=2027,
        )
        db_session.add(dormant)
        await db_session.commit()

        outcomes = await run_due_promotions(date(2026, 12, 5), session_factory=session_factory)

        assert outcomes == {due.id: PromotionStatus.COMPLETED.value}
        await db_session.refresh(student)
        assert student.grade == "Grade 4"
        for config, expected in ((due, "COMPLETED"), (later, "SCHEDULED"), (dormant, "SCHEDULED")):
            await db_session.refresh(config)
            assert config.promotion_status == expected

        logs = await db_session.scalar(
            select(func.count()).select_from(AuditLog).where(AuditLog.actor == "SCHEDULER")
        )
        assert logs > 0

    async def test_failing_config_does_not_stop_others(
        self, db_session: AsyncSession, session_factory, scope, school
    ):
        other = await _secondary_school(db_session)
        broken = AcademicYearConfig(
            school_id=school.id,
            academic_year=2026,
            end_of_year_date=date(2026, 12, 1),
            next_year=2027,
            next_term=5,
        )
        fine = AcademicYearConfig(
            school_id=other.id,
            academic_year=2026,
            end_of_year_date=date(2026, 12, 2),
            next_year=2027,
        )
        db_session.add_all([broken, fine])
        await db_session.commit()

        outcomes = await run_due_promotions(date(2026, 12, 5), session_factory=session_factory)

        assert outcomes == {broken.id: "FAILED", fine.id: "COMPLETED"}

    async def test_config_no_longer_due_is_skipped(
        self, db_session: AsyncSession, session_factory, scope, school, make_student, monkeypatch
    ):
        student = await make_student(school, grade="Grade 3")
        config = await PromotionEngine(db_session).create_or_update_config(
            scope,
            AcademicYearConfigCreate(
                academic_year=2026,
                end_of_year_date=date(2026, 12, 4),
                default_fee_structure=GRADE_4,
            ),
        )
        await db_session.commit()
        original = PromotionEngine.get_config

        async def _cancelled_meanwhile(self, scope, config_id):
            loaded = await original(self, scope, config_id)
            loaded.cancel("Closed early")
            return loaded

        monkeypatch.setattr(PromotionEngine, "get_config", _cancelled_meanwhile)
        outcomes = await run_due_promotions(date(2026, 12, 5), session_factory=session_factory)

        assert outcomes == {config.id: PromotionStatus.CANCELLED.value}
        await db_session.refresh(student)
        assert student.grade == "Grade 3"

    def test_is_due(self):
        config = AcademicYearConfig(
            academic_year=2026,
            end_of_year_date=date(2026, 12, 4),
            next_year=2027,
            promotion_status=PromotionStatus.SCHEDULED.value,
            is_active=True,
        )
        assert not config.is_due(date(2026, 12, 3))
        assert config.is_due(date(2026, 12, 4))

        config.is_active = False
        assert not config.is_due(date(2026, 12, 5))

        config.is_active = True
        config.promotion_status = PromotionStatus.COMPLETED.value
        assert not config.is_due(date(2026, 12, 5))

    async def test_nothing_due(self, db_session: AsyncSession, session_factory, school):
        assert await run_due_promotions(date(2026, 1, 1), session_factory=session_factory) == {}


class TestPromotionEndpoints:
    async def test_run_endpoint(self, client: AsyncClient, school, make_student):
        await make_student(school, grade="Grade 3")

        response = await client.post(
            "/api/v1/promotions/run",
            json={
                "new_year": 2027,
                "new_term": 1,
                "currency": "usd",
                "default_fee_structure": {"tuition_fee": "400"},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["promoted_count"] == 1
        assert body["message"].startswith("Year-end promotion complete")

    async def test_run_endpoint_requires_term(self, client: AsyncClient, school):
        response = await client.post("/api/v1/promotions/run", json={"new_year": 2027})
        assert response.status_code == 422

    async def test_run_endpoint_rejects_currency(self, client: AsyncClient, school):
        response = await client.post(
            "/api/v1/promotions/run", json={"new_year": 2027, "new_term": 1, "currency": "GBP"}
        )
        assert response.status_code == 422

    async def test_demote_endpoint(self, client: AsyncClient, school, make_student):
        student = await make_student(school, grade="Grade 5")

        response = await client.post(
            f"/api/v1/promotions/students/{student.id}/demote",
            json={"grade": "Grade 4", "reason": "Repeat", "year": 2027, "term": 1},
        )

        assert response.status_code == 200
        assert response.json()["data"]["grade"] == "Grade 4"

    async def test_config_endpoints(self, client: AsyncClient, school):
        created = await client.post(
            "/api/v1/promotions/configs",
            json={"academic_year": 2026, "end_of_year_date": "2026-12-04"},
        )
        assert created.status_code == 201
        config_id = created.json()["data"]["id"]

        listing = await client.get("/api/v1/promotions/configs")
        assert [c["id"] for c in listing.json()["data"]] == [config_id]

        cancelled = await client.post(
            f"/api/v1/promotions/configs/{config_id}/cancel", json={"reason": "Moved"}
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["data"]["promotion_status"] == "CANCELLED"

        response = await client.post(f"/api/v1/promotions/configs/{config_id}/trigger")
        assert response.status_code == 409
