"""Service for Payments module."""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.documents.number_generator import DocumentNumberGenerator
from src.core.exceptions import (
    AppException,
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.core.notifications import notifications
from src.core.schools.scope import SchoolScope
from src.integrations.settlement.client import SettlementClient, get_settlement_client
from src.integrations.settlement.service import SettlementGateway
from src.modules.fees import ledger
from src.modules.fees.models import FeeRecord
from src.modules.fees.service import FeeRecordService
from src.modules.payments.models import (
    Payment,
    PaymentChannel,
    PaymentMethod,
    PaymentStatus,
)
from src.modules.payments.schemas import (
    BankCounterPaymentCreate,
    CurrencyTotal,
    DigitalPaymentCreate,
    PaymentFilters,
    PaymentRequestBase,
    SchoolPaymentCreate,
    SettlementReport,
)
from src.modules.students.models import Student
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import round_money

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100


class PaymentService:
    """
    Records payments against fee records.

    School-channel payments complete immediately and hit the ledger at once.
    Bank-channel payments start PENDING and reach the ledger only through the
    settlement gateway.
    """

    def __init__(self, db: AsyncSession, settlement_client: SettlementClient | None = None):
        self.db = db
        self.audit = AuditService(db)
        self.fees = FeeRecordService(db)
        self.students = StudentDirectory(db)
        self.settlement_client = settlement_client

    def _gateway(self) -> SettlementGateway:
        client = self.settlement_client
        if client is None and settings.settlement_enabled:
            client = get_settlement_client()
        return SettlementGateway(self.db, client)

    # --- Validation ---

    @staticmethod
    def _validate_request(data: PaymentRequestBase) -> None:
        """Request-level checks. Nothing is read or written before these pass."""
        if not data.currency or not data.currency.strip():
            raise ValidationError("Currency is required", field="currency")
        if data.currency not in settings.supported_currencies:
            raise ValidationError(
                f"Invalid currency '{data.currency}'. Only "
                f"{' and '.join(settings.supported_currencies)} are supported",
                field="currency",
            )
        if data.year is None or not MIN_YEAR <= data.year <= MAX_YEAR:
            raise ValidationError(
                f"Year must be between {MIN_YEAR} and {MAX_YEAR}", field="year"
            )
        if data.term is None or not 1 <= data.term <= 3:
            raise ValidationError("Term must be 1, 2 or 3", field="term")
        try:
            positive = data.amount is not None and Decimal(data.amount) > 0
        except InvalidOperation:
            positive = False
        if not positive:
            raise InvalidAmountError(data.amount, "Payment amount must be greater than zero")

    async def _resolve_target(
        self, scope: SchoolScope, data: PaymentRequestBase
    ) -> tuple[Student, FeeRecord]:
        """
        Find the student's active fee record for the requested term, locked.

        Records are matched on year and term first so that a record held in
        another currency is reported as a mismatch rather than as missing.
        """
        student = await self.students.get_by_ref(scope, data.student_ref)
        records = await self.fees.find_active_for_term(
            scope, student.id, data.year, data.term, lock=True
        )
        if not records:
            raise NotFoundError(
                f"Fee record for student {student.student_ref} ({data.year} Term {data.term})"
            )
        for record in records:
            if record.currency == data.currency:
                return student, record
        raise CurrencyMismatchError(data.currency, records[0].currency)

    async def _new_payment(
        self,
        scope: SchoolScope,
        student: Student,
        record: FeeRecord,
        data: PaymentRequestBase,
        method: PaymentMethod,
        status: PaymentStatus,
        **fields,
    ) -> Payment:
        reference = await DocumentNumberGenerator(self.db).generate("PAY", scope)
        payment = Payment(
            school_id=scope.school_id,
            payment_reference=reference,
            student_id=student.id,
            fee_record_id=record.id,
            amount=round_money(data.amount),
            currency=data.currency,
            payment_method=method.value,
            channel=method.channel.value,
            payment_date=fields.pop("payment_date", None) or date.today(),
            status=status.value,
            notes=data.notes,
            **fields,
        )
        self.db.add(payment)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.RECORD_PAYMENT,
            entity_type="Payment",
            entity_id=payment.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=reference,
            new_values={
                "student_ref": student.student_ref,
                "fee_record_id": record.id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "method": method.value,
                "status": payment.status,
            },
        )
        return payment

    # --- Recording ---

    async def record_school_payment(
        self, scope: SchoolScope, data: SchoolPaymentCreate
    ) -> Payment:
        """Cash/cheque/card/etc. received at the school. Completed immediately."""
        self._validate_request(data)
        student, record = await self._resolve_target(scope, data)

        payment = await self._new_payment(
            scope,
            student,
            record,
            data,
            data.payment_method,
            PaymentStatus.COMPLETED,
            transaction_reference=data.transaction_reference,
            received_by=data.received_by or scope.actor,
            payment_date=data.payment_date,
            completed_at=datetime.now().astimezone(),
        )
        ledger.apply_payment(record, payment.amount)

        await self.db.commit()
        logger.info(
            "School payment %s: %s %s for %s, outstanding now %s",
            payment.payment_reference,
            payment.amount,
            payment.currency,
            student.student_ref,
            record.outstanding_balance,
        )
        notifications.payment_completed(scope.code, payment.payment_reference, payment.amount)
        return await self.get_payment(scope, payment.id)

    async def record_bank_counter_payment(
        self, scope: SchoolScope, data: BankCounterPaymentCreate
    ) -> Payment:
        """Teller payment. Settled through the switch before returning."""
        return await self._record_bank_payment(
            scope,
            data,
            PaymentMethod.BANK_COUNTER,
            parent_account_number=data.parent_account_number,
            bank_transaction_id=data.bank_transaction_id,
            bank_branch=data.bank_branch,
            teller_name=data.teller_name,
            received_by=f"Bank: {data.teller_name}",
        )

    async def record_digital_payment(
        self, scope: SchoolScope, data: DigitalPaymentCreate
    ) -> Payment:
        """Mobile/internet banking, USSD or standing order payment."""
        return await self._record_bank_payment(
            scope,
            data,
            data.payment_method,
            parent_account_number=data.parent_account_number,
            bank_transaction_id=data.bank_transaction_id,
            received_by=f"Digital Banking: {data.payment_method.display_name}",
        )

    async def _record_bank_payment(
        self,
        scope: SchoolScope,
        data: PaymentRequestBase,
        method: PaymentMethod,
        **bank_fields,
    ) -> Payment:
        self._validate_request(data)
        bank_transaction_id = (bank_fields.get("bank_transaction_id") or "").strip()
        if method.requires_bank_transaction and not bank_transaction_id:
            raise ValidationError(
                f"{method.display_name} requires a bank transaction id", field="bank_transaction_id"
            )
        student, record = await self._resolve_target(scope, data)

        payment = await self._new_payment(
            scope, student, record, data, method, PaymentStatus.PENDING, **bank_fields
        )
        logger.info(
            "Bank payment %s recorded PENDING via %s: %s %s for %s",
            payment.payment_reference,
            method.display_name,
            payment.amount,
            payment.currency,
            student.student_ref,
        )
        await self._settle(scope, payment, student, payment.parent_account_number)
        return await self.get_payment(scope, payment.id)

    async def _settle(
        self,
        scope: SchoolScope,
        payment: Payment,
        student: Student,
        parent_account: str | None,
    ) -> None:
        """Run the gateway and commit the outcome, including a FAILED one."""
        gateway = self._gateway()
        try:
            if settings.settlement_enabled:
                await gateway.settle(scope, payment, student, parent_account)
            else:
                await gateway.complete_without_transfer(scope, payment)
        except AppException:
            # Keep the FAILED payment and its diagnostics, then surface the error
            await self.db.commit()
            raise
        await self.db.commit()

    async def settle_pending_payment(
        self,
        scope: SchoolScope,
        payment_id: int,
        parent_account: str | None = None,
    ) -> Payment:
        """Explicitly re-drive a PENDING bank payment. Terminal payments are rejected."""
        payment = await self._get_for_update(scope, payment_id)
        if not payment.method.requires_bank_transaction:
            raise ValidationError(
                f"{payment.method.display_name} payments do not go through settlement"
            )
        student = await self.students.get_student(scope, payment.student_id)
        if payment.fee_record_id is not None:
            # Lock order: fee record before the switch call, same as recording
            await self.fees.get_for_update(scope, payment.fee_record_id)
        await self._settle(scope, payment, student, parent_account)
        return await self.get_payment(scope, payment.id)

    async def reverse_payment(self, scope: SchoolScope, payment_id: int, reason: str) -> Payment:
        """
        Mark a COMPLETED payment REVERSED.

        The fee record is left as is: amount_paid keeps the reversed amount until
        the bursar adjusts it. Reversal is a record of intent, not a ledger entry.
        """
        if not reason or not reason.strip():
            raise ValidationError("Reversal reason is required", field="reason")

        payment = await self._get_for_update(scope, payment_id)
        if not payment.can_transition_to(PaymentStatus.REVERSED):
            raise InvalidTransitionError(
                f"Payment {payment.payment_reference}",
                payment.status,
                PaymentStatus.REVERSED.value,
            )

        payment.status = PaymentStatus.REVERSED.value
        payment.reversal_reason = reason.strip()
        payment.reversed_at = datetime.now().astimezone()

        await self.audit.log(
            action=AuditAction.REVERSE_PAYMENT,
            entity_type="Payment",
            entity_id=payment.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=payment.payment_reference,
            old_values={"status": PaymentStatus.COMPLETED.value},
            new_values={"status": payment.status},
            comment=payment.reversal_reason,
        )
        await self.db.commit()
        logger.warning(
            "Payment %s reversed (%s); fee record %s not adjusted",
            payment.payment_reference,
            payment.reversal_reason,
            payment.fee_record_id,
        )
        return await self.get_payment(scope, payment.id)

    # --- Lookups ---

    async def get_payment(self, scope: SchoolScope, payment_id: int) -> Payment:
        result = await self.db.execute(
            select(Payment).where(Payment.id == payment_id, Payment.school_id == scope.school_id)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def _get_for_update(self, scope: SchoolScope, payment_id: int) -> Payment:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.id == payment_id, Payment.school_id == scope.school_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def list_payments(
        self, scope: SchoolScope, filters: PaymentFilters
    ) -> tuple[list[Payment], int]:
        """List payments with filters."""
        query = select(Payment).where(Payment.school_id == scope.school_id)

        if filters.student_id:
            query = query.where(Payment.student_id == filters.student_id)
        if filters.fee_record_id:
            query = query.where(Payment.fee_record_id == filters.fee_record_id)
        if filters.status:
            query = query.where(Payment.status == filters.status.value)
        if filters.channel:
            query = query.where(Payment.channel == filters.channel.value)
        if filters.payment_method:
            query = query.where(Payment.payment_method == filters.payment_method.value)
        if filters.date_from:
            query = query.where(Payment.payment_date >= filters.date_from)
        if filters.date_to:
            query = query.where(Payment.payment_date <= filters.date_to)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
        query = query.offset((filters.page - 1) * filters.limit).limit(filters.limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_settlement_report(self, scope: SchoolScope, day: date) -> SettlementReport:
        """
        Bank-channel totals per currency settled on one day, plus exception counts.

        Settled totals follow completed_at, so a payment re-driven on a later
        day counts on the day it settled. Pending, failed and reversed counts
        follow the day the payment was recorded.
        """
        bank = (
            Payment.school_id == scope.school_id,
            Payment.channel == PaymentChannel.BANK.value,
        )
        day_start = datetime.combine(day, time.min).astimezone()
        day_end = datetime.combine(day + timedelta(days=1), time.min).astimezone()

        settled_rows = await self.db.execute(
            select(Payment.currency, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
            .where(
                *bank,
                Payment.status == PaymentStatus.COMPLETED.value,
                Payment.completed_at >= day_start,
                Payment.completed_at < day_end,
            )
            .group_by(Payment.currency)
            .order_by(Payment.currency)
        )
        settled = [
            CurrencyTotal(currency=currency, count=count, total=round_money(total))
            for currency, count, total in settled_rows.all()
        ]

        status_rows = await self.db.execute(
            select(Payment.status, func.count(Payment.id))
            .where(*bank, Payment.payment_date == day)
            .group_by(Payment.status)
        )
        by_status = {status: count for status, count in status_rows.all()}

        return SettlementReport(
            school_code=scope.code,
            day=day,
            settled=settled,
            pending_count=by_status.get(PaymentStatus.PENDING.value, 0),
            failed_count=by_status.get(PaymentStatus.FAILED.value, 0),
            reversed_count=by_status.get(PaymentStatus.REVERSED.value, 0),
        )
