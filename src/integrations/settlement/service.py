"""Drives a PENDING bank-channel payment to COMPLETED or FAILED."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.exceptions import (
    AlreadyFinalizedError,
    AppException,
    SettlementError,
)
from src.core.notifications import notifications
from src.core.schools.scope import SchoolScope
from src.integrations.settlement.client import SettlementClient
from src.integrations.settlement.models import SettlementLogStatus, SettlementTransactionLog
from src.integrations.settlement.schemas import SettlementResponse, TransferInstruction
from src.integrations.settlement.utils import build_narration, validate_instruction
from src.modules.fees import ledger
from src.modules.fees.service import FeeRecordService
from src.modules.payments.models import Payment, PaymentStatus
from src.modules.students.models import Student

logger = logging.getLogger(__name__)


class SettlementGateway:
    """
    Settles one payment per call against the core banking switch.

    The linked fee record moves only on a confirmed transfer. On any failure
    the payment is marked FAILED with a diagnostic note and the error is
    re-raised; nothing is committed here, the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession, client: SettlementClient | None = None):
        self.db = db
        self.client = client
        self.audit = AuditService(db)
        self.fees = FeeRecordService(db)

    def build_instruction(
        self,
        scope: SchoolScope,
        payment: Payment,
        student: Student,
        parent_account: str,
    ) -> TransferInstruction:
        branch = scope.branch_code or settings.settlement_branch
        validate_instruction(
            parent_account,
            scope.collection_account,
            payment.amount,
            payment.currency,
            payment.currency,
        )
        narration = build_narration(
            payment.currency,
            branch,
            parent_account,
            student.student_ref,
            payment.payment_reference,
        )
        return TransferInstruction(
            SOURCE=settings.settlement_source,
            USERID=settings.settlement_user_id,
            BRANCH=branch,
            PROD=settings.settlement_product,
            BRN=branch,
            TXNCCY=payment.currency,
            TXNBRN=branch,
            TXNACC=parent_account,
            OFFSETCCY=payment.currency,
            OFFSETBRN=branch,
            OFFSETACC=scope.collection_account,
            TXNAMT=payment.amount,
            NARRATION=narration,
            TXNDATE=date.today().isoformat(),
            ACCOUNT_NUMBER=parent_account,
            BENEF_NAME=scope.name,
            BRANCH_CODE=branch,
            CUSTOMERS_BANK_NAME=settings.settlement_bank_name,
            MSGID=payment.bank_transaction_id,
            CORRELID=payment.payment_reference,
        )

    async def settle(
        self,
        scope: SchoolScope,
        payment: Payment,
        student: Student,
        parent_account: str | None = None,
    ) -> Payment:
        """Submit the transfer and apply the outcome. Raises on failure after marking FAILED."""
        if payment.is_terminal:
            raise AlreadyFinalizedError(payment.payment_reference, payment.status)
        if self.client is None:
            raise SettlementError("Settlement client is not configured", code="CONFIG")

        parent_account = parent_account or payment.parent_account_number or ""
        started = time.monotonic()
        log_entry: SettlementTransactionLog | None = None
        response: SettlementResponse | None = None

        try:
            instruction = self.build_instruction(scope, payment, student, parent_account)
            log_entry = SettlementTransactionLog(
                school_id=scope.school_id,
                payment_id=payment.id,
                correlation_id=instruction.CORRELID,
                request_payload=instruction.to_wire(),
                narration=instruction.NARRATION,
                txn_account=instruction.TXNACC,
                offset_account=instruction.OFFSETACC,
                amount=payment.amount,
                currency=payment.currency,
                status=SettlementLogStatus.PENDING.value,
            )
            self.db.add(log_entry)
            await self.db.flush()

            logger.info(
                "Submitting settlement for %s: %s %s from %s",
                payment.payment_reference,
                payment.amount,
                payment.currency,
                parent_account,
            )
            response = await self._submit(payment, instruction)
            self._record_response(log_entry, response)

            if not response.is_success(
                settings.settlement_success_code, settings.settlement_success_status
            ):
                raise SettlementError(
                    f"Settlement rejected: {response.describe()}", code=response.response
                )
        except AppException as exc:
            await self._fail(scope, payment, log_entry, exc, started)
            raise

        await self._complete(scope, payment, response, log_entry, started)
        return payment

    async def complete_without_transfer(self, scope: SchoolScope, payment: Payment) -> Payment:
        """Test mode: settle without contacting the switch."""
        if payment.is_terminal:
            raise AlreadyFinalizedError(payment.payment_reference, payment.status)
        logger.warning(
            "Settlement disabled: %s marked COMPLETED without fund transfer",
            payment.payment_reference,
        )
        payment.add_note("Settlement disabled: completed without fund transfer")
        await self._complete(scope, payment, None, None, None)
        return payment

    async def _submit(
        self, payment: Payment, instruction: TransferInstruction
    ) -> SettlementResponse:
        """Client errors that are not AppExceptions still fail the payment."""
        try:
            return await self.client.transfer(instruction)
        except AppException:
            raise
        except Exception as exc:
            logger.exception("Unexpected settlement error for %s", payment.payment_reference)
            raise SettlementError(
                f"Unexpected settlement response: {exc}", code="INVALID_RESPONSE"
            ) from exc

    @staticmethod
    def _record_response(log_entry: SettlementTransactionLog, response: SettlementResponse) -> None:
        log_entry.response_payload = response.raw
        log_entry.http_status_code = response.http_status
        log_entry.response_code = response.response
        log_entry.response_message = (response.message or "")[:500] or None
        log_entry.settlement_reference = response.settlement_reference

    async def _complete(
        self,
        scope: SchoolScope,
        payment: Payment,
        response: SettlementResponse | None,
        log_entry: SettlementTransactionLog | None,
        started: float | None,
    ) -> None:
        payment.status = PaymentStatus.COMPLETED.value
        payment.completed_at = datetime.now().astimezone()
        if response is not None:
            payment.settlement_reference = response.settlement_reference
            value_date = response.response_value("VALUE_DT")
            if value_date:
                try:
                    payment.settlement_value_date = date.fromisoformat(value_date[:10])
                except ValueError:
                    logger.warning("Unparseable settlement value date %r", value_date)
        if log_entry is not None and started is not None:
            log_entry.mark(SettlementLogStatus.SUCCESS, duration_ms=_elapsed_ms(started))

        if payment.fee_record_id is not None:
            record = await self.fees.get_for_update(scope, payment.fee_record_id)
            old_outstanding = record.outstanding_balance
            ledger.apply_payment(record, payment.amount)
            logger.info(
                "Fee record %s: outstanding %s -> %s (%s)",
                record.id,
                old_outstanding,
                record.outstanding_balance,
                record.payment_status,
            )
        else:
            logger.warning(
                "Payment %s has no fee record, balance not updated", payment.payment_reference
            )

        await self.db.flush()
        await self.audit.log(
            action=AuditAction.SETTLE_PAYMENT,
            entity_type="Payment",
            entity_id=payment.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=payment.payment_reference,
            old_values={"status": PaymentStatus.PENDING.value},
            new_values={
                "status": payment.status,
                "settlement_reference": payment.settlement_reference,
            },
        )
        notifications.payment_completed(scope.code, payment.payment_reference, payment.amount)

    async def _fail(
        self,
        scope: SchoolScope,
        payment: Payment,
        log_entry: SettlementTransactionLog | None,
        exc: AppException,
        started: float,
    ) -> None:
        code = exc.details.get("code") if isinstance(exc, SettlementError) else "VALIDATION"
        logger.error("Settlement failed for %s: %s", payment.payment_reference, exc.message)

        payment.status = PaymentStatus.FAILED.value
        payment.add_note(f"Settlement error: {exc.message}")
        if log_entry is not None:
            status = (
                SettlementLogStatus.TIMEOUT if code == "TIMEOUT" else SettlementLogStatus.FAILED
            )
            log_entry.mark(
                status,
                duration_ms=_elapsed_ms(started),
                error_code=code or "API_ERROR",
                error_message=exc.message,
            )
        await self.db.flush()
        await self.audit.log(
            action=AuditAction.SETTLEMENT_FAILED,
            entity_type="Payment",
            entity_id=payment.id,
            actor=scope.actor,
            school_id=scope.school_id,
            entity_identifier=payment.payment_reference,
            old_values={"status": PaymentStatus.PENDING.value},
            new_values={"status": payment.status},
            comment=exc.message,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
