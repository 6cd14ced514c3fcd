"""Initial tables: schools, students, fee ledger, payments, settlement, promotions

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(15, 2), nullable=nullable, server_default="0.00")


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB, "postgresql")


def upgrade() -> None:
    # Schools (tenants)
    op.create_table(
        "schools",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("school_type", sa.String(20), nullable=False, server_default="PRIMARY"),
        sa.Column("collection_account", sa.String(50), nullable=True),
        sa.Column("branch_code", sa.String(20), nullable=True),
        sa.Column("continue_to_a_level", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_schools_code", "schools", ["code"], unique=True)

    # Students
    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_ref", sa.String(50), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("grade", sa.String(50), nullable=True),
        sa.Column("class_name", sa.String(50), nullable=True),
        sa.Column("completion_status", sa.String(30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"]),
        sa.UniqueConstraint("school_id", "student_ref", name="uq_students_school_ref"),
    )
    op.create_index("ix_students_school_id", "students", ["school_id"])
    op.create_index("ix_students_student_ref", "students", ["student_ref"])

    # Fee records (one per student, year, term, currency)
    op.create_table(
        "fee_records",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("term", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("fee_category", sa.String(20), nullable=False, server_default="STANDARD"),
        _money("tuition_fee"),
        _money("boarding_fee"),
        _money("development_levy"),
        _money("exam_fee"),
        _money("other_fees"),
        _money("scholarship_amount"),
        _money("sibling_discount"),
        _money("early_payment_discount"),
        _money("previous_balance"),
        _money("amount_paid"),
        _money("gross_amount"),
        _money("net_amount"),
        _money("outstanding_balance"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="ARREARS"),
        sa.Column("bursar_notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
    )
    op.create_index("ix_fee_records_school_id", "fee_records", ["school_id"])
    op.create_index("ix_fee_records_student_id", "fee_records", ["student_id"])
    op.create_index("ix_fee_records_payment_status", "fee_records", ["payment_status"])
    op.create_index(
        "uq_fee_records_active_period",
        "fee_records",
        ["school_id", "student_id", "year", "term", "currency"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_reference", sa.String(50), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("fee_record_id", sa.BigInteger(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_method", sa.String(30), nullable=False),
        sa.Column("channel", sa.String(10), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("transaction_reference", sa.String(100), nullable=True),
        sa.Column("received_by", sa.String(150), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("bank_branch", sa.String(100), nullable=True),
        sa.Column("teller_name", sa.String(100), nullable=True),
        sa.Column("parent_account_number", sa.String(50), nullable=True),
        sa.Column("bank_transaction_id", sa.String(100), nullable=True),
        sa.Column("settlement_reference", sa.String(100), nullable=True),
        sa.Column("settlement_value_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversal_reason", sa.Text(), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"]),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["fee_record_id"], ["fee_records.id"]),
    )
    op.create_index("ix_payments_payment_reference", "payments", ["payment_reference"], unique=True)
    op.create_index("ix_payments_school_id", "payments", ["school_id"])
    op.create_index("ix_payments_student_id", "payments", ["student_id"])
    op.create_index("ix_payments_fee_record_id", "payments", ["fee_record_id"])
    op.create_index("ix_payments_channel", "payments", ["channel"])
    op.create_index("ix_payments_payment_date", "payments", ["payment_date"])
    op.create_index("ix_payments_status", "payments", ["status"])

    # Settlement request/response log
    op.create_table(
        "settlement_transaction_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_id", sa.BigInteger(), nullable=True),
        sa.Column("correlation_id", sa.String(100), nullable=True),
        sa.Column("request_payload", JSON_TYPE, nullable=True),
        sa.Column("narration", sa.String(255), nullable=True),
        sa.Column("txn_account", sa.String(50), nullable=True),
        sa.Column("offset_account", sa.String(50), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("response_payload", JSON_TYPE, nullable=True),
        sa.Column("http_status_code", sa.Integer(), nullable=True),
        sa.Column("response_code", sa.String(20), nullable=True),
        sa.Column("response_message", sa.String(500), nullable=True),
        sa.Column("settlement_reference", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column(
            "requested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_settlement_transaction_logs_school_id", "settlement_transaction_logs", ["school_id"]
    )
    op.create_index(
        "ix_settlement_transaction_logs_payment_id", "settlement_transaction_logs", ["payment_id"]
    )
    op.create_index(
        "ix_settlement_transaction_logs_correlation_id",
        "settlement_transaction_logs",
        ["correlation_id"],
    )
    op.create_index(
        "ix_settlement_transaction_logs_status", "settlement_transaction_logs", ["status"]
    )
    op.create_index(
        "ix_settlement_transaction_logs_requested_at",
        "settlement_transaction_logs",
        ["requested_at"],
    )

    # Per-school document number sequences
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "school_id", "prefix", "year", name="uq_document_sequence_school_prefix_year"
        ),
    )

    # Audit logs
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=True),
        sa.Column("actor", sa.String(100), nullable=False, server_default="SYSTEM"),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", postgresql.JSONB(), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_school_id", "audit_logs", ["school_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Academic year configs (scheduled year-end promotion)
    op.create_table(
        "academic_year_configs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("end_of_year_date", sa.Date(), nullable=False),
        sa.Column("next_year", sa.Integer(), nullable=False),
        sa.Column("next_term", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("carry_forward_balances", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("fee_structures", JSON_TYPE, nullable=True),
        sa.Column("default_fee_structure", JSON_TYPE, nullable=True),
        sa.Column(
            "promotion_status", sa.String(20), nullable=False, server_default="SCHEDULED"
        ),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("students_promoted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("students_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("promotion_errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"]),
        sa.UniqueConstraint(
            "school_id", "academic_year", name="uq_academic_year_config_school_year"
        ),
    )
    op.create_index("ix_academic_year_configs_school_id", "academic_year_configs", ["school_id"])
    op.create_index(
        "ix_academic_year_configs_end_of_year_date", "academic_year_configs", ["end_of_year_date"]
    )
    op.create_index(
        "ix_academic_year_configs_promotion_status", "academic_year_configs", ["promotion_status"]
    )


def downgrade() -> None:
    op.drop_table("academic_year_configs")
    op.drop_table("audit_logs")
    op.drop_table("document_sequences")
    op.drop_table("settlement_transaction_logs")
    op.drop_table("payments")
    op.drop_table("fee_records")
    op.drop_table("students")
    op.drop_table("schools")
