"""create credit ledger tables

Revision ID: 7c3e9a2f41d0
Revises: 
Create Date: 2026-10-18 09:30:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7c3e9a2f41d0"
down_revision = None
branch_labels = None
depends_on = None

# 金额以百万分之一为单位的整数存储
AMOUNT = sa.BigInteger()
PENDING_MINT = sa.text("status = 'PENDING' AND transaction_type = 'MINT'")


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("wallet_address", sa.String(length=255)),
        sa.Column("location", sa.String(length=255)),
        sa.Column("website", sa.String(length=255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_companies_wallet_address", "companies", ["wallet_address"], unique=True)

    op.create_table(
        "applications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("api_key", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_applications_company_id", "applications", ["company_id"])
    op.create_index("ix_applications_api_key", "applications", ["api_key"], unique=True)

    op.create_table(
        "devices",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("application_id", sa.String(length=36), sa.ForeignKey("applications.id")),
        sa.Column("device_type", sa.String(length=20), nullable=False, server_default="SEQUESTER"),
        sa.Column("name", sa.String(length=150)),
        sa.Column("location", sa.String(length=255)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_seen_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_devices_company_id", "devices", ["company_id"])

    op.create_table(
        "credit_transaction",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("device_id", sa.String(length=64), sa.ForeignKey("devices.id"), nullable=False),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("transaction_type", sa.String(length=10), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("external_ref", sa.String(length=255)),
        sa.Column("error_message", sa.Text()),
        sa.Column("evidence", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount >= 0", name="ck_credit_transaction_amount"),
    )
    op.create_index("ix_credit_transaction_company_id", "credit_transaction", ["company_id"])
    op.create_index("ix_credit_transaction_created_at", "credit_transaction", ["created_at"])
    op.create_index("ix_credit_transaction_device_status", "credit_transaction", ["device_id", "status"])
    op.create_index(
        "uq_credit_transaction_pending_mint",
        "credit_transaction",
        ["device_id"],
        unique=True,
        sqlite_where=PENDING_MINT,
        postgresql_where=PENDING_MINT,
    )

    op.create_table(
        "credit_accrual",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.String(length=64), sa.ForeignKey("devices.id"), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("credits_earned", AMOUNT, nullable=False, server_default="0"),
        sa.Column("co2_reduced", AMOUNT, nullable=False, server_default="0"),
        sa.Column("energy_saved", AMOUNT, nullable=False, server_default="0"),
        sa.Column("samples_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_id", sa.String(length=36), sa.ForeignKey("credit_transaction.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("device_id", "window_end", name="uq_credit_accrual_device_window"),
    )
    op.create_index("ix_credit_accrual_device_id", "credit_accrual", ["device_id"])

    op.create_table(
        "company_credit",
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id"), primary_key=True),
        sa.Column("total_credit", AMOUNT, nullable=False, server_default="0"),
        sa.Column("current_credit", AMOUNT, nullable=False, server_default="0"),
        sa.Column("sold_credit", AMOUNT, nullable=False, server_default="0"),
        sa.Column("pending_burn", AMOUNT, nullable=False, server_default="0"),
        sa.Column("retired_credit", AMOUNT, nullable=False, server_default="0"),
        sa.Column("offer_price", AMOUNT),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("current_credit >= 0", name="ck_company_credit_current_non_negative"),
        sa.CheckConstraint("pending_burn >= 0", name="ck_company_credit_pending_burn_non_negative"),
    )

    op.create_table(
        "credit_sale_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.String(length=36), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("sold_amount", AMOUNT, nullable=False),
        sa.Column("sold_price", AMOUNT, nullable=False),
        sa.Column("buyer_info", sa.String(length=255)),
        sa.Column("sold_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_credit_sale_history_company_id", "credit_sale_history", ["company_id"])


def downgrade() -> None:
    op.drop_index("ix_credit_sale_history_company_id", table_name="credit_sale_history")
    op.drop_table("credit_sale_history")
    op.drop_table("company_credit")
    op.drop_index("ix_credit_accrual_device_id", table_name="credit_accrual")
    op.drop_table("credit_accrual")
    op.drop_index("uq_credit_transaction_pending_mint", table_name="credit_transaction")
    op.drop_index("ix_credit_transaction_device_status", table_name="credit_transaction")
    op.drop_index("ix_credit_transaction_created_at", table_name="credit_transaction")
    op.drop_index("ix_credit_transaction_company_id", table_name="credit_transaction")
    op.drop_table("credit_transaction")
    op.drop_index("ix_devices_company_id", table_name="devices")
    op.drop_table("devices")
    op.drop_index("ix_applications_api_key", table_name="applications")
    op.drop_index("ix_applications_company_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_companies_wallet_address", table_name="companies")
    op.drop_table("companies")
