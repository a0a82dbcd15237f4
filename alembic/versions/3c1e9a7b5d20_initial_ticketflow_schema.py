"""initial ticketflow schema

Revision ID: 3c1e9a7b5d20
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e9a7b5d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "identity_organization",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("default_currency", sa.String(length=3), nullable=False),
        sa.Column("is_demo", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "identity_user",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "organization_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("identity_organization.id"),
            nullable=False,
        ),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("role", sa.String(length=8), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_identity_user_organization_id", "identity_user", ["organization_id"])
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)
    op.create_index("ix_identity_user_role", "identity_user", ["role"])

    op.create_table(
        "catalog_category",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "organization_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("identity_organization.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("organization_id", "name", name="uq_category_org_name"),
    )
    op.create_index(
        "ix_catalog_category_organization_id", "catalog_category", ["organization_id"]
    )

    op.create_table(
        "catalog_project_code",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "organization_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("identity_organization.id"),
            nullable=False,
        ),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("organization_id", "code", name="uq_project_code_org_code"),
    )
    op.create_index(
        "ix_catalog_project_code_organization_id", "catalog_project_code", ["organization_id"]
    )

    op.create_table(
        "expenses_expense",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "organization_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("identity_organization.id"),
            nullable=False,
        ),
        sa.Column(
            "employee_id", sa.Uuid(as_uuid=True), sa.ForeignKey("identity_user.id"), nullable=False
        ),
        sa.Column(
            "category_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("catalog_category.id"),
            nullable=True,
        ),
        sa.Column(
            "project_code_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("catalog_project_code.id"),
            nullable=True,
        ),
        sa.Column("vendor", sa.String(length=200), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("amount_net", sa.Numeric(18, 4), nullable=False),
        sa.Column("tax_vat", sa.Numeric(18, 4), nullable=False),
        sa.Column("amount_gross", sa.Numeric(18, 4), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("category_suggestion", sa.String(length=100), nullable=False),
        sa.Column("project_code_guess", sa.String(length=50), nullable=True),
        sa.Column("payment_method", sa.String(length=8), nullable=False),
        sa.Column("document_type", sa.String(length=7), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("source", sa.String(length=12), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("hash_dedupe", sa.String(length=64), nullable=False),
        sa.Column("idempotency_key", sa.String(length=64), nullable=False),
        sa.UniqueConstraint(
            "organization_id",
            "employee_id",
            "idempotency_key",
            name="uq_expense_owner_idempotency_key",
        ),
    )
    op.create_index(
        "ix_expenses_expense_organization_id", "expenses_expense", ["organization_id"]
    )
    op.create_index("ix_expenses_expense_employee_id", "expenses_expense", ["employee_id"])
    op.create_index("ix_expenses_expense_vendor", "expenses_expense", ["vendor"])
    op.create_index("ix_expenses_expense_expense_date", "expenses_expense", ["expense_date"])
    op.create_index("ix_expenses_expense_status", "expenses_expense", ["status"])
    op.create_index("ix_expenses_expense_hash_dedupe", "expenses_expense", ["hash_dedupe"])


def downgrade() -> None:
    op.drop_index("ix_expenses_expense_hash_dedupe", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_status", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_expense_date", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_vendor", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_employee_id", table_name="expenses_expense")
    op.drop_index("ix_expenses_expense_organization_id", table_name="expenses_expense")
    op.drop_table("expenses_expense")
    op.drop_index("ix_catalog_project_code_organization_id", table_name="catalog_project_code")
    op.drop_table("catalog_project_code")
    op.drop_index("ix_catalog_category_organization_id", table_name="catalog_category")
    op.drop_table("catalog_category")
    op.drop_index("ix_identity_user_role", table_name="identity_user")
    op.drop_index("ix_identity_user_email", table_name="identity_user")
    op.drop_index("ix_identity_user_organization_id", table_name="identity_user")
    op.drop_table("identity_user")
    op.drop_table("identity_organization")
