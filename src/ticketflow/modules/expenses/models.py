from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Enum, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.core.models import Base, OrganizationScoped, Timestamped, UUIDPrimaryKey
from ticketflow.modules.extraction.schemas import DocumentType, PaymentMethod


class ExpenseStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExpenseSource(str, enum.Enum):
    MANUAL = "MANUAL"
    AI_EXTRACTED = "AI_EXTRACTED"


class Expense(UUIDPrimaryKey, OrganizationScoped, Timestamped, Base):
    __tablename__ = "expenses_expense"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "employee_id",
            "idempotency_key",
            name="uq_expense_owner_idempotency_key",
        ),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("catalog_category.id"), nullable=True
    )
    project_code_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("catalog_project_code.id"), nullable=True
    )

    vendor: Mapped[str] = mapped_column(String(200), index=True)
    expense_date: Mapped[date] = mapped_column(Date, index=True)

    amount_net: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    tax_vat: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    amount_gross: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    currency: Mapped[str] = mapped_column(String(3))

    category_suggestion: Mapped[str] = mapped_column(String(100))
    project_code_guess: Mapped[str | None] = mapped_column(String(50), nullable=True)

    payment_method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod, native_enum=False))
    document_type: Mapped[DocumentType] = mapped_column(Enum(DocumentType, native_enum=False))
    status: Mapped[ExpenseStatus] = mapped_column(
        Enum(ExpenseStatus, native_enum=False), index=True
    )
    source: Mapped[ExpenseSource] = mapped_column(Enum(ExpenseSource, native_enum=False))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    hash_dedupe: Mapped[str] = mapped_column(String(64), index=True)
    idempotency_key: Mapped[str] = mapped_column(String(64))

    employee = relationship("User")
    category = relationship("Category")
    project_code = relationship("ProjectCode")
