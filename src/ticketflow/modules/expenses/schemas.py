from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ticketflow.modules.expenses.models import ExpenseSource, ExpenseStatus
from ticketflow.modules.extraction.schemas import DocumentType, ExtractedData, PaymentMethod


class ExpenseRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID | None = None
    organization_id: uuid.UUID
    employee_id: uuid.UUID
    category_id: uuid.UUID | None
    project_code_id: uuid.UUID | None
    vendor: str
    expense_date: date
    amount_net: Decimal
    tax_vat: Decimal
    amount_gross: Decimal
    currency: str
    category_suggestion: str
    project_code_guess: str | None
    payment_method: PaymentMethod
    document_type: DocumentType
    status: ExpenseStatus
    source: ExpenseSource
    notes: str | None
    hash_dedupe: str
    idempotency_key: str
    created_at: datetime | None = None


class ExpenseSubmissionIn(BaseModel):
    file_name: str = Field(min_length=1, max_length=512)
    data: ExtractedData


class ExpenseOut(BaseModel):
    expense: ExpenseRecord
    amount_gross_display: str
    duplicate_count: int
