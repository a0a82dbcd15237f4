from __future__ import annotations

import enum
from datetime import date
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from ticketflow.core.currencies import is_valid_currency_code
from ticketflow.core.decimals import round_amount
from ticketflow.modules.catalog.service import FALLBACK_CATEGORY_NAME


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class DocumentType(str, enum.Enum):
    TICKET = "TICKET"
    FACTURA = "FACTURA"


def _parse_iso_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("expense_date must be a YYYY-MM-DD string")
    return date.fromisoformat(value.strip())


_Amount = Annotated[float, Field(strict=True, allow_inf_nan=False)]
_NonEmpty = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]
_Vendor = Annotated[
    str, StringConstraints(strict=True, strip_whitespace=True, min_length=1, max_length=200)
]
_ProjectCode = Annotated[str, StringConstraints(max_length=50)]


class RawCandidate(BaseModel):
    """
    Shape the extraction service must return.

    Conformance only; business rules (currency membership, gross = net + VAT) are
    checked later by reconciliation.
    """

    model_config = ConfigDict(extra="forbid")

    vendor: _Vendor
    expense_date: date
    amount_gross: _Amount
    tax_vat: _Amount
    amount_net: _Amount
    currency: _NonEmpty
    category_suggestion: str | None
    payment_method_guess: str | None
    document_type: str | None
    project_code_guess: _ProjectCode | None = None
    notes: str | None = None

    @field_validator("expense_date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> date:
        return _parse_iso_date(value)


class ExtractedData(BaseModel):
    model_config = ConfigDict(frozen=True)

    vendor: str = Field(min_length=1, max_length=200)
    expense_date: date
    amount_net: Decimal
    tax_vat: Decimal
    amount_gross: Decimal
    currency: str
    category_suggestion: str = FALLBACK_CATEGORY_NAME
    payment_method_guess: PaymentMethod = PaymentMethod.CARD
    project_code_guess: str | None = Field(default=None, max_length=50)
    document_type: DocumentType = DocumentType.TICKET
    notes: str | None = None

    @field_validator("vendor", mode="before")
    @classmethod
    def _strip_vendor(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("expense_date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> date:
        return _parse_iso_date(value)

    @field_validator("amount_net", "tax_vat", "amount_gross", mode="before")
    @classmethod
    def _internal_precision(cls, value: Any) -> Decimal:
        return round_amount(value)

    @field_validator("currency")
    @classmethod
    def _supported_currency(cls, value: str) -> str:
        if not is_valid_currency_code(value):
            raise ValueError(f"Unsupported currency: {value}")
        return value

    @field_validator("project_code_guess", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    def with_changes(self, **changes: Any) -> ExtractedData:
        """Edited copy, validated like a fresh instance."""
        return type(self).model_validate({**self.model_dump(), **changes})


class DisplayAmounts(BaseModel):
    amount_net: str
    tax_vat: str
    amount_gross: str


class TicketAnalysisOut(BaseModel):
    request_id: str
    file_name: str
    attempts: int
    gross_adjusted: bool
    reported_gross: Decimal | None
    data: ExtractedData
    display: DisplayAmounts

