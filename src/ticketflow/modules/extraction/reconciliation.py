from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from ticketflow.core import decimals
from ticketflow.core.config import settings
from ticketflow.core.context import RequestContext
from ticketflow.core.currencies import is_valid_currency_code
from ticketflow.core.errors import InvalidAmount, InvalidCurrency, InvalidExtraction
from ticketflow.core.logging import EventLogger
from ticketflow.modules.catalog.service import DEFAULT_CATEGORY_NAMES, FALLBACK_CATEGORY_NAME
from ticketflow.modules.extraction.schemas import DocumentType, ExtractedData, PaymentMethod

_CATEGORY_BY_KEY = {name.casefold(): name for name in DEFAULT_CATEGORY_NAMES}


@dataclass(frozen=True)
class Reconciliation:
    data: ExtractedData
    gross_adjusted: bool
    reported_gross: Decimal


def reconcile(
    raw: Mapping[str, Any],
    *,
    context: RequestContext,
    events: EventLogger,
    tolerance: Decimal | None = None,
) -> Reconciliation:
    """
    Turn a raw extraction candidate into a consistent `ExtractedData`.

    Net and VAT are trusted over the reported gross: when gross is off from
    net + VAT by more than the tolerance it is replaced by the sum.
    """
    currency = raw.get("currency")
    code = currency.strip().upper() if isinstance(currency, str) else currency
    if not is_valid_currency_code(code):
        events.emit(
            "invalid_currency_extracted",
            level=logging.ERROR,
            request_id=context.request_id,
            currency=str(currency),
        )
        raise InvalidCurrency(currency, context=context)

    net = _amount(raw, "amount_net", context=context)
    vat = _amount(raw, "tax_vat", context=context)
    gross = _amount(raw, "amount_gross", context=context)

    limit = tolerance if tolerance is not None else settings.reconciliation_tolerance
    expected_gross = decimals.total_with_vat(net, vat)
    discrepancy = abs(decimals.subtract(gross, expected_gross))
    adjusted = discrepancy > limit
    if adjusted:
        events.emit(
            "reconciliation_gross_adjusted",
            request_id=context.request_id,
            reported_gross=str(gross),
            expected_gross=str(expected_gross),
            discrepancy=str(discrepancy),
            currency=code,
        )

    try:
        data = ExtractedData(
            vendor=raw.get("vendor") or "",
            expense_date=raw.get("expense_date"),
            amount_net=net,
            tax_vat=vat,
            amount_gross=expected_gross if adjusted else gross,
            currency=code,
            category_suggestion=_category(raw.get("category_suggestion")),
            payment_method_guess=_payment_method(raw.get("payment_method_guess")),
            project_code_guess=_optional_text(raw.get("project_code_guess")),
            document_type=_document_type(raw.get("document_type")),
            notes=_optional_text(raw.get("notes")),
        )
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise InvalidExtraction(
            f"Extracted data is not storable: {', '.join(fields)}", context=context
        ) from e
    return Reconciliation(data=data, gross_adjusted=adjusted, reported_gross=gross)


def _amount(raw: Mapping[str, Any], field: str, *, context: RequestContext) -> Decimal:
    value = raw.get(field)
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"{field} is missing", context=context)
    try:
        return decimals.round_amount(value)
    except ValueError as e:
        raise InvalidAmount(f"{field} is not a usable amount: {value!r}", context=context) from e


def _category(value: Any) -> str:
    if not isinstance(value, str):
        return FALLBACK_CATEGORY_NAME
    return _CATEGORY_BY_KEY.get(value.strip().casefold(), FALLBACK_CATEGORY_NAME)


def _payment_method(value: Any) -> PaymentMethod:
    if not isinstance(value, str) or not value.strip():
        return PaymentMethod.CARD
    try:
        return PaymentMethod(value.strip().upper())
    except ValueError:
        return PaymentMethod.OTHER


def _document_type(value: Any) -> DocumentType:
    if not isinstance(value, str):
        return DocumentType.TICKET
    try:
        return DocumentType(value.strip().upper())
    except ValueError:
        return DocumentType.TICKET


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None
