from __future__ import annotations

import hashlib
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.decimals import canonical_string
from ticketflow.modules.expenses.models import Expense

FINGERPRINT_SEPARATOR = "|"


def fingerprint(
    file_name: str, vendor: str, expense_date: date | str, amount_gross: Decimal | float | str
) -> str:
    """
    Dedupe key for one physical receipt: SHA-256 over name, vendor, date and gross.

    The amount goes in as plain decimal text (`30.86`, `121`), never a localized
    display string, so the same receipt hashes the same whatever the UI locale.
    """
    day = expense_date.isoformat() if isinstance(expense_date, date) else str(expense_date)
    text = FINGERPRINT_SEPARATOR.join(
        [file_name, vendor, day, canonical_string(amount_gross)]
    )
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def find_duplicates(
    session: Session,
    *,
    organization_id: uuid.UUID,
    hash_dedupe: str,
    exclude_id: uuid.UUID | None = None,
) -> list[Expense]:
    stmt = select(Expense).where(
        Expense.organization_id == organization_id, Expense.hash_dedupe == hash_dedupe
    )
    if exclude_id is not None:
        stmt = stmt.where(Expense.id != exclude_id)
    return list(session.scalars(stmt.order_by(Expense.created_at)))
