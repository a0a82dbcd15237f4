from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ticketflow.api.deps import (
    get_current_identity,
    get_events,
    get_rate_limiter,
    get_request_context,
)
from ticketflow.core.context import RequestContext
from ticketflow.core.currencies import format_amount
from ticketflow.core.db import db_session
from ticketflow.core.logging import EventLogger
from ticketflow.core.ratelimit import RateLimiter
from ticketflow.modules.catalog.service import SqlCatalog
from ticketflow.modules.expenses.fingerprint import find_duplicates
from ticketflow.modules.expenses.schemas import ExpenseOut, ExpenseRecord, ExpenseSubmissionIn
from ticketflow.modules.expenses.service import (
    SqlExpenseStore,
    SubmissionOrchestrator,
    list_expenses,
)
from ticketflow.modules.identity.schemas import Identity

router = APIRouter(tags=["expenses"])


def _expense_out(session: Session, record: ExpenseRecord) -> ExpenseOut:
    duplicates = find_duplicates(
        session,
        organization_id=record.organization_id,
        hash_dedupe=record.hash_dedupe,
        exclude_id=record.id,
    )
    return ExpenseOut(
        expense=record,
        amount_gross_display=format_amount(record.amount_gross, record.currency),
        duplicate_count=len(duplicates),
    )


@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def submit_expense_endpoint(
    payload: ExpenseSubmissionIn,
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
    context: RequestContext = Depends(get_request_context),
    events: EventLogger = Depends(get_events),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ExpenseOut:
    orchestrator = SubmissionOrchestrator(
        store=SqlExpenseStore(session),
        catalog=SqlCatalog(session),
        events=events,
        limiter=limiter,
    )
    record = orchestrator.submit(
        payload.data, identity=identity, file_name=payload.file_name, context=context
    )
    return _expense_out(session, record)


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses_endpoint(
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> list[ExpenseOut]:
    return [
        _expense_out(session, ExpenseRecord.model_validate(expense))
        for expense in list_expenses(session, identity=identity)
    ]
