from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ticketflow.core.context import RequestContext
from ticketflow.core.errors import SubmissionFailed
from ticketflow.core.logging import EventLogger
from ticketflow.core.ratelimit import RateLimiter, enforce_rate_limit
from ticketflow.modules.catalog.service import default_category_name
from ticketflow.modules.expenses.fingerprint import fingerprint
from ticketflow.modules.expenses.models import Expense, ExpenseSource, ExpenseStatus
from ticketflow.modules.expenses.schemas import ExpenseRecord
from ticketflow.modules.extraction.schemas import ExtractedData
from ticketflow.modules.identity.schemas import Identity


class ExpenseStore(Protocol):
    def insert(self, record: ExpenseRecord, *, idempotency_key: str) -> ExpenseRecord: ...


class CatalogLookup(Protocol):
    def category_ids_by_name(self, organization_id: uuid.UUID) -> Mapping[str, uuid.UUID]: ...

    def project_ids_by_code(self, organization_id: uuid.UUID) -> Mapping[str, uuid.UUID]: ...


class SqlExpenseStore:
    """
    Inserts expenses keyed by (organization, employee, idempotency key).

    A key the same employee already stored returns that row instead of writing a
    second one; the unique constraint covers two writers racing on the same key.
    Keys are never matched across owners.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, record: ExpenseRecord, *, idempotency_key: str) -> ExpenseRecord:
        existing = self._by_key(record, idempotency_key)
        if existing is not None:
            return ExpenseRecord.model_validate(existing)

        row = Expense(
            **record.model_dump(exclude={"id", "created_at", "idempotency_key"}),
            idempotency_key=idempotency_key,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            existing = self._by_key(record, idempotency_key)
            if existing is not None:
                return ExpenseRecord.model_validate(existing)
            raise SubmissionFailed(f"Could not store the expense: {e.orig}") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SubmissionFailed(f"Could not store the expense: {e}") from e
        self.session.refresh(row)
        return ExpenseRecord.model_validate(row)

    def _by_key(self, record: ExpenseRecord, idempotency_key: str) -> Expense | None:
        return self.session.scalar(
            select(Expense).where(
                Expense.organization_id == record.organization_id,
                Expense.employee_id == record.employee_id,
                Expense.idempotency_key == idempotency_key,
            )
        )


class SubmissionOrchestrator:
    """Turns a reviewed `ExtractedData` into one stored expense."""

    def __init__(
        self,
        *,
        store: ExpenseStore,
        catalog: CatalogLookup,
        events: EventLogger,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.events = events
        self.limiter = limiter

    def submit(
        self,
        data: ExtractedData,
        *,
        identity: Identity,
        file_name: str,
        context: RequestContext,
    ) -> ExpenseRecord:
        if self.limiter is not None:
            enforce_rate_limit(
                self.limiter,
                f"submit:{identity.employee_id}",
                context=context,
                events=self.events,
            )
        fields = {
            "request_id": context.request_id,
            "vendor": data.vendor,
            "amount": str(data.amount_gross),
            "currency": data.currency,
        }
        self.events.emit(
            "expense_submission_started", employee_id=str(identity.employee_id), **fields
        )
        try:
            record = self.build_record(
                data, identity=identity, file_name=file_name, context=context
            )
            stored = self.store.insert(record, idempotency_key=context.request_id)
        except Exception as e:
            self.events.emit(
                "expense_submission_failed",
                level=logging.ERROR,
                error=str(e),
                error_type=type(e).__name__,
                **fields,
            )
            raise
        self.events.emit(
            "expense_submission_completed",
            expense_id=str(stored.id) if stored.id else None,
            **fields,
        )
        return stored

    def build_record(
        self,
        data: ExtractedData,
        *,
        identity: Identity,
        file_name: str,
        context: RequestContext,
    ) -> ExpenseRecord:
        return ExpenseRecord(
            organization_id=identity.organization_id,
            employee_id=identity.employee_id,
            category_id=self.resolve_category_id(
                identity.organization_id, data.category_suggestion
            ),
            project_code_id=self.resolve_project_code_id(
                identity.organization_id, data.project_code_guess
            ),
            vendor=data.vendor,
            expense_date=data.expense_date,
            amount_net=data.amount_net,
            tax_vat=data.tax_vat,
            amount_gross=data.amount_gross,
            currency=data.currency,
            category_suggestion=data.category_suggestion,
            project_code_guess=data.project_code_guess,
            payment_method=data.payment_method_guess,
            document_type=data.document_type,
            status=ExpenseStatus.PENDING,
            source=ExpenseSource.AI_EXTRACTED,
            notes=data.notes,
            hash_dedupe=fingerprint(
                file_name, data.vendor, data.expense_date, data.amount_gross
            ),
            idempotency_key=context.request_id,
        )

    def resolve_category_id(
        self, organization_id: uuid.UUID, suggestion: str | None
    ) -> uuid.UUID | None:
        by_name = self.catalog.category_ids_by_name(organization_id)
        if not by_name:
            return None
        if suggestion and suggestion in by_name:
            return by_name[suggestion]

        folded = {name.casefold(): cid for name, cid in by_name.items()}
        if suggestion and suggestion.strip().casefold() in folded:
            return folded[suggestion.strip().casefold()]
        fallback = folded.get(default_category_name().casefold())
        if fallback is not None:
            return fallback
        return by_name[min(by_name)]

    def resolve_project_code_id(
        self, organization_id: uuid.UUID, code: str | None
    ) -> uuid.UUID | None:
        if not code:
            return None
        return self.catalog.project_ids_by_code(organization_id).get(code.strip())


def list_expenses(session: Session, *, identity: Identity, limit: int = 100) -> list[Expense]:
    return list(
        session.scalars(
            select(Expense)
            .where(
                Expense.organization_id == identity.organization_id,
                Expense.employee_id == identity.employee_id,
            )
            .order_by(Expense.created_at.desc())
            .limit(limit)
        )
    )
