from __future__ import annotations

import logging
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ticketflow.core.context import RequestContext
from ticketflow.core.db import SessionLocal
from ticketflow.core.errors import SubmissionFailed
from ticketflow.modules.catalog.service import SqlCatalog, create_project_code
from ticketflow.modules.expenses.fingerprint import fingerprint
from ticketflow.modules.expenses.models import Expense, ExpenseSource, ExpenseStatus
from ticketflow.modules.expenses.service import SqlExpenseStore, SubmissionOrchestrator
from ticketflow.modules.extraction.schemas import ExtractedData, PaymentMethod
from ticketflow.modules.identity.schemas import Identity
from ticketflow.modules.identity.service import (
    create_organization,
    create_user,
    get_or_create_demo_identity,
    identity_for_user,
)

IDENTITY = Identity(
    organization_id=uuid.uuid4(),
    employee_id=uuid.uuid4(),
    name="Ana",
    email="ana@example.com",
)


def _data(**changes) -> ExtractedData:
    base = ExtractedData(
        vendor="Renfe",
        expense_date="2024-03-02",
        amount_net="40.00",
        tax_vat="4.00",
        amount_gross="44.00",
        currency="EUR",
        category_suggestion="Transporte",
        payment_method_guess=PaymentMethod.CARD,
    )
    return base.with_changes(**changes) if changes else base


class MemoryStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.inserted = []

    def insert(self, record, *, idempotency_key):
        self.inserted.append((record, idempotency_key))
        if self.error is not None:
            raise self.error
        return record.model_copy(update={"id": uuid.uuid4()})


class StaticCatalog:
    def __init__(self, categories=None, projects=None) -> None:
        self.categories = categories or {}
        self.projects = projects or {}

    def category_ids_by_name(self, organization_id):
        return self.categories

    def project_ids_by_code(self, organization_id):
        return self.projects


def _orchestrator(events, store=None, catalog=None) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        store=store or MemoryStore(), catalog=catalog or StaticCatalog(), events=events
    )


def test_submit_builds_a_pending_record_and_inserts_once(events):
    store = MemoryStore()
    context = RequestContext("submit-key-01")

    record = _orchestrator(events, store=store).submit(
        _data(), identity=IDENTITY, file_name="billete.pdf", context=context
    )

    assert len(store.inserted) == 1
    inserted, key = store.inserted[0]
    assert key == "submit-key-01"
    assert inserted.idempotency_key == "submit-key-01"
    assert inserted.status == ExpenseStatus.PENDING
    assert inserted.source == ExpenseSource.AI_EXTRACTED
    assert inserted.organization_id == IDENTITY.organization_id
    assert inserted.employee_id == IDENTITY.employee_id
    assert inserted.hash_dedupe == fingerprint("billete.pdf", "Renfe", _data().expense_date, "44")
    assert record.id is not None


def test_submit_emits_started_and_completed(events):
    record = _orchestrator(events).submit(
        _data(), identity=IDENTITY, file_name="t.jpg", context=RequestContext("submit-key-02")
    )

    assert events.names == ["expense_submission_started", "expense_submission_completed"]
    for event in events.events:
        assert event.fields["request_id"] == "submit-key-02"
        assert event.fields["vendor"] == "Renfe"
        assert event.fields["amount"] == "44.0000"
        assert event.fields["currency"] == "EUR"
    assert events.events[1].fields["expense_id"] == str(record.id)


def test_store_errors_propagate_unchanged(events):
    error = SubmissionFailed("database unavailable")
    store = MemoryStore(error=error)

    with pytest.raises(SubmissionFailed) as exc:
        _orchestrator(events, store=store).submit(
            _data(), identity=IDENTITY, file_name="t.jpg", context=RequestContext("submit-key-03")
        )

    assert exc.value is error
    assert len(store.inserted) == 1
    failed = events.named("expense_submission_failed")
    assert len(failed) == 1
    assert failed[0].level == logging.ERROR
    assert failed[0].fields["error"] == "database unavailable"
    assert "expense_submission_completed" not in events.names


def test_category_resolution_order(events):
    transporte, otros, alojamiento = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    catalog = StaticCatalog(
        categories={"Transporte": transporte, "Otros": otros, "Alojamiento": alojamiento}
    )
    orchestrator = _orchestrator(events, catalog=catalog)
    org = IDENTITY.organization_id

    assert orchestrator.resolve_category_id(org, "Transporte") == transporte
    assert orchestrator.resolve_category_id(org, "TRANSPORTE") == transporte
    assert orchestrator.resolve_category_id(org, "Golf") == otros
    assert orchestrator.resolve_category_id(org, None) == otros


def test_category_falls_back_to_first_by_name_then_none(events):
    alojamiento, viajes = uuid.uuid4(), uuid.uuid4()
    catalog = StaticCatalog(categories={"Viajes": viajes, "Alojamiento": alojamiento})

    assert _orchestrator(events, catalog=catalog).resolve_category_id(
        IDENTITY.organization_id, "Golf"
    ) == alojamiento
    assert _orchestrator(events).resolve_category_id(IDENTITY.organization_id, "Golf") is None


def test_project_code_resolution(events):
    project = uuid.uuid4()
    orchestrator = _orchestrator(events, catalog=StaticCatalog(projects={"PRJ-7": project}))

    assert orchestrator.resolve_project_code_id(IDENTITY.organization_id, "PRJ-7") == project
    assert orchestrator.resolve_project_code_id(IDENTITY.organization_id, "PRJ-8") is None
    assert orchestrator.resolve_project_code_id(IDENTITY.organization_id, None) is None


def _sql_orchestrator(session, events) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(
        store=SqlExpenseStore(session), catalog=SqlCatalog(session), events=events
    )


def test_sql_submission_links_catalog_rows(events):
    with SessionLocal() as session:
        identity = get_or_create_demo_identity(session)
        project = create_project_code(
            session, organization_id=identity.organization_id, code="PRJ-7", name="Launch"
        )

        record = _sql_orchestrator(session, events).submit(
            _data(project_code_guess="PRJ-7"),
            identity=identity,
            file_name="t.jpg",
            context=RequestContext("sql-key-0001"),
        )

        row = session.scalar(select(Expense).where(Expense.id == record.id))
        assert row is not None
        assert row.category is not None
        assert row.category.name == "Transporte"
        assert row.project_code_id == project.id
        assert row.status == ExpenseStatus.PENDING
        assert row.amount_gross == record.amount_gross


def test_repeated_idempotency_key_stores_one_expense(events):
    with SessionLocal() as session:
        identity = get_or_create_demo_identity(session)
        orchestrator = _sql_orchestrator(session, events)
        context = RequestContext("sql-key-0002")

        first = orchestrator.submit(_data(), identity=identity, file_name="t.jpg", context=context)
        second = orchestrator.submit(_data(), identity=identity, file_name="t.jpg", context=context)

        assert first.id == second.id
        assert session.scalar(select(func.count()).select_from(Expense)) == 1


def test_idempotency_keys_are_scoped_to_their_owner(events):
    with SessionLocal() as session:
        owner = get_or_create_demo_identity(session)
        acme = create_organization(session, name="Acme")
        user = create_user(session, organization=acme, email="bea@acme.test")
        other = identity_for_user(user)
        orchestrator = _sql_orchestrator(session, events)
        context = RequestContext("shared-key-001")

        mine = orchestrator.submit(
            _data(vendor="Vendor A"), identity=owner, file_name="t.jpg", context=context
        )
        theirs = orchestrator.submit(
            _data(vendor="Vendor B"), identity=other, file_name="t.jpg", context=context
        )

        assert theirs.id != mine.id
        assert theirs.vendor == "Vendor B"
        assert theirs.organization_id == acme.id
        assert theirs.employee_id == user.id
        assert session.scalar(select(func.count()).select_from(Expense)) == 2

        replay = orchestrator.submit(
            _data(vendor="Vendor B"), identity=other, file_name="t.jpg", context=context
        )
        assert replay.id == theirs.id


def test_concurrent_insert_with_same_key_returns_the_winner(events, monkeypatch):
    with SessionLocal() as session:
        identity = get_or_create_demo_identity(session)
        context = RequestContext("sql-key-0003")
        winner = _sql_orchestrator(session, events).submit(
            _data(), identity=identity, file_name="t.jpg", context=context
        )

        # Second writer misses the pre-check, as if both raced past it.
        loser = SqlExpenseStore(session)
        real_by_key = loser._by_key
        lookups: list[str] = []

        def racing_by_key(record, key):
            lookups.append(key)
            return None if len(lookups) == 1 else real_by_key(record, key)

        monkeypatch.setattr(loser, "_by_key", racing_by_key)
        orchestrator = SubmissionOrchestrator(
            store=loser, catalog=SqlCatalog(session), events=events
        )
        stored = orchestrator.submit(_data(), identity=identity, file_name="t.jpg", context=context)

        assert stored.id == winner.id
        assert len(lookups) == 2
        assert session.scalar(select(func.count()).select_from(Expense)) == 1


def test_database_errors_become_submission_failed(events, monkeypatch):
    with SessionLocal() as session:
        identity = get_or_create_demo_identity(session)

        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", broken_commit)

        with pytest.raises(SubmissionFailed):
            _sql_orchestrator(session, events).submit(
                _data(), identity=identity, file_name="t.jpg", context=RequestContext("sql-key-04")
            )
        assert events.names[-1] == "expense_submission_failed"


def test_injected_limiter_blocks_before_anything_is_stored(events):
    from ticketflow.core.errors import RateLimited
    from ticketflow.core.ratelimit import SlidingWindowRateLimiter

    store = MemoryStore()
    orchestrator = SubmissionOrchestrator(
        store=store,
        catalog=StaticCatalog(),
        events=events,
        limiter=SlidingWindowRateLimiter(max_requests=1, window_seconds=60),
    )
    orchestrator.submit(
        _data(), identity=IDENTITY, file_name="t.jpg", context=RequestContext("limit-key-01")
    )

    with pytest.raises(RateLimited):
        orchestrator.submit(
            _data(), identity=IDENTITY, file_name="t.jpg", context=RequestContext("limit-key-02")
        )

    assert len(store.inserted) == 1
    assert events.names[-1] == "rate_limit_exceeded"
