from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import pytest

# Set env before any ticketflow imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.ticketflow_test.db")
os.environ.setdefault("EXTRACTION_API_KEY", "")

from ticketflow.core.logging import EventLogger, get_logger  # noqa: E402


@dataclass
class RecordedEvent:
    name: str
    level: int
    fields: dict[str, Any] = field(default_factory=dict)


class RecordingEventLogger(EventLogger):
    def __init__(self) -> None:
        super().__init__(get_logger("ticketflow.tests"))
        self.events: list[RecordedEvent] = []

    def emit(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append(RecordedEvent(name=event, level=level, fields=fields))

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def named(self, name: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.name == name]


@pytest.fixture(autouse=True)
def _reset_db_and_caches() -> None:
    import ticketflow.models  # noqa: F401
    from ticketflow.api.deps import get_extraction_client, get_rate_limiter
    from ticketflow.core.db import engine
    from ticketflow.core.models import Base

    get_rate_limiter.cache_clear()
    get_extraction_client.cache_clear()

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture
def events() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def candidate() -> dict[str, Any]:
    return {
        "vendor": "Cafe Central",
        "expense_date": "2024-01-15",
        "amount_gross": 121.0,
        "tax_vat": 21.0,
        "amount_net": 100.0,
        "currency": "EUR",
        "category_suggestion": "Dietas",
        "payment_method_guess": "CARD",
        "document_type": "TICKET",
        "project_code_guess": None,
        "notes": None,
    }
