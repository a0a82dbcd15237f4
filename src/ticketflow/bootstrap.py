from __future__ import annotations

import ticketflow.models  # noqa: F401
from ticketflow.core.config import settings
from ticketflow.core.db import SessionLocal, engine
from ticketflow.core.models import Base
from ticketflow.modules.identity.service import get_or_create_demo_identity


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    if not settings.demo_mode_enabled:
        return
    with SessionLocal() as session:
        get_or_create_demo_identity(session)
