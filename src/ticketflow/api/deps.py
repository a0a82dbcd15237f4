from __future__ import annotations

import uuid
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.config import settings
from ticketflow.core.context import RequestContext
from ticketflow.core.db import db_session
from ticketflow.core.logging import EventLogger, get_event_logger, set_user_context
from ticketflow.core.ratelimit import RateLimiter, SlidingWindowRateLimiter
from ticketflow.core.security import decode_access_token
from ticketflow.modules.extraction.ai import ExtractionClient, build_extraction_client
from ticketflow.modules.identity.models import User
from ticketflow.modules.identity.schemas import Identity
from ticketflow.modules.identity.service import get_or_create_demo_identity, identity_for_user

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(db_session),
) -> Identity:
    token = credentials.credentials if credentials else None
    if not token or token in {"null", "undefined"}:
        if not settings.demo_mode_enabled:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
            )
        identity = get_or_create_demo_identity(session)
        set_user_context(str(identity.employee_id))
        return identity

    subject = decode_access_token(token)
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user_id = uuid.UUID(subject)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from e

    user = session.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    set_user_context(str(user.id))
    return identity_for_user(user)


def get_request_context(
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
) -> RequestContext:
    try:
        return RequestContext.from_header(idempotency_key)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_events() -> EventLogger:
    return get_event_logger("ticketflow.pipeline")


@lru_cache
def get_extraction_client() -> ExtractionClient:
    return build_extraction_client(events=get_events(), limiter=get_rate_limiter())


def close_extraction_client() -> None:
    if get_extraction_client.cache_info().currsize:
        get_extraction_client().close()
    get_extraction_client.cache_clear()
