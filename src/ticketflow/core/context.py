from __future__ import annotations

import re
import secrets
from dataclasses import dataclass

_KEY_RE = re.compile(r"^[A-Za-z0-9._:-]{8,64}$")


@dataclass(frozen=True)
class RequestContext:
    """Correlation id for one extraction or submission attempt; doubles as idempotency key."""

    request_id: str

    @classmethod
    def new(cls) -> RequestContext:
        return cls(request_id=secrets.token_hex(8))

    @classmethod
    def from_header(cls, value: str | None) -> RequestContext:
        key = (value or "").strip()
        if not key:
            return cls.new()
        if not _KEY_RE.match(key):
            raise ValueError("Idempotency key must be 8-64 characters of [A-Za-z0-9._:-]")
        return cls(request_id=key)
