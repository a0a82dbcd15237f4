from __future__ import annotations

import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from ticketflow.core.config import settings
from ticketflow.core.context import RequestContext
from ticketflow.core.errors import (
    ExtractionFailed,
    ExtractionTransportError,
    FileTooLarge,
    InvalidFileType,
)
from ticketflow.core.logging import EventLogger, monotonic_ms
from ticketflow.core.ratelimit import RateLimiter, enforce_rate_limit
from ticketflow.modules.catalog.service import DEFAULT_CATEGORY_NAMES
from ticketflow.modules.extraction.schemas import DocumentType, PaymentMethod, RawCandidate

ALLOWED_MIME_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png", "application/pdf"})

_REQUIRED_FIELDS: tuple[str, ...] = (
    "vendor",
    "expense_date",
    "amount_gross",
    "tax_vat",
    "amount_net",
    "currency",
    "category_suggestion",
    "payment_method_guess",
    "document_type",
)

_EXPENSE_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "expense_ticket_extraction",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "vendor": {"type": "string"},
                "expense_date": {"type": "string", "format": "date"},
                "amount_gross": {"type": "number"},
                "tax_vat": {"type": "number"},
                "amount_net": {"type": "number"},
                "currency": {"type": "string"},
                "category_suggestion": {"type": "string", "enum": list(DEFAULT_CATEGORY_NAMES)},
                "payment_method_guess": {
                    "type": "string",
                    "enum": [m.value for m in PaymentMethod],
                },
                "document_type": {"type": "string", "enum": [d.value for d in DocumentType]},
                "project_code_guess": {"anyOf": [{"type": "string"}, {"type": "null"}]},
                "notes": {"anyOf": [{"type": "string"}, {"type": "null"}]},
            },
            # Strict structured outputs want every key listed; the two optional
            # ones are nullable instead.
            "required": [*_REQUIRED_FIELDS, "project_code_guess", "notes"],
        },
    },
}

_SYSTEM_PROMPT = (
    "You extract expense data from receipts (tickets) and invoices (facturas).\n"
    "Only use information present in the document. Return JSON only."
)

_USER_PROMPT = (
    "Analyze this receipt/invoice and extract the expense following these rules:\n\n"
    "1. DOCUMENT TYPE:\n"
    "   - TICKET: simple receipt, usually without the issuer's detailed tax id (NIF/CIF)\n"
    "   - FACTURA: formal tax invoice with the issuer's NIF/CIF and a clear VAT breakdown\n\n"
    "2. FIELDS:\n"
    "   - vendor: merchant/company name, normalized, no special characters\n"
    "   - expense_date: YYYY-MM-DD\n"
    "   - amount_gross: final total\n"
    "   - tax_vat: VAT amount (0 if it is not clearly broken down)\n"
    "   - amount_net: taxable base (amount_gross - tax_vat)\n"
    "   - currency: ISO-4217 code, EUR when not stated\n"
    "   - category_suggestion: one of " + ", ".join(DEFAULT_CATEGORY_NAMES) + "\n"
    "   - payment_method_guess: most likely of "
    + ", ".join(m.value for m in PaymentMethod)
    + "\n"
    "   - document_type: TICKET or FACTURA per the rules above\n"
    "   - project_code_guess, notes: null when absent\n\n"
    "3. CHECKS:\n"
    "   - amount_gross = amount_net + tax_vat (2 decimal places)\n"
    "   - if VAT is not clearly broken down, tax_vat = 0\n"
    "   - dates must be valid\n"
)


def validate_upload(
    *,
    mime_type: str | None,
    byte_size: int,
    max_bytes: int | None = None,
    context: RequestContext | None = None,
) -> str:
    """Local checks that must pass before anything is sent to the extraction service."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in ALLOWED_MIME_TYPES:
        raise InvalidFileType(
            f"Unsupported file type {mime or 'unknown'!r}; upload JPG, PNG or PDF.",
            context=context,
        )
    if byte_size <= 0:
        raise InvalidFileType("The uploaded file is empty.", context=context)
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes
    if byte_size > limit:
        raise FileTooLarge(
            f"File is {byte_size} bytes; the maximum is {limit} bytes.", context=context
        )
    return mime


def build_extraction_payload(
    *, body: bytes, mime_type: str, model: str, filename: str | None = None
) -> dict[str, Any]:
    data_url = f"data:{mime_type};base64,{base64.b64encode(body).decode('ascii')}"
    if mime_type == "application/pdf":
        document_part: dict[str, Any] = {
            "type": "file",
            "file": {"filename": filename or "ticket.pdf", "file_data": data_url},
        }
    else:
        document_part = {"type": "image_url", "image_url": {"url": data_url}}
    return {
        "model": model,
        "temperature": 0,
        "response_format": _EXPENSE_RESPONSE_FORMAT,
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": [{"type": "text", "text": _USER_PROMPT}, document_part]},
        ],
    }


@dataclass(frozen=True)
class ParsedCandidate:
    candidate: RawCandidate


@dataclass(frozen=True)
class MalformedResponse:
    error: str


@dataclass(frozen=True)
class TransportFailure:
    error: str


ParseResult = ParsedCandidate | MalformedResponse


def parse_completion(body: str) -> ParseResult:
    """Unwrap a chat-completions response and validate the candidate it carries."""
    try:
        raw = json.loads(body)
    except ValueError:
        return MalformedResponse("response body is not JSON")

    try:
        msg = raw["choices"][0]["message"]
    except (KeyError, IndexError, TypeError):
        return MalformedResponse("response has no choices[0].message")
    if not isinstance(msg, dict):
        return MalformedResponse("response message is not an object")
    if msg.get("refusal"):
        return MalformedResponse(f"model refused: {str(msg['refusal'])[:200]}")

    content = msg.get("content")
    if not isinstance(content, str) or not content.strip():
        return MalformedResponse("response message has no content")
    return parse_candidate(content)


def parse_candidate(content: str) -> ParseResult:
    obj = _parse_json_object(content)
    if not isinstance(obj, dict):
        return MalformedResponse("content is not a JSON object")
    try:
        return ParsedCandidate(RawCandidate.model_validate(obj))
    except ValidationError as e:
        return MalformedResponse(_summarize_validation_error(e))


def _summarize_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    more = exc.error_count() - len(parts)
    if more > 0:
        parts.append(f"(+{more} more)")
    return "; ".join(parts)


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Models sometimes wrap the object in prose or a code fence.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None


class ExtractionTransport(Protocol):
    def send(self, payload: dict[str, Any], *, context: RequestContext) -> str: ...


class HttpExtractionTransport:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.api_key = api_key
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True)

    def send(self, payload: dict[str, Any], *, context: RequestContext) -> str:
        if not self.api_key:
            raise ExtractionTransportError("extraction service is not configured")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Request-Id": context.request_id,
        }
        try:
            resp = self._client.post(self.url, headers=headers, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExtractionTransportError(
                f"extraction service answered HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionTransportError(f"{type(e).__name__}: {e}") from e
        return resp.text

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


@dataclass(frozen=True)
class Attempting:
    attempt: int


@dataclass(frozen=True)
class Retry:
    attempt: int
    error: str


@dataclass(frozen=True)
class Success:
    candidate: RawCandidate
    attempt: int


@dataclass(frozen=True)
class ExhaustedFailure:
    attempts: int
    last_error: str


AttemptState = Attempting | Retry | Success | ExhaustedFailure


@dataclass(frozen=True)
class ExtractionResult:
    candidate: RawCandidate
    context: RequestContext
    attempts: int


class ExtractionClient:
    """
    Sends a ticket to the extraction service and returns a schema-conformant candidate.

    Attempts run strictly one after another:
    Attempting(n) -> Success | Retry(n + 1) | ExhaustedFailure. A malformed answer or a
    transport error fails the attempt; the first conformant candidate ends the loop.
    """

    def __init__(
        self,
        *,
        transport: ExtractionTransport,
        events: EventLogger,
        model: str | None = None,
        max_attempts: int | None = None,
        max_upload_bytes: int | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.transport = transport
        self.events = events
        self.limiter = limiter
        self.model = model or settings.extraction_model
        self.max_attempts = max(1, max_attempts or settings.extraction_max_attempts)
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def extract(
        self,
        *,
        body: bytes,
        mime_type: str | None,
        context: RequestContext,
        filename: str | None = None,
        actor: str | None = None,
    ) -> ExtractionResult:
        mime = validate_upload(
            mime_type=mime_type,
            byte_size=len(body),
            max_bytes=self.max_upload_bytes,
            context=context,
        )
        if self.limiter is not None and actor:
            enforce_rate_limit(
                self.limiter, f"analyze:{actor}", context=context, events=self.events
            )
        payload = build_extraction_payload(
            body=body, mime_type=mime, model=self.model, filename=filename
        )

        start = time.monotonic()
        self.events.emit(
            "extraction_started",
            request_id=context.request_id,
            file_name=filename,
            mime_type=mime,
            byte_size=len(body),
            max_attempts=self.max_attempts,
        )

        state: AttemptState = Attempting(1)
        while not isinstance(state, (Success, ExhaustedFailure)):
            state = self._advance(state, payload=payload, context=context)

        if isinstance(state, ExhaustedFailure):
            self.events.emit(
                "extraction_failed",
                level=logging.ERROR,
                request_id=context.request_id,
                file_name=filename,
                attempts=state.attempts,
                error=state.last_error,
                duration_ms=monotonic_ms(start),
            )
            raise ExtractionFailed(
                "Could not analyze the ticket; fill in the expense manually.",
                last_error=state.last_error,
                attempts=state.attempts,
                context=context,
            )

        self.events.emit(
            "extraction_completed",
            request_id=context.request_id,
            file_name=filename,
            attempts=state.attempt,
            vendor=state.candidate.vendor,
            currency=state.candidate.currency,
            amount_gross=str(state.candidate.amount_gross),
            duration_ms=monotonic_ms(start),
        )
        return ExtractionResult(candidate=state.candidate, context=context, attempts=state.attempt)

    def _advance(
        self, state: AttemptState, *, payload: dict[str, Any], context: RequestContext
    ) -> AttemptState:
        if isinstance(state, Retry):
            return Attempting(state.attempt)
        if not isinstance(state, Attempting):
            return state

        outcome = self._attempt(payload=payload, context=context)
        if isinstance(outcome, ParsedCandidate):
            return Success(candidate=outcome.candidate, attempt=state.attempt)

        self.events.emit(
            "extraction_attempt_failed",
            level=logging.WARNING,
            request_id=context.request_id,
            attempt=state.attempt,
            max_attempts=self.max_attempts,
            error=outcome.error,
        )
        if state.attempt >= self.max_attempts:
            return ExhaustedFailure(attempts=state.attempt, last_error=outcome.error)
        return Retry(attempt=state.attempt + 1, error=outcome.error)

    def _attempt(
        self, *, payload: dict[str, Any], context: RequestContext
    ) -> ParseResult | TransportFailure:
        try:
            body = self.transport.send(payload, context=context)
        except ExtractionTransportError as e:
            return TransportFailure(f"transport error: {e}")
        return parse_completion(body)


def build_extraction_client(
    *, events: EventLogger, limiter: RateLimiter | None = None
) -> ExtractionClient:
    transport = HttpExtractionTransport(
        base_url=settings.extraction_base_url,
        api_key=settings.extraction_api_key,
        timeout=settings.extraction_timeout_seconds,
    )
    return ExtractionClient(transport=transport, events=events, limiter=limiter)
