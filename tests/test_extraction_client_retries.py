from __future__ import annotations

import json
import logging

import pytest

from ticketflow.core.context import RequestContext
from ticketflow.core.errors import ExtractionFailed, ExtractionTransportError, InvalidFileType
from ticketflow.modules.extraction.ai import ExtractionClient


def _completion(content) -> str:
    if not isinstance(content, str):
        content = json.dumps(content)
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


class ScriptedTransport:
    """Plays back one scripted reply per call; exceptions in the script are raised."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[dict] = []

    def send(self, payload, *, context):
        self.calls.append({"payload": payload, "request_id": context.request_id})
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


def _client(transport, events) -> ExtractionClient:
    return ExtractionClient(transport=transport, events=events, model="test-model", max_attempts=3)


def _extract(client, context=None):
    return client.extract(
        body=b"\xff\xd8\xff fake jpeg",
        mime_type="image/jpeg",
        context=context or RequestContext("req-00000001"),
        filename="ticket.jpg",
    )


def test_first_conformant_answer_ends_the_loop(events, candidate):
    transport = ScriptedTransport(_completion(candidate))

    result = _extract(_client(transport, events))

    assert result.attempts == 1
    assert result.candidate.vendor == "Cafe Central"
    assert result.context.request_id == "req-00000001"
    assert len(transport.calls) == 1
    assert events.names == ["extraction_started", "extraction_completed"]


def test_malformed_answers_are_retried_until_success(events, candidate):
    transport = ScriptedTransport(
        "not json at all",
        _completion({**candidate, "amount_gross": "121.00"}),
        _completion(candidate),
    )

    result = _extract(_client(transport, events))

    assert result.attempts == 3
    assert len(transport.calls) == 3
    failed = events.named("extraction_attempt_failed")
    assert [e.fields["attempt"] for e in failed] == [1, 2]
    assert all(e.level == logging.WARNING for e in failed)
    assert events.names[-1] == "extraction_completed"


def test_transport_errors_count_as_failed_attempts(events, candidate):
    transport = ScriptedTransport(
        ExtractionTransportError("extraction service answered HTTP 503"),
        _completion(candidate),
    )

    result = _extract(_client(transport, events))

    assert result.attempts == 2
    assert "HTTP 503" in events.named("extraction_attempt_failed")[0].fields["error"]


def test_exhaustion_raises_after_exactly_three_attempts(events):
    transport = ScriptedTransport(_completion({"vendor": "only a vendor"}))
    context = RequestContext("req-exhausted")

    with pytest.raises(ExtractionFailed) as exc:
        _extract(_client(transport, events), context=context)

    assert len(transport.calls) == 3
    assert exc.value.attempts == 3
    assert exc.value.context is context
    assert exc.value.last_error
    assert exc.value.status_code == 502
    assert len(events.named("extraction_attempt_failed")) == 3
    failed = events.named("extraction_failed")
    assert len(failed) == 1
    assert failed[0].level == logging.ERROR
    assert failed[0].fields["request_id"] == "req-exhausted"


def test_every_attempt_sends_the_same_request_id(events):
    transport = ScriptedTransport(ExtractionTransportError("down"))

    with pytest.raises(ExtractionFailed):
        _extract(_client(transport, events), context=RequestContext("req-same-id"))

    assert {c["request_id"] for c in transport.calls} == {"req-same-id"}
    assert all(e.fields["request_id"] == "req-same-id" for e in events.events)


def test_rejected_upload_never_reaches_the_transport(events, candidate):
    transport = ScriptedTransport(_completion(candidate))
    client = _client(transport, events)

    with pytest.raises(InvalidFileType):
        client.extract(
            body=b"plain text",
            mime_type="text/plain",
            context=RequestContext.new(),
            filename="notes.txt",
        )

    assert transport.calls == []
    assert events.events == []


def test_events_carry_metadata_only(events, candidate):
    transport = ScriptedTransport(_completion(candidate))

    _extract(_client(transport, events))

    started = events.named("extraction_started")[0].fields
    assert started["file_name"] == "ticket.jpg"
    assert started["mime_type"] == "image/jpeg"
    assert started["byte_size"] == len(b"\xff\xd8\xff fake jpeg")
    for event in events.events:
        assert "payload" not in event.fields
        assert not any("base64" in str(v) for v in event.fields.values())


def test_payload_uses_configured_model_and_strict_schema(events, candidate):
    transport = ScriptedTransport(_completion(candidate))

    _extract(_client(transport, events))

    payload = transport.calls[0]["payload"]
    assert payload["model"] == "test-model"
    assert payload["response_format"]["json_schema"]["strict"] is True
    image_part = payload["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_injected_limiter_throttles_per_actor(events, candidate):
    from ticketflow.core.errors import RateLimited
    from ticketflow.core.ratelimit import SlidingWindowRateLimiter

    transport = ScriptedTransport(_completion(candidate))
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
    client = ExtractionClient(transport=transport, events=events, limiter=limiter)
    context = RequestContext("req-limited")

    client.extract(body=b"\x89PNG", mime_type="image/png", context=context, actor="emp-1")
    with pytest.raises(RateLimited):
        client.extract(body=b"\x89PNG", mime_type="image/png", context=context, actor="emp-1")
    client.extract(body=b"\x89PNG", mime_type="image/png", context=context, actor="emp-2")

    assert len(transport.calls) == 2
    assert events.named("rate_limit_exceeded")[0].fields["rate_limit_key"] == "analyze:emp-1"
