from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ticketflow.core.context import RequestContext


class TicketflowError(Exception):
    code = "ticketflow_error"
    status_code = 400

    def __init__(self, message: str, *, context: RequestContext | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidFileType(TicketflowError):
    code = "invalid_file_type"
    status_code = 415


class FileTooLarge(TicketflowError):
    code = "file_too_large"
    status_code = 413


class ExtractionFailed(TicketflowError):
    """Every attempt against the extraction service failed; manual entry is still possible."""

    code = "extraction_failed"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        last_error: str | None = None,
        attempts: int = 0,
        context: RequestContext | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.last_error = last_error
        self.attempts = attempts


class InvalidCurrency(TicketflowError):
    code = "invalid_currency"
    status_code = 422

    def __init__(self, currency: object, *, context: RequestContext | None = None) -> None:
        super().__init__(f"Unsupported currency: {currency!r}", context=context)
        self.currency = currency


class InvalidAmount(TicketflowError):
    code = "invalid_amount"
    status_code = 422


class InvalidExtraction(TicketflowError):
    """The candidate parsed but does not make a storable expense."""

    code = "invalid_extraction"
    status_code = 422


class DivisionByZero(TicketflowError, ArithmeticError):
    code = "division_by_zero"
    status_code = 500

    def __init__(self, message: str = "Division by zero") -> None:
        super().__init__(message)


class SubmissionFailed(TicketflowError):
    code = "submission_failed"
    status_code = 502


class RateLimited(TicketflowError):
    code = "rate_limited"
    status_code = 429


class UnsupportedCurrency(ValueError):
    pass


class ExtractionTransportError(Exception):
    """The extraction service could not be reached or answered with a non-2xx status."""
