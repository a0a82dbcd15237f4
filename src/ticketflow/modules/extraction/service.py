from __future__ import annotations

from dataclasses import dataclass

from ticketflow.core.context import RequestContext
from ticketflow.core.currencies import format_amount
from ticketflow.core.logging import EventLogger
from ticketflow.modules.extraction.ai import ExtractionClient
from ticketflow.modules.extraction.reconciliation import Reconciliation, reconcile
from ticketflow.modules.extraction.schemas import DisplayAmounts, TicketAnalysisOut


@dataclass(frozen=True)
class TicketAnalysis:
    file_name: str
    attempts: int
    reconciliation: Reconciliation
    context: RequestContext


def analyze_ticket(
    *,
    client: ExtractionClient,
    events: EventLogger,
    filename: str,
    content_type: str | None,
    body: bytes,
    context: RequestContext,
    actor: str | None = None,
) -> TicketAnalysis:
    result = client.extract(
        body=body,
        mime_type=content_type,
        context=context,
        filename=filename,
        actor=actor,
    )
    outcome = reconcile(result.candidate.model_dump(), context=context, events=events)
    return TicketAnalysis(
        file_name=filename,
        attempts=result.attempts,
        reconciliation=outcome,
        context=context,
    )


def analysis_out(analysis: TicketAnalysis) -> TicketAnalysisOut:
    data = analysis.reconciliation.data
    return TicketAnalysisOut(
        request_id=analysis.context.request_id,
        file_name=analysis.file_name,
        attempts=analysis.attempts,
        gross_adjusted=analysis.reconciliation.gross_adjusted,
        reported_gross=analysis.reconciliation.reported_gross,
        data=data,
        display=DisplayAmounts(
            amount_net=format_amount(data.amount_net, data.currency),
            tax_vat=format_amount(data.tax_vat, data.currency),
            amount_gross=format_amount(data.amount_gross, data.currency),
        ),
    )
