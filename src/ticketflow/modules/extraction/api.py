from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from ticketflow.api.deps import (
    get_current_identity,
    get_events,
    get_extraction_client,
    get_request_context,
)
from ticketflow.core.context import RequestContext
from ticketflow.core.logging import EventLogger
from ticketflow.modules.extraction.ai import ExtractionClient
from ticketflow.modules.extraction.schemas import TicketAnalysisOut
from ticketflow.modules.extraction.service import analysis_out, analyze_ticket
from ticketflow.modules.identity.schemas import Identity

router = APIRouter(tags=["tickets"])


@router.post("/tickets/analyze", response_model=TicketAnalysisOut)
def analyze_ticket_endpoint(
    upload: UploadFile = File(...),
    identity: Identity = Depends(get_current_identity),
    context: RequestContext = Depends(get_request_context),
    events: EventLogger = Depends(get_events),
    client: ExtractionClient = Depends(get_extraction_client),
) -> TicketAnalysisOut:
    body = upload.file.read()
    filename = upload.filename or "ticket"
    events.emit(
        "upload.received",
        request_id=context.request_id,
        employee_id=str(identity.employee_id),
        filename=filename,
        content_type=upload.content_type,
        byte_size=len(body),
    )
    analysis = analyze_ticket(
        client=client,
        events=events,
        filename=filename,
        content_type=upload.content_type,
        body=body,
        context=context,
        actor=str(identity.employee_id),
    )
    return analysis_out(analysis)
