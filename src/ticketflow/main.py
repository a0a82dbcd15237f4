from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ticketflow.api.deps import close_extraction_client
from ticketflow.api.router import router as api_router
from ticketflow.bootstrap import bootstrap
from ticketflow.core.errors import TicketflowError
from ticketflow.core.logging import RequestContextMiddleware, get_logger, log_event

logger = get_logger(__name__)


async def ticketflow_error_handler(request: Request, exc: TicketflowError) -> JSONResponse:
    request_id = exc.context.request_id if exc.context else None
    log_event(
        logger,
        "http.request.failed",
        level=logging.WARNING if exc.status_code < 500 else logging.ERROR,
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        request_id=request_id,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "request_id": request_id},
    )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        bootstrap()
        yield
        close_extraction_client()

    app = FastAPI(title="Ticketflow", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(TicketflowError, ticketflow_error_handler)
    app.include_router(api_router)
    return app


app = create_app()
