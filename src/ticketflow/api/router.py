from __future__ import annotations

from fastapi import APIRouter

from ticketflow.modules.catalog.api import router as catalog_router
from ticketflow.modules.expenses.api import router as expenses_router
from ticketflow.modules.extraction.api import router as extraction_router
from ticketflow.modules.identity.api import router as identity_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(catalog_router, prefix="/api")
router.include_router(extraction_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
