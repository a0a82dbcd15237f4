from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ticketflow.api.deps import get_current_identity
from ticketflow.core.db import db_session
from ticketflow.modules.catalog.schemas import CategoryOut, ProjectCodeOut
from ticketflow.modules.catalog.service import list_categories, list_project_codes
from ticketflow.modules.identity.schemas import Identity

router = APIRouter(tags=["catalog"])


@router.get("/catalog/categories", response_model=list[CategoryOut])
def list_categories_endpoint(
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> list[CategoryOut]:
    categories = list_categories(session, organization_id=identity.organization_id)
    return [CategoryOut.model_validate(c, from_attributes=True) for c in categories]


@router.get("/catalog/project-codes", response_model=list[ProjectCodeOut])
def list_project_codes_endpoint(
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> list[ProjectCodeOut]:
    projects = list_project_codes(session, organization_id=identity.organization_id)
    return [ProjectCodeOut.model_validate(p, from_attributes=True) for p in projects]
