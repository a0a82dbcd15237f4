from __future__ import annotations

import uuid
from collections.abc import Mapping

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.config import settings
from ticketflow.modules.catalog.models import Category, ProjectCode

# Also the closed list offered to the extraction model.
DEFAULT_CATEGORY_NAMES: tuple[str, ...] = (
    "Transporte",
    "Viajes",
    "Dietas",
    "Material",
    "Software",
    "Alojamiento",
    "Otros",
)
FALLBACK_CATEGORY_NAME = "Otros"


def seed_default_categories(session: Session, *, organization_id: uuid.UUID) -> list[Category]:
    existing = {
        c.name
        for c in session.scalars(
            select(Category).where(Category.organization_id == organization_id)
        )
    }
    created: list[Category] = []
    for name in DEFAULT_CATEGORY_NAMES:
        if name in existing:
            continue
        category = Category(organization_id=organization_id, name=name, is_active=True)
        session.add(category)
        created.append(category)
    session.commit()
    return created


def create_category(session: Session, *, organization_id: uuid.UUID, name: str) -> Category:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    category = Category(organization_id=organization_id, name=name, is_active=True)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def create_project_code(
    session: Session, *, organization_id: uuid.UUID, code: str, name: str
) -> ProjectCode:
    code = code.strip()
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Code is required")
    project = ProjectCode(
        organization_id=organization_id, code=code, name=name.strip() or code, is_active=True
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


def list_categories(session: Session, *, organization_id: uuid.UUID) -> list[Category]:
    return list(
        session.scalars(
            select(Category)
            .where(Category.organization_id == organization_id, Category.is_active.is_(True))
            .order_by(Category.name)
        )
    )


def list_project_codes(session: Session, *, organization_id: uuid.UUID) -> list[ProjectCode]:
    return list(
        session.scalars(
            select(ProjectCode)
            .where(
                ProjectCode.organization_id == organization_id,
                ProjectCode.is_active.is_(True),
            )
            .order_by(ProjectCode.code)
        )
    )


class SqlCatalog:
    """Read-only category and project lookups scoped to one organization."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def category_ids_by_name(self, organization_id: uuid.UUID) -> Mapping[str, uuid.UUID]:
        return {
            c.name: c.id
            for c in list_categories(self.session, organization_id=organization_id)
        }

    def project_ids_by_code(self, organization_id: uuid.UUID) -> Mapping[str, uuid.UUID]:
        return {
            p.code: p.id
            for p in list_project_codes(self.session, organization_id=organization_id)
        }


def default_category_name() -> str:
    return (settings.default_category_name or "").strip() or FALLBACK_CATEGORY_NAME
