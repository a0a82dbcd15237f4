from __future__ import annotations

import pytest
from fastapi import HTTPException

from ticketflow.core.db import SessionLocal
from ticketflow.modules.catalog.service import (
    SqlCatalog,
    create_category,
    create_project_code,
    list_project_codes,
)
from ticketflow.modules.identity.service import create_organization


def test_catalog_lookups_are_scoped_to_the_organization():
    with SessionLocal() as session:
        acme = create_organization(session, name="Acme")
        other = create_organization(session, name="Other")
        golf = create_category(session, organization_id=acme.id, name="  Golf ")
        create_project_code(session, organization_id=other.id, code="PRJ-1", name="Elsewhere")

        catalog = SqlCatalog(session)
        assert catalog.category_ids_by_name(acme.id)["Golf"] == golf.id
        assert "Golf" not in catalog.category_ids_by_name(other.id)
        assert catalog.project_ids_by_code(acme.id) == {}
        assert set(catalog.project_ids_by_code(other.id)) == {"PRJ-1"}


def test_inactive_project_codes_are_hidden():
    with SessionLocal() as session:
        acme = create_organization(session, name="Acme")
        b = create_project_code(session, organization_id=acme.id, code="B-2", name="Beta")
        create_project_code(session, organization_id=acme.id, code="A-1", name="")
        b.is_active = False
        session.commit()

        codes = list_project_codes(session, organization_id=acme.id)
        assert [(p.code, p.name) for p in codes] == [("A-1", "A-1")]


def test_blank_names_are_rejected():
    with SessionLocal() as session:
        acme = create_organization(session, name="Acme")
        with pytest.raises(HTTPException) as exc:
            create_category(session, organization_id=acme.id, name="   ")
        assert exc.value.status_code == 400
