from __future__ import annotations

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.core.models import Base, OrganizationScoped, Timestamped, UUIDPrimaryKey


class Category(UUIDPrimaryKey, OrganizationScoped, Timestamped, Base):
    __tablename__ = "catalog_category"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_category_org_name"),
    )

    name: Mapped[str] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ProjectCode(UUIDPrimaryKey, OrganizationScoped, Timestamped, Base):
    __tablename__ = "catalog_project_code"
    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_project_code_org_code"),
    )

    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
