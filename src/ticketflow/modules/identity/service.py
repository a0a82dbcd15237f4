from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.core.config import settings
from ticketflow.modules.catalog.service import seed_default_categories
from ticketflow.modules.identity.models import Organization, User, UserRole
from ticketflow.modules.identity.schemas import Identity


def create_organization(
    session: Session,
    *,
    name: str,
    default_currency: str = "EUR",
    is_demo: bool = False,
) -> Organization:
    organization = Organization(
        name=name.strip() or "Organization",
        default_currency=default_currency.strip().upper(),
        is_demo=is_demo,
    )
    session.add(organization)
    session.commit()
    session.refresh(organization)
    seed_default_categories(session, organization_id=organization.id)
    return organization


def get_user_by_email(session: Session, *, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == email))


def create_user(
    session: Session,
    *,
    organization: Organization,
    email: str,
    role: UserRole = UserRole.EMPLOYEE,
    full_name: str | None = None,
) -> User:
    existing = get_user_by_email(session, email=email)
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    user = User(
        organization_id=organization.id,
        email=email,
        full_name=full_name,
        role=role,
        is_active=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def identity_for_user(user: User, *, is_demo: bool = False) -> Identity:
    return Identity(
        organization_id=user.organization_id,
        employee_id=user.id,
        name=user.full_name or user.email,
        email=user.email,
        is_demo=is_demo,
    )


def get_or_create_demo_identity(session: Session) -> Identity:
    user = get_user_by_email(session, email=settings.demo_employee_email)
    if user is None:
        organization = session.scalar(
            select(Organization).where(Organization.is_demo.is_(True)).limit(1)
        )
        if organization is None:
            organization = create_organization(
                session, name=settings.demo_organization_name, is_demo=True
            )
        user = create_user(
            session,
            organization=organization,
            email=settings.demo_employee_email,
            full_name="Demo",
        )
    return identity_for_user(user, is_demo=True)
