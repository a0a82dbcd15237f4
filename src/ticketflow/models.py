"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Organization and User first; everything else points at them.
from ticketflow.modules.identity.models import Organization, User  # noqa: F401

from ticketflow.modules.catalog.models import Category, ProjectCode  # noqa: F401
from ticketflow.modules.expenses.models import Expense  # noqa: F401
