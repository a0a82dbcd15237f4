from __future__ import annotations

import uuid
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class Identity:
    organization_id: uuid.UUID
    employee_id: uuid.UUID
    name: str
    email: str
    is_demo: bool = False


class IdentityOut(BaseModel):
    organization_id: uuid.UUID
    employee_id: uuid.UUID
    name: str
    email: str
    is_demo: bool
