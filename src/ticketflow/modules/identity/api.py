from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from ticketflow.api.deps import get_current_identity
from ticketflow.modules.identity.schemas import Identity, IdentityOut

router = APIRouter(tags=["identity"])


@router.get("/auth/me", response_model=IdentityOut)
def me(identity: Identity = Depends(get_current_identity)) -> IdentityOut:
    return IdentityOut(**asdict(identity))
