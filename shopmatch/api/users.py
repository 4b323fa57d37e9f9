"""
User claims initialization.

Custom claims can only be written server-side, so a freshly signed-up user
calls this once to pick a role. Only the caller's own claims are touched.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from shopmatch.api.deps import get_auth_context, get_claims_store, get_user_directory
from shopmatch.core.auth import AuthContext
from shopmatch.core.errors import ValidationError
from shopmatch.core.logging import log_event
from shopmatch.features.identity.claims_store import ClaimsStore
from shopmatch.features.users.service import UserDirectory


router = APIRouter(prefix="/users", tags=["users"])

VALID_ROLES = ("owner", "seeker")


class InitializeClaimsRequest(BaseModel):
    role: Optional[str] = None


@router.post("/initialize-claims")
def initialize_claims(
    payload: InitializeClaimsRequest,
    auth: AuthContext = Depends(get_auth_context),
    claims_store: ClaimsStore = Depends(get_claims_store),
    user_directory: UserDirectory = Depends(get_user_directory),
):
    if not payload.role:
        raise ValidationError("Missing role")
    if payload.role not in VALID_ROLES:
        raise ValidationError("Invalid role. Must be owner or seeker")
    if auth.claims:
        raise ValidationError("User already has custom claims")

    claims_store.set_custom_claims(
        auth.uid,
        {
            "role": payload.role,
            "subActive": False,
            "updatedAt": user_directory.now_fn().isoformat(),
        },
    )
    if user_directory.get_user(auth.uid) is None:
        user_directory.create_user(auth.uid, email=auth.email, role=payload.role)
    else:
        user_directory.update_document(auth.uid, role=payload.role, sub_active=False)

    log_event("info", "users.claims.initialized", user_id=auth.uid, extra={"role": payload.role})
    return {"success": True, "message": "Custom claims initialized successfully"}
