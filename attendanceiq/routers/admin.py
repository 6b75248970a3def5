import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from attendanceiq.security import require_admin, require_session
from attendanceiq.session import SessionContext, effective_role, order_roles
from database.db import (
    get_all_user_roles,
    get_profile,
    get_user_by_id,
    list_profiles,
    replace_user_role,
    update_profile,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    department: str | None = None
    avatar_url: str | None = None


class RoleUpdate(BaseModel):
    role: Literal["admin", "user"]


@router.get("/profiles/me")
def my_profile(session: SessionContext = Depends(require_session)):
    profile = get_profile(session.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found.")
    return profile


@router.patch("/profiles/{user_id}")
def edit_profile(user_id: str, payload: ProfileUpdate, session: SessionContext = Depends(require_session)):
    if not session.can_access(user_id):
        raise HTTPException(status_code=403, detail="Cannot edit another user's profile.")

    fields = payload.model_dump(exclude_unset=True)
    if "full_name" in fields:
        full_name = (fields["full_name"] or "").strip()
        if not full_name:
            raise HTTPException(status_code=400, detail="Full name cannot be empty.")
        fields["full_name"] = full_name
    for key in ("department", "avatar_url"):
        if key in fields:
            fields[key] = (fields[key] or "").strip() or None

    profile = update_profile(user_id, **fields)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found.")
    return profile


@router.get("/admin/users")
def list_users(search: str | None = None, _session: SessionContext = Depends(require_admin)):
    roles = get_all_user_roles()
    rows = []
    for profile in list_profiles(search):
        held = order_roles(roles.get(profile["user_id"], []))
        rows.append({**profile, "roles": list(held), "role": effective_role(held)})
    return {"rows": rows, "total": len(rows)}


@router.put("/admin/users/{user_id}/role")
def change_role(user_id: str, payload: RoleUpdate, session: SessionContext = Depends(require_admin)):
    if not get_user_by_id(user_id):
        raise HTTPException(status_code=404, detail="User not found.")

    replace_user_role(user_id, payload.role)
    logger.info("Admin %s set role of %s to %s", session.user_id, user_id, payload.role)
    return {"ok": True, "user_id": user_id, "role": payload.role}
