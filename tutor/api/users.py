"""
Admin user management: directory, impersonation and account locks.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tutor.api.deps import Services, get_services, require_admin
from tutor.core.errors import NotFoundError, ValidationError
from tutor.models.activity import ActivityAction
from tutor.models.user import CallerContext

router = APIRouter(prefix="/v1/users", tags=["users"])


class LockRequest(BaseModel):
    locked: bool


@router.get("")
def list_users(
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    users = services.users.list_users()
    return {"count": len(users), "users": [u.model_dump(mode="json") for u in users]}


@router.post("/{user_id}/impersonate")
def impersonate(
    user_id: str,
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    target = services.users.get(user_id)
    if target is None:
        raise NotFoundError(f"User {user_id} not found")
    if target.is_admin:
        raise ValidationError("Cannot impersonate another admin")
    services.activity.log(caller.actor, ActivityAction.IMPERSONATE, f"Acting as {target.name} ({target.id})")
    return {
        "user": target.model_dump(mode="json"),
        "header": {"X-Impersonate-User-Id": target.id},
    }


@router.put("/{user_id}/lock")
def set_lock(
    user_id: str,
    body: LockRequest,
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    if services.users.get(user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    services.auth.set_locked(user_id, body.locked)
    return {"user_id": user_id, "locked": body.locked}
