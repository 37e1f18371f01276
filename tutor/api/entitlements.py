"""
Entitlement summary for the caller.
"""
from fastapi import APIRouter, Depends

from tutor.api.deps import get_caller
from tutor.features.credits.ledger import get_user_ledger
from tutor.features.entitlements.service import describe_entitlement, is_privileged
from tutor.models.user import CallerContext

router = APIRouter(prefix="/v1/entitlements", tags=["entitlements"])


@router.get("/me")
def my_entitlements(caller: CallerContext = Depends(get_caller)):
    summary = describe_entitlement(caller.user)
    summary["credits"] = caller.user.credits
    summary["privileged"] = is_privileged(caller)
    summary["impersonating"] = caller.impersonating
    return summary


@router.get("/me/ledger")
def my_ledger(limit: int = 50, caller: CallerContext = Depends(get_caller)):
    entries = get_user_ledger(caller.user.id, limit=max(1, min(limit, 500)))
    return {"user_id": caller.user.id, "entries": [e.to_dict() for e in entries]}
