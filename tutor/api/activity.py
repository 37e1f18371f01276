from typing import Optional

from fastapi import APIRouter, Depends

from tutor.api.deps import Services, get_services, require_admin
from tutor.models.user import CallerContext

router = APIRouter(prefix="/v1/activity", tags=["activity"])


@router.get("")
def list_activity(
    user_id: Optional[str] = None,
    limit: int = 100,
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    entries = services.activity.entries(user_id=user_id, limit=max(1, min(limit, 500)))
    return {"count": len(entries), "entries": [e.model_dump(mode="json") for e in entries]}
