from typing import Any, Dict

from fastapi import APIRouter, Depends

from tutor.api.deps import Services, get_services, require_admin
from tutor.models.activity import ActivityAction
from tutor.models.user import CallerContext

router = APIRouter(prefix="/v1/settings", tags=["settings"])


@router.get("")
def read_settings(services: Services = Depends(get_services)):
    return services.settings_hub.current.model_dump(mode="json")


@router.put("")
def update_settings(
    body: Dict[str, Any],
    caller: CallerContext = Depends(require_admin),
    services: Services = Depends(get_services),
):
    merged = {**services.settings_hub.current.model_dump(mode="json"), **body}
    updated = services.settings_hub.update(merged)
    services.activity.log(caller.actor, ActivityAction.SETTINGS_UPDATE, ", ".join(sorted(body.keys())))
    return updated.model_dump(mode="json")
