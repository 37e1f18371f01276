"""
Credential endpoints: sign in and sign up.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator

from tutor.api.deps import Services, get_services
from tutor.core.errors import MaintenanceError
from tutor.features.auth.service import Principal

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class SignInRequest(BaseModel):
    identity: str
    secret: str

    @field_validator("identity")
    @classmethod
    def _trim(cls, value: str) -> str:
        return value.strip()


class SignUpRequest(BaseModel):
    email: str
    secret: str
    name: str
    mobile: str
    board: Optional[str] = None
    class_level: Optional[str] = None
    stream: Optional[str] = None

    @field_validator("email", "name", "mobile", "board", "class_level", "stream")
    @classmethod
    def _trim(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


def _principal_out(principal: Principal) -> dict:
    return {
        "access_token": principal.access_token,
        "token_type": "bearer",
        "user": principal.user.model_dump(mode="json"),
    }


@router.post("/signin")
def sign_in(body: SignInRequest, services: Services = Depends(get_services)):
    return _principal_out(services.auth.sign_in(body.identity, body.secret))


@router.post("/signup")
def sign_up(body: SignUpRequest, services: Services = Depends(get_services)):
    system = services.settings_hub.current
    if system.maintenance_mode:
        raise MaintenanceError(system.maintenance_message)
    principal = services.auth.sign_up(
        body.email or "",
        body.secret,
        body.name or "",
        mobile=body.mobile or "",
        board=body.board,
        class_level=body.class_level,
        stream=body.stream,
    )
    return _principal_out(principal)
