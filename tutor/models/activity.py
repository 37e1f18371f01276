from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ActivityAction:
    CONTENT_GEN = "CONTENT_GEN"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    SIGNUP = "SIGNUP"
    IMPERSONATE = "IMPERSONATE"
    TEST_SUBMIT = "TEST_SUBMIT"
    CONTENT_UPLOAD = "CONTENT_UPLOAD"
    SETTINGS_UPDATE = "SETTINGS_UPDATE"


class ActivityLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    user_name: str
    role: str
    action: str
    details: Optional[str] = None
    timestamp: datetime
