from typing import List

from pydantic import BaseModel, ConfigDict, Field


class SystemSettings(BaseModel):
    """Admin-controlled global settings. Keys this service does not read are kept."""
    model_config = ConfigDict(frozen=True, extra="allow")

    app_name: str = "NST"
    maintenance_mode: bool = False
    maintenance_message: str = "We are upgrading the app. Please check back soon."
    allow_signup: bool = True
    signup_bonus: int = Field(default=2, ge=0)
    allowed_classes: List[str] = Field(default_factory=lambda: ["6", "7", "8", "9", "10", "11", "12"])
