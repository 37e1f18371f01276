"""
tutor/models/user.py

User record as held by the authoritative document and the denormalised user list.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class SubscriptionTier(str, Enum):
    NONE = "NONE"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    LIFETIME = "LIFETIME"


class SubjectProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_chapter_index: int = 0
    total_mcqs_solved: int = 0


class User(BaseModel):
    """
    Student or admin account.

    `subscription_tier` is kept as a plain string so records written with a
    tier this service does not know still load; the entitlement evaluator
    treats those as unrecognised.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: Role = Role.STUDENT
    credits: int = 0
    subscription_tier: str = SubscriptionTier.NONE.value
    subscription_end_date: Optional[datetime] = None
    progress: Dict[str, SubjectProgress] = Field(default_factory=dict)

    email: Optional[str] = None
    mobile: Optional[str] = None
    board: Optional[str] = None
    class_level: Optional[str] = None
    stream: Optional[str] = None
    is_locked: bool = False
    created_at: Optional[datetime] = None

    @field_validator("credits")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("credits must be >= 0")
        return v

    @field_validator("subscription_tier", mode="before")
    @classmethod
    def _tier_text(cls, v):
        if v is None:
            return SubscriptionTier.NONE.value
        if isinstance(v, SubscriptionTier):
            return v.value
        return str(v).upper()

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class CallerContext(BaseModel):
    """
    Who is acting on a request.

    `actor` is the authenticated account. `user` is the account the request
    acts as: the same as `actor`, or the student an admin is impersonating.
    """
    model_config = ConfigDict(frozen=True)

    actor: User
    user: User

    @property
    def impersonating(self) -> bool:
        return self.actor.id != self.user.id

    @classmethod
    def for_user(cls, user: User) -> "CallerContext":
        return cls(actor=user, user=user)
