"""
tutor/features/entitlements/service.py

Entitlement evaluation from subscription state.

Handles:
- Subscription activity and access level derivation
- Per content type access checks
- The single privilege predicate shared with the credit ledger
- Structured logs only (decisions are never persisted)
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from tutor.core.config import settings
from tutor.models.content import AccessClass, AccessLevel, ContentType, access_class_for
from tutor.models.user import CallerContext, SubscriptionTier, User


logger = logging.getLogger(__name__)

LEVEL_BY_TIER = {
    SubscriptionTier.WEEKLY.value: AccessLevel.BASIC,
    SubscriptionTier.MONTHLY.value: AccessLevel.BASIC,
    SubscriptionTier.YEARLY.value: AccessLevel.ULTRA,
    SubscriptionTier.LIFETIME.value: AccessLevel.ULTRA,
}

_KNOWN_TIERS = {tier.value for tier in SubscriptionTier}


def _normalize_now(now: Optional[Any]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if getattr(now, "tzinfo", None) is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_privileged(context: Optional[CallerContext]) -> bool:
    """True when the actor is an admin, directly or while impersonating a student."""
    if context is None:
        return False
    return context.actor.is_admin or context.impersonating


def is_subscription_active(user: Optional[User], now: Optional[Any] = None) -> bool:
    if user is None:
        return False
    if user.is_admin:
        return True
    if user.subscription_end_date is not None:
        if _as_utc(user.subscription_end_date) > _normalize_now(now):
            return True
    return user.subscription_tier == SubscriptionTier.LIFETIME.value


def get_access_level(user: Optional[User], now: Optional[Any] = None) -> AccessLevel:
    if not is_subscription_active(user, now):
        return AccessLevel.NONE

    tier = user.subscription_tier
    level = LEVEL_BY_TIER.get(tier)
    if level is not None:
        return level

    if tier not in _KNOWN_TIERS:
        logger.warning(
            "[entitlement] unrecognised tier, denying paid access",
            extra={"user_id": user.id, "tier": tier},
        )
    return AccessLevel.NONE


def can_access_content(user: Optional[User], content_type: ContentType, now: Optional[Any] = None) -> bool:
    if user is None:
        return False
    if user.is_admin:
        return True

    access_class = access_class_for(content_type)
    if access_class == AccessClass.FREE:
        return True

    level = get_access_level(user, now)
    if access_class == AccessClass.BASIC:
        return level in (AccessLevel.BASIC, AccessLevel.ULTRA)
    return level == AccessLevel.ULTRA


def get_days_remaining(user: Optional[User], now: Optional[Any] = None) -> int:
    if user is None:
        return 0
    if user.subscription_tier == SubscriptionTier.LIFETIME.value:
        return settings.LIFETIME_DAYS_SENTINEL
    if user.subscription_end_date is None:
        return 0

    remaining = _as_utc(user.subscription_end_date) - _normalize_now(now)
    days = math.ceil(remaining / timedelta(days=1))
    return max(0, days)


def describe_entitlement(user: User, now: Optional[Any] = None) -> Dict[str, Any]:
    """Read-only entitlement summary for one user at one instant."""
    normalized_now = _normalize_now(now)
    return {
        "user_id": user.id,
        "tier": user.subscription_tier,
        "active": is_subscription_active(user, normalized_now),
        "access_level": get_access_level(user, normalized_now).value,
        "days_remaining": get_days_remaining(user, normalized_now),
        "content_access": {
            content_type.value: can_access_content(user, content_type, normalized_now)
            for content_type in ContentType
        },
        "evaluated_at": normalized_now.isoformat(),
    }
