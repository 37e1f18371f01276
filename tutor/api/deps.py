"""
Shared FastAPI dependencies: the service container and the caller context.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from tutor.core.auth import get_current_user_id
from tutor.core.config import settings
from tutor.core.errors import AuthError, MaintenanceError, NotFoundError, PermissionError
from tutor.features.activity.service import ActivityLogger
from tutor.features.auth.service import AuthService
from tutor.features.content.producer import ContentProducer, GroqContentProducer
from tutor.features.content.resolver import ContentResolver, build_resolver
from tutor.features.content.service import ContentAccessService
from tutor.features.content.stores import RealtimeStore, UserDocumentStore
from tutor.features.settings.service import SettingsHub, get_settings_hub
from tutor.features.users.service import UserRepository
from tutor.features.weekly_tests.service import WeeklyTestService
from tutor.models.user import CallerContext

logger = logging.getLogger(__name__)


@dataclass
class Services:
    users: UserRepository
    activity: ActivityLogger
    resolver: ContentResolver
    content: ContentAccessService
    auth: AuthService
    settings_hub: SettingsHub
    weekly_tests: WeeklyTestService
    realtime: Optional[RealtimeStore] = None


def build_services(
    *,
    producer: Optional[ContentProducer] = None,
    realtime_store: Optional[RealtimeStore] = None,
    settings_hub: Optional[SettingsHub] = None,
    realtime_enabled: Optional[bool] = None,
) -> Services:
    enabled = settings.REALTIME_ENABLED if realtime_enabled is None else realtime_enabled
    realtime = realtime_store or (RealtimeStore() if enabled else None)
    hub = settings_hub or get_settings_hub()
    users = UserRepository(UserDocumentStore())
    activity = ActivityLogger()
    resolver = build_resolver(realtime_enabled=enabled, realtime_store=realtime)
    return Services(
        users=users,
        activity=activity,
        resolver=resolver,
        content=ContentAccessService(resolver, producer or GroqContentProducer(), users, activity, hub),
        auth=AuthService(users, hub, activity),
        settings_hub=hub,
        weekly_tests=WeeklyTestService(UserDocumentStore(), activity),
        realtime=realtime,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


def get_caller(
    user_id: str = Depends(get_current_user_id),
    x_impersonate_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> CallerContext:
    """
    Resolve who is acting. An admin may act as a student by sending
    X-Impersonate-User-Id; while maintenance mode is on only admins get in.
    """
    actor = services.users.get(user_id)
    if actor is None:
        raise AuthError("Unknown user. Please log in again.")

    system = services.settings_hub.current
    if system.maintenance_mode and not actor.is_admin:
        raise MaintenanceError(system.maintenance_message)

    if not x_impersonate_user_id or x_impersonate_user_id == actor.id:
        return CallerContext.for_user(actor)

    if not actor.is_admin:
        raise PermissionError("Only admins can act as another user")
    target = services.users.get(x_impersonate_user_id)
    if target is None:
        raise NotFoundError(f"User {x_impersonate_user_id} not found")
    return CallerContext(actor=actor, user=target)


def require_admin(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    if not caller.actor.is_admin:
        raise PermissionError("Admin access required")
    return caller
