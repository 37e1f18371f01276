"""
Global settings hub.

One process-wide SystemSettings value with observer subscriptions. Updates
notify every subscriber and are mirrored to the realtime store; once
attached, changes written to the realtime store by another process flow
back into the hub. There is no polling.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from tutor.core.config import settings
from tutor.core.errors import StoreError
from tutor.models.settings import SystemSettings

logger = logging.getLogger(__name__)

Subscriber = Callable[[SystemSettings], None]


class SettingsHub:
    def __init__(self, initial: Optional[SystemSettings] = None, path: Optional[str] = None):
        self._current = initial or SystemSettings()
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._realtime = None
        self._detach: Optional[Callable[[], None]] = None
        self.path = path or settings.SETTINGS_PATH

    @property
    def current(self) -> SystemSettings:
        return self._current

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback`; it is called at once with the current value."""
        with self._lock:
            self._subscribers.append(callback)
        callback(self._current)

        def _unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def update(self, new_settings: Union[SystemSettings, Dict[str, Any]]) -> SystemSettings:
        """Replace the settings, notify subscribers and mirror to the realtime store."""
        value = self._apply(new_settings)
        if self._realtime is not None:
            try:
                self._realtime.set_path(self.path, value.model_dump(mode="json"))
            except StoreError as e:
                logger.warning("[settings] mirror to realtime store failed", extra={"error_code": e.code})
        return value

    def attach(self, realtime_store) -> Callable[[], None]:
        """Follow the settings path on the realtime store. Returns a detach function."""
        self.detach()
        self._realtime = realtime_store
        self._detach = realtime_store.subscribe(self.path, self._on_remote)
        return self.detach

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
        self._detach = None
        self._realtime = None

    def _on_remote(self, value: Any) -> None:
        if not isinstance(value, dict):
            logger.warning("[settings] ignoring non-object settings payload")
            return
        incoming = SystemSettings.model_validate(value)
        if incoming == self._current:
            return
        self._apply(incoming)

    def _apply(self, new_settings: Union[SystemSettings, Dict[str, Any]]) -> SystemSettings:
        if isinstance(new_settings, SystemSettings):
            value = new_settings
        else:
            value = SystemSettings.model_validate(new_settings)

        with self._lock:
            self._current = value
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("[settings] subscriber failed")
        return value


hub = SettingsHub()


def get_settings_hub() -> SettingsHub:
    return hub
