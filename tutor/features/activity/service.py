"""
Activity log: append-only, capped at the most recent entries.

Independent of the rest of the core; anything that acts on behalf of a
user can record here.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional
from uuid import uuid4

from tutor.core.config import settings
from tutor.core.logging import log_event
from tutor.models.activity import ActivityLogEntry
from tutor.models.user import User

logger = logging.getLogger(__name__)


class ActivityLogger:
    def __init__(self, limit: Optional[int] = None):
        self.limit = limit or settings.ACTIVITY_LOG_LIMIT
        self._entries: Deque[ActivityLogEntry] = deque(maxlen=self.limit)
        self._lock = threading.Lock()

    def log(self, user: Optional[User], action: str, details: Optional[str] = None) -> Optional[ActivityLogEntry]:
        """Record an action. Without a user there is nothing to attribute, so nothing is recorded."""
        if user is None:
            return None

        entry = ActivityLogEntry(
            id=str(uuid4()),
            user_id=user.id,
            user_name=user.name,
            role=user.role.value,
            action=action,
            details=details,
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries.append(entry)

        log_event("info", f"[activity] {action}", user_id=user.id, event_type=action, extra={"details": details})
        return entry

    def entries(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> List[ActivityLogEntry]:
        """Newest first."""
        with self._lock:
            items = list(self._entries)
        items.reverse()
        if user_id is not None:
            items = [e for e in items if e.user_id == user_id]
        if limit is not None:
            items = items[:limit]
        return items

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
