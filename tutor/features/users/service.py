"""
User repository.

Each user lives twice in the primary store: the authoritative record
(`users/<id>`) and an entry in the denormalised user list
(`user_directory/<id>`) that admin screens read. `save` writes both copies
in one transaction so they never disagree.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tutor.core.errors import NotFoundError, StoreError
from tutor.features.content.stores import UserDocumentStore
from tutor.models.user import User

logger = logging.getLogger(__name__)

USERS = "users"
USER_DIRECTORY = "user_directory"


class UserRepository:
    def __init__(self, store: Optional[UserDocumentStore] = None):
        self.store = store or UserDocumentStore()
        # Last known copy of each user, used when the store is unreachable
        self._local: Dict[str, User] = {}

    def get(self, user_id: str) -> Optional[User]:
        try:
            data = self.store.get(USERS, user_id)
        except StoreError as e:
            logger.warning("[users] read failed, using local copy", extra={"user_id": user_id, "error_code": e.code})
            return self._local.get(user_id)
        if data is None:
            return self._local.get(user_id)
        user = User.model_validate(data)
        self._local[user.id] = user
        return user

    def require(self, user_id: str) -> User:
        user = self.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def save(self, user: User) -> bool:
        """
        Write the authoritative record and the user list entry.

        Returns False when the store write failed; the local copy is still
        updated so the session keeps the new state.
        """
        self._local[user.id] = user
        data = user.model_dump(mode="json")
        try:
            self.store.merge_set_many([
                (USERS, user.id, data),
                (USER_DIRECTORY, user.id, data),
            ])
        except StoreError as e:
            logger.error(
                "[users] save failed, kept local copy only",
                extra={"user_id": user.id, "error_code": e.code},
            )
            return False
        return True

    def create(self, user: User) -> User:
        if user.created_at is None:
            user = user.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.save(user)
        return user

    def list_users(self) -> List[User]:
        try:
            docs = self.store.list_documents(USER_DIRECTORY)
        except StoreError as e:
            logger.warning("[users] list failed, using local copies", extra={"error_code": e.code})
            return sorted(self._local.values(), key=lambda u: u.id)
        return [User.model_validate(d) for d in docs]

    def directory_entry(self, user_id: str) -> Optional[User]:
        data = self.store.get(USER_DIRECTORY, user_id)
        return User.model_validate(data) if data else None
