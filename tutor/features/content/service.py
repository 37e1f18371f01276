"""
Content access flow.

Opening a chapter artifact runs, in order:
1. resolve the stored artifact (its price drives the cost)
2. price it for this user
3. reserve credits (nothing is produced for a user who cannot pay)
4. use the stored artifact, or generate and persist a new one
5. commit the charge and save the user
6. record CONTENT_GEN activity

A producer failure releases the reservation so the user is not charged
for content they never received.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from tutor.core.errors import PermissionError, ProducerError
from tutor.core.metrics import content_generated_total
from tutor.features.activity.service import ActivityLogger
from tutor.features.content.keys import ContentKey
from tutor.features.content.producer import ContentProducer, language_for_board
from tutor.features.content.resolver import ContentResolver
from tutor.features.credits import ledger
from tutor.features.entitlements.service import can_access_content, is_privileged
from tutor.features.settings.service import SettingsHub
from tutor.features.users.service import UserRepository
from tutor.models.activity import ActivityAction
from tutor.models.content import ContentArtifact
from tutor.models.user import CallerContext, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentAccessResult:
    key: str
    artifact: ContentArtifact
    cost: int
    user: User
    generated: bool
    covered_by_subscription: bool


class ContentAccessService:
    def __init__(
        self,
        resolver: ContentResolver,
        producer: ContentProducer,
        users: UserRepository,
        activity: ActivityLogger,
        settings_hub: Optional[SettingsHub] = None,
    ):
        self.resolver = resolver
        self.producer = producer
        self.users = users
        self.activity = activity
        self.settings_hub = settings_hub

    def _ensure_class_open(self, context: CallerContext, key: ContentKey) -> None:
        """Students only reach classes the admin has enabled; an empty list enables all."""
        if self.settings_hub is None or is_privileged(context):
            return
        allowed = self.settings_hub.current.allowed_classes
        if allowed and key.class_level not in allowed:
            raise PermissionError(f"Class {key.class_level} is not available right now")

    def quote(self, context: CallerContext, key: ContentKey) -> int:
        """Credits the caller would be charged to open `key` right now."""
        self._ensure_class_open(context, key)
        if is_privileged(context):
            return 0
        stored = self.resolver.resolve(key.render())
        return ledger.resolve_cost(stored, context.user, key.content_type)

    def open_content(
        self,
        context: CallerContext,
        key: ContentKey,
        chapter_title: Optional[str] = None,
        language: Optional[str] = None,
    ) -> ContentAccessResult:
        self._ensure_class_open(context, key)
        raw_key = key.render()
        user = context.user

        stored = self.resolver.resolve(raw_key)
        cost = ledger.resolve_cost(stored, user, key.content_type)
        reservation = ledger.reserve(
            user,
            cost,
            impersonating=context.impersonating,
            content_key=raw_key,
        )

        artifact = stored
        generated = False
        if artifact is None:
            try:
                artifact = self.producer.generate(
                    key.board,
                    key.class_level,
                    key.stream,
                    key.subject_name,
                    chapter_title or key.chapter_id,
                    language or language_for_board(key.board),
                    key.content_type,
                )
            except ProducerError:
                ledger.release(reservation)
                logger.warning(
                    "[content] generation failed, reservation released",
                    extra={"user_id": user.id, "content_key": raw_key, "cost": reservation.cost},
                )
                raise
            self.resolver.persist(raw_key, artifact)
            generated = True
            content_generated_total.inc(labels={"content_type": key.content_type.value})

        updated = ledger.commit(reservation)
        if not reservation.skipped:
            self.users.save(updated)

        self.activity.log(
            user,
            ActivityAction.CONTENT_GEN,
            f"Opened {key.content_type.value} for {chapter_title or key.chapter_id}",
        )

        return ContentAccessResult(
            key=raw_key,
            artifact=artifact,
            cost=reservation.cost,
            user=updated,
            generated=generated,
            covered_by_subscription=can_access_content(user, key.content_type),
        )

    def publish(self, context: CallerContext, key: ContentKey, artifact: ContentArtifact) -> None:
        """Admin upload or price edit. Merges into the stored artifact."""
        if not context.actor.is_admin:
            raise PermissionError("Only admins can publish content")
        raw_key = key.render()
        self.resolver.invalidate(raw_key)
        self.resolver.persist(raw_key, artifact)
        self.activity.log(
            context.actor,
            ActivityAction.CONTENT_UPLOAD,
            f"Saved {key.content_type.value} for {key.chapter_id}",
        )
