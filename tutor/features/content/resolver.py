"""
Tiered content resolution.

Lookup walks the providers in order and returns the first hit, writing a
lower-tier hit back into the local cache only. Persistence merges into the
primary store, then mirrors to the secondary store on a best-effort basis.
No tier failure ever reaches the caller: a failed read is a miss, and a
failed write leaves the artifact in the local cache for this session.
"""

import logging
from typing import Dict, List, Mapping, Optional

from tutor.core.errors import StoreError
from tutor.core.logging import log_event
from tutor.core.metrics import content_lookups_total, content_store_failures_total
from tutor.features.content.stores import DocumentStore, LocalCache, LookupProvider, RealtimeStore
from tutor.models.content import ContentArtifact

logger = logging.getLogger(__name__)


class ContentResolver:
    def __init__(
        self,
        local: LocalCache,
        primary: Optional[LookupProvider] = None,
        secondary: Optional[LookupProvider] = None,
    ):
        self.local = local
        self.primary = primary
        self.secondary = secondary

    @property
    def providers(self) -> List[LookupProvider]:
        return [p for p in (self.local, self.primary, self.secondary) if p is not None]

    def resolve(self, key: str) -> Optional[ContentArtifact]:
        for provider in self.providers:
            try:
                artifact = provider.get(key)
            except StoreError as e:
                content_store_failures_total.inc(labels={"tier": provider.name, "op": "get"})
                logger.warning(
                    "[resolver] read failed, treating as miss",
                    extra={"content_key": key, "tier": provider.name, "error_code": e.code},
                )
                continue

            if artifact is None:
                continue

            content_lookups_total.inc(labels={"tier": provider.name, "outcome": "hit"})
            if provider is not self.local:
                self.local.set(key, artifact)
            logger.debug("[resolver] hit", extra={"content_key": key, "tier": provider.name})
            return artifact

        content_lookups_total.inc(labels={"tier": "none", "outcome": "miss"})
        return None

    def persist(self, key: str, artifact: ContentArtifact) -> None:
        """
        Merge-write to the primary store, then mirror to the secondary store.

        A failed remote write is logged and the artifact lands in the local
        cache instead; nothing is raised.
        """
        failed = False
        for provider in (self.primary, self.secondary):
            if provider is None:
                continue
            try:
                provider.set(key, artifact)
            except StoreError as e:
                failed = True
                content_store_failures_total.inc(labels={"tier": provider.name, "op": "set"})
                log_event(
                    "warning",
                    "[resolver] write failed",
                    content_key=key,
                    event_type="content.persist",
                    error_code=e.code,
                    extra={"tier": provider.name, "error": e.message},
                )

        if failed or self.primary is None:
            self.local.set(key, artifact)

    def invalidate(self, key: str) -> None:
        self.local.delete(key)

    def bulk_persist(self, artifacts: Mapping[str, ContentArtifact]) -> Dict[str, bool]:
        """Write many artifacts to the secondary store; returns key -> written."""
        results: Dict[str, bool] = {}
        target = self.secondary or self.primary
        for key, artifact in artifacts.items():
            if target is None:
                self.local.set(key, artifact)
                results[key] = False
                continue
            try:
                target.set(key, artifact)
                results[key] = True
            except StoreError as e:
                content_store_failures_total.inc(labels={"tier": target.name, "op": "bulk_set"})
                logger.warning(
                    "[resolver] bulk write failed",
                    extra={"content_key": key, "tier": target.name, "error_code": e.code},
                )
                self.local.set(key, artifact)
                results[key] = False
            else:
                self.local.delete(key)
        return results


def build_resolver(
    *,
    realtime_enabled: bool = True,
    realtime_store: Optional[RealtimeStore] = None,
) -> ContentResolver:
    """Default three-tier resolver: local cache, primary document store, realtime store."""
    secondary = realtime_store or (RealtimeStore() if realtime_enabled else None)
    return ContentResolver(LocalCache(), DocumentStore(), secondary)
