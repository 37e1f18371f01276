"""
Lookup providers for lesson content.

Three tiers, cheapest first:
- LocalCache: in-process dict, keyed by the raw composite key
- DocumentStore: primary document store (SQLAlchemy, `content_documents`)
- RealtimeStore: secondary realtime store (redis, `nst_content/<key>`)

Every provider exposes `name`, `get(key)` and `set(key, value)`. Remote
providers raise StoreError on failure; the resolver decides what to do
about it.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import pydantic
import redis
from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from tutor.core.config import settings
from tutor.core.database import content_documents, get_db_session, user_documents
from tutor.core.errors import StoreError
from tutor.features.content.keys import realtime_path, sanitize
from tutor.models.content import ContentArtifact

logger = logging.getLogger(__name__)


class LookupProvider(Protocol):
    name: str

    def get(self, key: str) -> Optional[ContentArtifact]:
        ...

    def set(self, key: str, value: ContentArtifact) -> None:
        ...


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _merge(existing: Optional[Dict[str, Any]], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(existing or {})
    merged.update(incoming)
    return merged


def _artifact_from(data: Any, where: str) -> ContentArtifact:
    try:
        return ContentArtifact.from_document(data)
    except (pydantic.ValidationError, TypeError) as e:
        raise StoreError(f"malformed content document at {where}: {e}") from e


def _fill_content_defaults(doc: Dict[str, Any], key: str) -> None:
    """Every stored artifact carries a title and a premium flag; premium links force premium on."""
    if doc.get("premiumLink") or doc.get("premiumVideoLink"):
        doc["premium"] = True
    elif doc.get("premium") is None:
        doc["premium"] = False
    if not doc.get("title"):
        doc["title"] = key


class LocalCache:
    """Session cache. Trusted unconditionally once populated."""

    name = "local"

    def __init__(self):
        self._entries: Dict[str, ContentArtifact] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ContentArtifact]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: ContentArtifact) -> None:
        with self._lock:
            self._entries[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class DocumentStore:
    """Primary store for content documents. Writes merge into the existing document."""

    name = "primary"

    def get(self, key: str) -> Optional[ContentArtifact]:
        doc_id = sanitize(key)
        data = self.get_document(doc_id)
        if data is None:
            return None
        return _artifact_from(data, f"{self.name}:{doc_id}")

    def set(self, key: str, value: ContentArtifact) -> None:
        self.merge_set(sanitize(key), value.to_document(), fill=lambda doc: _fill_content_defaults(doc, key))

    def get_document(self, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(content_documents.c.data).where(content_documents.c.doc_id == doc_id)
                ).first()
        except SQLAlchemyError as e:
            raise StoreError(f"primary read failed for {doc_id}: {e}") from e
        return dict(row.data) if row else None

    def merge_set(
        self,
        doc_id: str,
        data: Dict[str, Any],
        fill: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Dict[str, Any]:
        """
        Upsert; fields missing from `data` keep their stored values.

        `fill` may add derived fields to the merged document before it is written.
        """
        incoming = dict(data)
        incoming["updated_at"] = _utcnow_iso()
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(content_documents.c.data)
                    .where(content_documents.c.doc_id == doc_id)
                    .with_for_update()
                ).first()
                merged = _merge(row.data if row else None, incoming)
                if fill is not None:
                    fill(merged)
                if row:
                    session.execute(
                        update(content_documents)
                        .where(content_documents.c.doc_id == doc_id)
                        .values(data=merged)
                    )
                else:
                    session.execute(insert(content_documents).values(doc_id=doc_id, data=merged))
        except SQLAlchemyError as e:
            raise StoreError(f"primary write failed for {doc_id}: {e}") from e
        return merged


class UserDocumentStore:
    """Primary store for user-keyed documents, grouped by collection."""

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(user_documents.c.data)
                    .where(user_documents.c.collection == collection)
                    .where(user_documents.c.doc_id == doc_id)
                ).first()
        except SQLAlchemyError as e:
            raise StoreError(f"primary read failed for {collection}/{doc_id}: {e}") from e
        return dict(row.data) if row else None

    def list_documents(self, collection: str) -> List[Dict[str, Any]]:
        try:
            with get_db_session() as session:
                rows = session.execute(
                    select(user_documents.c.data)
                    .where(user_documents.c.collection == collection)
                    .order_by(user_documents.c.doc_id)
                ).all()
        except SQLAlchemyError as e:
            raise StoreError(f"primary list failed for {collection}: {e}") from e
        return [dict(r.data) for r in rows]

    def merge_set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with get_db_session() as session:
                merged = self._merge_in_session(session, collection, doc_id, data)
        except SQLAlchemyError as e:
            raise StoreError(f"primary write failed for {collection}/{doc_id}: {e}") from e
        return merged

    def merge_set_many(self, writes: List[Tuple[str, str, Dict[str, Any]]]) -> None:
        """Apply several (collection, doc_id, data) merges in one transaction."""
        try:
            with get_db_session() as session:
                for collection, doc_id, data in writes:
                    self._merge_in_session(session, collection, doc_id, data)
        except SQLAlchemyError as e:
            raise StoreError(f"primary batch write failed: {e}") from e

    def array_append(self, collection: str, doc_id: str, field: str, value: Any, **fields: Any) -> bool:
        """
        Append `value` to the array at `field`, setting `fields` alongside.

        Returns False without writing when the document does not exist.
        """
        try:
            with get_db_session() as session:
                row = self._locked_row(session, collection, doc_id)
                if row is None:
                    return False
                data = dict(row.data)
                items = list(data.get(field) or [])
                items.append(value)
                data[field] = items
                data.update(fields)
                data["updated_at"] = _utcnow_iso()
                session.execute(
                    update(user_documents)
                    .where(user_documents.c.collection == collection)
                    .where(user_documents.c.doc_id == doc_id)
                    .values(data=data)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"primary array append failed for {collection}/{doc_id}: {e}") from e
        return True

    def _locked_row(self, session, collection: str, doc_id: str):
        return session.execute(
            select(user_documents.c.data)
            .where(user_documents.c.collection == collection)
            .where(user_documents.c.doc_id == doc_id)
            .with_for_update()
        ).first()

    def _merge_in_session(self, session, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        incoming = dict(data)
        incoming["updated_at"] = _utcnow_iso()
        row = self._locked_row(session, collection, doc_id)
        merged = _merge(row.data if row else None, incoming)
        if row:
            session.execute(
                update(user_documents)
                .where(user_documents.c.collection == collection)
                .where(user_documents.c.doc_id == doc_id)
                .values(data=merged)
            )
        else:
            session.execute(
                insert(user_documents).values(collection=collection, doc_id=doc_id, data=merged)
            )
        return merged


def get_redis_client(url: Optional[str] = None):
    return redis.from_url(url or settings.REDIS_URL, decode_responses=True)


class RealtimeStore:
    """
    Secondary store on redis.

    Values are JSON at `<namespace>/<sanitised key>`; every write is also
    published on a channel named after the path so subscribers see it.
    """

    name = "secondary"

    def __init__(self, client=None, namespace: Optional[str] = None):
        self._client = client
        self.namespace = namespace or settings.CONTENT_NAMESPACE

    @property
    def client(self):
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def path_for(self, key: str) -> str:
        return realtime_path(key, self.namespace)

    def get(self, key: str) -> Optional[ContentArtifact]:
        path = self.path_for(key)
        data = self.get_path(path)
        if data is None:
            return None
        return _artifact_from(data, f"{self.name}:{path}")

    def set(self, key: str, value: ContentArtifact) -> None:
        self.set_path(self.path_for(key), value.to_document())

    def get_path(self, path: str) -> Optional[Any]:
        try:
            raw = self.client.get(path)
        except redis.RedisError as e:
            raise StoreError(f"realtime read failed for {path}: {e}") from e
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StoreError(f"realtime value at {path} is not JSON: {e}") from e

    def set_path(self, path: str, value: Any) -> None:
        payload = json.dumps(value, default=str)
        try:
            self.client.set(path, payload)
            self.client.publish(path, payload)
        except redis.RedisError as e:
            raise StoreError(f"realtime write failed for {path}: {e}") from e

    def subscribe(self, path: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Call `callback` with the current value at `path`, then on every change.

        Returns a function that ends the subscription.
        """
        def _handler(message):
            try:
                value = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("[realtime] undecodable message", extra={"path": path})
                return
            callback(value)

        current = self.get_path(path)
        if current is not None:
            callback(current)

        try:
            pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{path: _handler})
            worker = pubsub.run_in_thread(sleep_time=0.1, daemon=True)
        except redis.RedisError as e:
            raise StoreError(f"realtime subscribe failed for {path}: {e}") from e

        def _unsubscribe():
            worker.stop()
            pubsub.close()

        return _unsubscribe
