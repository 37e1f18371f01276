import logging

from tutor.features.content.resolver import ContentResolver
from tutor.features.content.stores import DocumentStore, LocalCache, RealtimeStore
from tutor.models.content import ContentArtifact
from tutor.tests.fakes import FakeRedis, RecordingProvider

KEY = "content_CBSE_10_Physics_ch1_NOTES_PREMIUM"


def _resolver(primary_items=None, secondary_items=None):
    local = LocalCache()
    primary = RecordingProvider("primary", primary_items)
    secondary = RecordingProvider("secondary", secondary_items)
    return ContentResolver(local, primary, secondary), local, primary, secondary


def test_local_hit_makes_no_store_calls():
    resolver, local, primary, secondary = _resolver()
    artifact = ContentArtifact(content="cached")
    local.set(KEY, artifact)

    assert resolver.resolve(KEY) is artifact
    assert primary.get_calls == []
    assert secondary.get_calls == []


def test_primary_hit_writes_through_to_local_only():
    artifact = ContentArtifact(content="from primary", price=3)
    resolver, local, primary, secondary = _resolver(primary_items={KEY: artifact})

    assert resolver.resolve(KEY) == artifact
    assert local.get(KEY) == artifact
    assert secondary.get_calls == []
    assert primary.set_calls == []
    assert secondary.set_calls == []


def test_secondary_hit_does_not_backfill_primary():
    artifact = ContentArtifact(content="from realtime")
    resolver, local, primary, secondary = _resolver(secondary_items={KEY: artifact})

    assert resolver.resolve(KEY) == artifact
    assert primary.get_calls == [KEY]
    assert primary.set_calls == []
    assert local.get(KEY) == artifact


def test_full_miss_returns_none():
    resolver, local, primary, secondary = _resolver()
    assert resolver.resolve(KEY) is None
    assert len(local) == 0


def test_read_failure_is_a_miss(caplog):
    artifact = ContentArtifact(content="fallback")
    resolver, local, primary, secondary = _resolver(secondary_items={KEY: artifact})
    primary.fail_get = True

    with caplog.at_level(logging.WARNING):
        assert resolver.resolve(KEY) == artifact
    assert any("read failed" in r.getMessage() for r in caplog.records)


def test_resolve_twice_returns_identical_artifact():
    artifact = ContentArtifact(content="stable", price=2)
    resolver, local, primary, secondary = _resolver(primary_items={KEY: artifact})

    first = resolver.resolve(KEY)
    second = resolver.resolve(KEY)
    assert first is second
    assert primary.get_calls == [KEY]


def test_persist_writes_primary_then_secondary():
    resolver, local, primary, secondary = _resolver()
    artifact = ContentArtifact(content="new")

    resolver.persist(KEY, artifact)

    assert primary.set_calls == [KEY]
    assert secondary.set_calls == [KEY]
    assert local.get(KEY) is None


def test_secondary_write_failure_falls_back_to_local(caplog):
    resolver, local, primary, secondary = _resolver()
    secondary.fail_set = True
    artifact = ContentArtifact(content="new")

    with caplog.at_level(logging.WARNING):
        resolver.persist(KEY, artifact)

    assert primary.items[KEY] == artifact
    assert local.get(KEY) == artifact
    assert any("write failed" in r.getMessage() for r in caplog.records)


def test_primary_write_failure_still_tries_secondary():
    resolver, local, primary, secondary = _resolver()
    primary.fail_set = True
    artifact = ContentArtifact(content="new")

    resolver.persist(KEY, artifact)

    assert secondary.items[KEY] == artifact
    assert local.get(KEY) == artifact


def test_persist_then_clear_then_resolve_round_trip(fake_redis):
    resolver = ContentResolver(LocalCache(), DocumentStore(), RealtimeStore(client=fake_redis))
    artifact = ContentArtifact(
        content={"sections": ["intro", "summary"]}, price=4, title="Motion", premium=False, video_url="https://x/y"
    )

    resolver.persist(KEY, artifact)
    resolver.local.clear()
    restored = resolver.resolve(KEY)

    assert restored is not None
    assert restored.without_store_metadata() == artifact.to_document()
    # served by the primary store, so the secondary was never read
    assert fake_redis.get_calls == []


def test_persist_merges_into_existing_primary_document():
    resolver = ContentResolver(LocalCache(), DocumentStore(), None)
    resolver.persist(KEY, ContentArtifact(content="body", title="Motion"))
    resolver.persist(KEY, ContentArtifact(price=6))

    resolver.invalidate(KEY)
    merged = resolver.resolve(KEY)
    assert merged.content == "body"
    assert merged.title == "Motion"
    assert merged.price == 6


def test_invalidate_clears_local_entry():
    resolver, local, primary, secondary = _resolver()
    local.set(KEY, ContentArtifact(content="stale"))
    resolver.invalidate(KEY)
    assert local.get(KEY) is None


def test_bulk_persist_writes_secondary(fake_redis):
    realtime = RealtimeStore(client=fake_redis)
    resolver = ContentResolver(LocalCache(), None, realtime)
    items = {
        "content_CBSE_10_Maths_1_PDF_FREE": ContentArtifact(content="https://cdn/1.pdf"),
        "content_CBSE_10_Maths_2_PDF_FREE": ContentArtifact(content="https://cdn/2.pdf"),
    }

    results = resolver.bulk_persist(items)

    assert results == {k: True for k in items}
    assert fake_redis.stored_json("nst_content/content_CBSE_10_Maths_1_PDF_FREE") == {"content": "https://cdn/1.pdf"}


def test_bulk_persist_failure_keeps_local_copy(fake_redis):
    fake_redis.fail_writes = True
    resolver = ContentResolver(LocalCache(), None, RealtimeStore(client=fake_redis))
    artifact = ContentArtifact(content="https://cdn/1.pdf")

    results = resolver.bulk_persist({KEY: artifact})

    assert results == {KEY: False}
    assert resolver.local.get(KEY) == artifact


def test_undecodable_realtime_value_is_a_miss(fake_redis):
    resolver = ContentResolver(LocalCache(), DocumentStore(), RealtimeStore(client=fake_redis))
    fake_redis.data[f"nst_content/{KEY}"] = "not json{"

    assert resolver.resolve(KEY) is None
    assert len(resolver.local) == 0


def test_non_object_realtime_value_is_a_miss(fake_redis):
    resolver = ContentResolver(LocalCache(), DocumentStore(), RealtimeStore(client=fake_redis))
    fake_redis.data[f"nst_content/{KEY}"] = '"https://cdn/1.pdf"'

    assert resolver.resolve(KEY) is None


def test_invalid_primary_document_falls_through_to_secondary(fake_redis, caplog):
    primary = DocumentStore()
    primary.merge_set(KEY, {"content": "broken", "price": -3})
    fake_redis.data[f"nst_content/{KEY}"] = '{"content": "good", "price": 2}'
    resolver = ContentResolver(LocalCache(), primary, RealtimeStore(client=fake_redis))

    with caplog.at_level(logging.WARNING):
        artifact = resolver.resolve(KEY)

    assert artifact.content == "good"
    assert any("read failed" in r.getMessage() for r in caplog.records)
