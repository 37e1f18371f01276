import pytest

from tutor.core.errors import InsufficientCreditsError, PermissionError, ProducerError
from tutor.features.content.keys import ContentKey
from tutor.features.credits.ledger import get_user_ledger
from tutor.models.activity import ActivityAction
from tutor.models.content import ContentArtifact, ContentType
from tutor.models.user import CallerContext
from tutor.tests.fakes import make_user


def _key(content_type=ContentType.MCQ_ANALYSIS, chapter="ch1"):
    return ContentKey(
        board="CBSE",
        class_level="10",
        subject_name="Physics",
        chapter_id=chapter,
        content_type=content_type,
    )


def _seed(services, key, artifact):
    services.resolver.persist(key.render(), artifact)


def test_stored_priced_content_charges_and_saves_both_copies(services, producer):
    user = services.users.create(make_user(credits=10))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=7))

    result = services.content.open_content(CallerContext.for_user(user), key, chapter_title="Motion")

    assert result.cost == 7
    assert result.generated is False
    assert result.user.credits == 3
    assert producer.calls == []
    assert services.users.get(user.id).credits == 3
    assert services.users.directory_entry(user.id).credits == 3
    assert get_user_ledger(user.id)[0].content_key == key.render()


def test_insufficient_credits_blocks_before_production(services, producer):
    user = services.users.create(make_user(credits=5))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=7))

    with pytest.raises(InsufficientCreditsError):
        services.content.open_content(CallerContext.for_user(user), key)

    assert producer.calls == []
    assert services.users.get(user.id).credits == 5
    assert services.activity.entries(user_id=user.id) == []


def test_missing_content_is_generated_and_persisted(services, producer, fake_redis):
    user = services.users.create(make_user(credits=0))
    key = _key(ContentType.NOTES_SIMPLE)

    result = services.content.open_content(CallerContext.for_user(user), key, chapter_title="Motion")

    assert result.generated is True
    assert result.cost == 0
    assert producer.calls[0]["chapter"] == "Motion"
    assert producer.calls[0]["language"] == "English"
    assert fake_redis.stored_json(f"nst_content/{key.remote_id()}")["content"].startswith("# Chapter notes")

    # second open is served from the stores, not the producer
    services.content.open_content(CallerContext.for_user(user), key, chapter_title="Motion")
    assert len(producer.calls) == 1


def test_hindi_board_defaults_to_hindi(services, producer):
    user = services.users.create(make_user())
    key = ContentKey(
        board="BSEB",
        class_level="12",
        stream="Arts",
        subject_name="History",
        chapter_id="3",
        content_type=ContentType.NOTES_SIMPLE,
    )
    services.content.open_content(CallerContext.for_user(user), key)
    assert producer.calls[0]["language"] == "Hindi"
    assert producer.calls[0]["stream"] == "Arts"


def test_producer_failure_releases_reservation(services, producer):
    user = services.users.create(make_user(credits=10))
    key = _key()
    producer.fail = True

    with pytest.raises(ProducerError):
        services.content.open_content(CallerContext.for_user(user), key)

    assert services.users.get(user.id).credits == 10
    assert get_user_ledger(user.id) == []


def test_impersonating_admin_is_not_charged(services):
    admin = services.users.create(make_user("adm", role="admin"))
    student = services.users.create(make_user(credits=1))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=7))

    context = CallerContext(actor=admin, user=student)
    assert services.content.quote(context, key) == 0
    result = services.content.open_content(context, key)

    assert result.cost == 0
    assert services.users.get(student.id).credits == 1


def test_subscriber_quote_is_zero(services):
    user = services.users.create(make_user(tier="MONTHLY", end_in_days=1, credits=0))
    key = _key(ContentType.NOTES_PREMIUM)
    _seed(services, key, ContentArtifact(content="notes", price=10))

    assert services.content.quote(CallerContext.for_user(user), key) == 0
    result = services.content.open_content(CallerContext.for_user(user), key)
    assert result.cost == 0
    assert result.covered_by_subscription is True


def test_open_logs_content_gen_activity(services):
    user = services.users.create(make_user())
    services.content.open_content(CallerContext.for_user(user), _key(ContentType.PDF_FREE), chapter_title="Light")

    entries = services.activity.entries(user_id=user.id)
    assert entries[0].action == ActivityAction.CONTENT_GEN
    assert "Light" in entries[0].details


def test_publish_requires_admin_and_refreshes_local_copy(services):
    admin = make_user("adm", role="admin")
    student = make_user()
    key = _key()
    raw = key.render()
    services.resolver.local.set(raw, ContentArtifact(content="old", price=1))

    with pytest.raises(PermissionError):
        services.content.publish(CallerContext.for_user(student), key, ContentArtifact(price=9))

    services.content.publish(CallerContext.for_user(admin), key, ContentArtifact(content="new", price=9))
    assert services.resolver.resolve(raw).price == 9


def test_disabled_class_is_closed_to_students(services, producer):
    services.settings_hub.update({"allowed_classes": ["9"]})
    student = services.users.create(make_user(credits=10))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=2))

    with pytest.raises(PermissionError, match="Class 10"):
        services.content.quote(CallerContext.for_user(student), key)
    with pytest.raises(PermissionError, match="Class 10"):
        services.content.open_content(CallerContext.for_user(student), key)

    assert services.users.get(student.id).credits == 10
    assert get_user_ledger(student.id) == []
    assert producer.calls == []


def test_disabled_class_stays_open_to_admins(services):
    services.settings_hub.update({"allowed_classes": ["9"]})
    admin = services.users.create(make_user("adm", role="admin"))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=2))

    assert services.content.open_content(CallerContext.for_user(admin), key).artifact.content == "mcqs"


def test_empty_class_list_enables_every_class(services):
    services.settings_hub.update({"allowed_classes": []})
    student = services.users.create(make_user(credits=10))
    key = _key()
    _seed(services, key, ContentArtifact(content="mcqs", price=2))

    assert services.content.open_content(CallerContext.for_user(student), key).cost == 2
