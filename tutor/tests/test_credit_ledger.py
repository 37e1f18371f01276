from datetime import datetime, timezone

import pytest

from tutor.core.errors import InsufficientCreditsError, ValidationError
from tutor.core.metrics import credits_charged_total
from tutor.features.credits import ledger
from tutor.features.entitlements.service import can_access_content
from tutor.models.content import ContentArtifact, ContentType
from tutor.tests.fakes import make_user

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingRepo:
    def __init__(self):
        self.saved = []

    def save(self, user):
        self.saved.append(user)
        return True


def test_admin_cost_is_always_zero():
    admin = make_user("adm", role="admin")
    artifact = ContentArtifact(content="x", price=50)
    for content_type in ContentType:
        assert ledger.resolve_cost(artifact, admin, content_type, now=NOW) == 0


def test_subscriber_pays_nothing_for_covered_content():
    user = make_user(tier="MONTHLY", end_in_days=1, now=NOW)
    artifact = ContentArtifact(content="notes", price=10)
    assert can_access_content(user, ContentType.NOTES_PREMIUM, now=NOW) is True
    assert ledger.resolve_cost(artifact, user, ContentType.NOTES_PREMIUM, now=NOW) == 0


def test_unpriced_or_missing_artifact_is_free():
    user = make_user(tier="NONE")
    assert ledger.resolve_cost(None, user, ContentType.MCQ_ANALYSIS) == 0
    assert ledger.resolve_cost(ContentArtifact(content="q"), user, ContentType.MCQ_ANALYSIS) == 0


def test_insufficient_credits_leaves_balance_untouched():
    user = make_user(credits=5, tier="NONE", now=NOW)
    artifact = ContentArtifact(content="mcq", price=7)

    assert can_access_content(user, ContentType.MCQ_ANALYSIS, now=NOW) is False
    cost = ledger.resolve_cost(artifact, user, ContentType.MCQ_ANALYSIS, now=NOW)
    assert cost == 7

    repo = RecordingRepo()
    with pytest.raises(InsufficientCreditsError) as exc:
        ledger.charge_and_persist(user, cost, repository=repo)

    assert exc.value.code == "INSUFFICIENT_CREDITS"
    assert exc.value.status_code == 402
    assert exc.value.required == 7
    assert exc.value.available == 5
    assert user.credits == 5
    assert repo.saved == []
    assert ledger.get_user_ledger(user.id) == []


def test_charge_deducts_and_persists():
    user = make_user(credits=10, tier="NONE", now=NOW)
    cost = ledger.resolve_cost(ContentArtifact(content="mcq", price=7), user, ContentType.MCQ_ANALYSIS, now=NOW)

    repo = RecordingRepo()
    updated = ledger.charge_and_persist(user, cost, content_key="content_k", repository=repo)

    assert updated.credits == 3
    assert user.credits == 10
    assert repo.saved == [updated]

    entries = ledger.get_user_ledger(user.id)
    assert len(entries) == 1
    assert entries[0].amount == -7
    assert entries[0].balance_after == 3
    assert entries[0].content_key == "content_k"
    assert credits_charged_total.value(labels={"reason": ledger.REASON_CONTENT_UNLOCK}) == 7


def test_admin_and_impersonation_skip_the_charge():
    admin = make_user("adm", role="admin", credits=0)
    assert ledger.charge_and_persist(admin, 25) is admin

    student = make_user(credits=1)
    repo = RecordingRepo()
    assert ledger.charge_and_persist(student, 25, impersonating=True, repository=repo) is student
    assert repo.saved == []
    assert ledger.get_user_ledger(student.id) == []


def test_zero_cost_is_a_no_op():
    user = make_user(credits=0)
    assert ledger.charge_and_persist(user, 0) is user


def test_negative_cost_rejected():
    with pytest.raises(ValidationError):
        ledger.reserve(make_user(credits=3), -1)


def test_reserve_does_not_mutate_and_release_discards():
    user = make_user(credits=10)
    reservation = ledger.reserve(user, 4, content_key="k")
    assert reservation.cost == 4
    assert reservation.skipped is False
    assert user.credits == 10

    ledger.release(reservation)
    assert ledger.get_user_ledger(user.id) == []


def test_commit_rechecks_against_fresher_balance():
    user = make_user(credits=10)
    reservation = ledger.reserve(user, 8)
    spent_elsewhere = user.model_copy(update={"credits": 2})

    with pytest.raises(InsufficientCreditsError):
        ledger.commit(reservation, user=spent_elsewhere)


def test_ledger_newest_first():
    user = make_user(credits=10)
    user = ledger.charge_and_persist(user, 2, content_key="a")
    user = ledger.charge_and_persist(user, 3, content_key="b")
    keys = [e.content_key for e in ledger.get_user_ledger(user.id)]
    assert keys == ["b", "a"]
    assert user.credits == 5


def test_committed_charges_are_rows_in_credit_ledger():
    from sqlalchemy import select

    from tutor.core.database import credit_ledger, get_db_session

    ledger.charge_and_persist(make_user("u7", credits=9), 4, content_key="content_x")

    with get_db_session() as session:
        rows = session.execute(select(credit_ledger)).all()
    assert [(r.user_id, r.amount, r.balance_after, r.content_key) for r in rows] == [("u7", -4, 5, "content_x")]


def test_ledger_read_is_limited_and_scoped_to_user():
    user = make_user("u8", credits=20)
    for key in ("a", "b", "c", "d"):
        user = ledger.charge_and_persist(user, 1, content_key=key)
    ledger.charge_and_persist(make_user("other", credits=5), 1, content_key="z")

    entries = ledger.get_user_ledger("u8", limit=2)
    assert [e.content_key for e in entries] == ["d", "c"]
    assert [e.balance_after for e in entries] == [16, 17]


def test_ledger_write_failure_is_a_store_error(monkeypatch):
    from sqlalchemy.exc import OperationalError

    from tutor.core.errors import StoreError

    def broken_session():
        raise OperationalError("INSERT", {}, Exception("db down"))

    monkeypatch.setattr(ledger, "get_db_session", broken_session)
    with pytest.raises(StoreError):
        ledger.charge_and_persist(make_user(credits=3), 1)
