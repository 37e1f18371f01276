import pytest

from tutor.core.errors import StoreError, ValidationError
from tutor.features.activity.service import ActivityLogger
from tutor.features.content.stores import UserDocumentStore
from tutor.features.weekly_tests.service import WeeklyTestService, score_percent
from tutor.models.activity import ActivityAction
from tutor.models.weekly_test import WeeklyTest
from tutor.tests.fakes import make_user

TEST = WeeklyTest(id="wk-1", name="Week 1 Physics", total_questions=20)


@pytest.mark.parametrize("score,total,expected", [
    (13, 20, 65),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (0, 5, 0),
    (5, 5, 100),
])
def test_score_percent_rounds(score, total, expected):
    assert score_percent(score, total) == expected


def test_score_percent_rejects_bad_totals():
    with pytest.raises(ValidationError):
        score_percent(1, 0)
    with pytest.raises(ValidationError):
        score_percent(6, 5)


def test_first_attempt_creates_history_document():
    store = UserDocumentStore()
    service = WeeklyTestService(store, ActivityLogger())
    user = make_user("u1", name="Asha")

    attempt = service.submit_attempt(user, TEST, 13, 20)

    assert attempt.score == 65
    assert attempt.total_questions == 20
    doc = store.get("test_results", "u1")
    assert [h["test_id"] for h in doc["test_history"]] == ["wk-1"]
    assert doc["last_test_taken"] == doc["test_history"][0]["submitted_at"]


def test_later_attempts_append_to_history():
    store = UserDocumentStore()
    service = WeeklyTestService(store, ActivityLogger())
    user = make_user("u1")

    service.submit_attempt(user, TEST, 10, 20)
    service.submit_attempt(user, WeeklyTest(id="wk-2", name="Week 2", total_questions=10), 9, 10)

    history = store.get("test_results", "u1")["test_history"]
    assert [h["score"] for h in history] == [50, 90]
    assert set(service.attempts_for("u1")) == {"wk-1", "wk-2"}


def test_store_failure_keeps_local_attempt(monkeypatch):
    store = UserDocumentStore()
    activity = ActivityLogger()
    service = WeeklyTestService(store, activity)

    def broken(*args, **kwargs):
        raise StoreError("down")

    monkeypatch.setattr(store, "array_append", broken)
    attempt = service.submit_attempt(make_user("u2"), TEST, 20, 20)

    assert service.attempts_for("u2")["wk-1"] == attempt
    assert activity.entries()[0].action == ActivityAction.TEST_SUBMIT
    assert activity.entries()[0].details == "Completed Week 1 Physics with score 20/20"
