"""
Weekly test results.

An attempt is kept in a per-user local map (latest attempt per test) and
appended to the user's `test_history` in the primary store so admins can
see it.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from tutor.core.errors import StoreError, ValidationError
from tutor.features.activity.service import ActivityLogger
from tutor.features.content.stores import UserDocumentStore
from tutor.models.activity import ActivityAction
from tutor.models.weekly_test import TestAttempt, WeeklyTest
from tutor.models.user import User

logger = logging.getLogger(__name__)

RESULTS = "test_results"
HISTORY_FIELD = "test_history"


def score_percent(score: int, total: int) -> int:
    if total <= 0:
        raise ValidationError("total must be positive")
    if score < 0 or score > total:
        raise ValidationError("score must be between 0 and total")
    # Round half up, not banker's rounding
    return int(score * 100 / total + 0.5)


class WeeklyTestService:
    def __init__(self, store: Optional[UserDocumentStore], activity: ActivityLogger):
        self.store = store
        self.activity = activity
        self._attempts: Dict[str, Dict[str, TestAttempt]] = {}
        self._lock = threading.Lock()

    def submit_attempt(
        self,
        user: User,
        test: WeeklyTest,
        score: int,
        total: int,
        *,
        started_at: Optional[datetime] = None,
        answers: Optional[Dict[str, int]] = None,
    ) -> TestAttempt:
        attempt = TestAttempt(
            test_id=test.id,
            test_name=test.name,
            user_id=user.id,
            user_name=user.name,
            started_at=started_at,
            submitted_at=datetime.now(timezone.utc),
            score=score_percent(score, total),
            total_questions=total,
            answers=answers or {},
        )

        with self._lock:
            self._attempts.setdefault(user.id, {})[test.id] = attempt

        self._sync(attempt)
        self.activity.log(user, ActivityAction.TEST_SUBMIT, f"Completed {test.name} with score {score}/{total}")
        return attempt

    def attempts_for(self, user_id: str) -> Dict[str, TestAttempt]:
        with self._lock:
            return dict(self._attempts.get(user_id, {}))

    def _sync(self, attempt: TestAttempt) -> None:
        if self.store is None:
            return
        record = attempt.model_dump(mode="json")
        try:
            appended = self.store.array_append(
                RESULTS,
                attempt.user_id,
                HISTORY_FIELD,
                record,
                last_test_taken=record["submitted_at"],
            )
            if not appended:
                self.store.merge_set(
                    RESULTS,
                    attempt.user_id,
                    {HISTORY_FIELD: [record], "last_test_taken": record["submitted_at"]},
                )
        except StoreError as e:
            logger.error(
                "[weekly_tests] result sync failed, kept locally",
                extra={"user_id": attempt.user_id, "error_code": e.code},
            )
