"""
Credit ledger for content unlocks.

Manages credit accounting with:
- Cost resolution (subscription coverage makes content free)
- Two-phase charge: reserve before production, commit once content exists
- Privileged callers (admins, impersonation) never pay
- Append-only `credit_ledger` table of committed charges
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError

from tutor.core.database import credit_ledger, get_db_session
from tutor.core.errors import InsufficientCreditsError, StoreError, ValidationError
from tutor.core.logging import get_request_id
from tutor.core.metrics import credits_charged_total, insufficient_credits_total
from tutor.features.entitlements.service import can_access_content, is_privileged
from tutor.models.content import ContentArtifact, ContentType
from tutor.models.user import CallerContext, User

logger = logging.getLogger(__name__)

REASON_CONTENT_UNLOCK = "CONTENT_UNLOCK"


class LedgerEntry:
    """Ledger entry model."""

    def __init__(
        self,
        user_id: str,
        amount: int,
        reason_code: str,
        balance_after: int,
        content_key: Optional[str] = None,
        request_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        self.user_id = user_id
        self.amount = amount
        self.reason_code = reason_code
        self.balance_after = balance_after
        self.content_key = content_key
        self.request_id = request_id
        self.created_at = created_at or datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "amount": self.amount,
            "reason_code": self.reason_code,
            "balance_after": self.balance_after,
            "content_key": self.content_key,
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class CreditReservation:
    reservation_id: str
    user: User
    cost: int
    skipped: bool
    content_key: Optional[str] = None
    reason_code: str = REASON_CONTENT_UNLOCK
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _is_exempt(user: User, impersonating: bool) -> bool:
    return impersonating or is_privileged(CallerContext.for_user(user))


def resolve_cost(
    artifact: Optional[ContentArtifact],
    user: User,
    content_type: ContentType,
    now: Optional[Any] = None,
) -> int:
    """Credits owed to open this artifact; zero when the subscription covers it."""
    if user.is_admin:
        return 0
    if can_access_content(user, content_type, now):
        return 0
    if artifact is None or artifact.price is None:
        return 0
    return max(0, int(artifact.price))


def reserve(
    user: User,
    cost: int,
    *,
    impersonating: bool = False,
    content_key: Optional[str] = None,
    reason_code: str = REASON_CONTENT_UNLOCK,
) -> CreditReservation:
    """
    Check the balance without touching it.

    Raises:
        InsufficientCreditsError: cost is positive and exceeds the balance
    """
    if cost < 0:
        raise ValidationError("cost must be >= 0")

    skipped = cost == 0 or _is_exempt(user, impersonating)
    if not skipped and user.credits < cost:
        insufficient_credits_total.inc()
        logger.warning(
            "[ledger] insufficient credits",
            extra={"user_id": user.id, "cost": cost, "content_key": content_key, "available": user.credits},
        )
        raise InsufficientCreditsError(
            f"Insufficient credits: {cost} required, {user.credits} available",
            required=cost,
            available=user.credits,
        )

    return CreditReservation(
        reservation_id=str(uuid4()),
        user=user,
        cost=0 if skipped else cost,
        skipped=skipped,
        content_key=content_key,
        reason_code=reason_code,
    )


def commit(reservation: CreditReservation, *, user: Optional[User] = None) -> User:
    """
    Apply a reserved charge and return the updated user.

    `user` may carry a fresher copy of the account than the one reserved
    against; the balance is re-checked against it.
    """
    base = user or reservation.user
    if reservation.skipped:
        return base

    if base.credits < reservation.cost:
        insufficient_credits_total.inc()
        raise InsufficientCreditsError(
            f"Insufficient credits: {reservation.cost} required, {base.credits} available",
            required=reservation.cost,
            available=base.credits,
        )

    updated = base.model_copy(update={"credits": base.credits - reservation.cost})
    entry = LedgerEntry(
        user_id=updated.id,
        amount=-reservation.cost,
        reason_code=reservation.reason_code,
        balance_after=updated.credits,
        content_key=reservation.content_key,
        request_id=get_request_id(),
    )
    append_ledger_entry(entry)

    credits_charged_total.inc(labels={"reason": reservation.reason_code}, amount=reservation.cost)
    logger.info(
        "[ledger] charged",
        extra={
            "user_id": updated.id,
            "cost": reservation.cost,
            "content_key": reservation.content_key,
            "balance_after": updated.credits,
        },
    )
    return updated


def release(reservation: CreditReservation) -> None:
    """Discard a reservation; nothing was deducted."""
    if reservation.skipped:
        return
    logger.info(
        "[ledger] reservation released",
        extra={"user_id": reservation.user.id, "cost": reservation.cost, "content_key": reservation.content_key},
    )


def charge_and_persist(
    user: User,
    cost: int,
    *,
    impersonating: bool = False,
    content_key: Optional[str] = None,
    repository=None,
) -> User:
    """
    One-step charge.

    Returns the user unchanged when exempt or free. When a repository is
    given, the charged user is saved to both the authoritative record and
    the user list.
    """
    reservation = reserve(user, cost, impersonating=impersonating, content_key=content_key)
    updated = commit(reservation)
    if repository is not None and not reservation.skipped:
        repository.save(updated)
    return updated


def append_ledger_entry(entry: LedgerEntry) -> None:
    """
    Insert one committed charge into credit_ledger.

    Raises:
        StoreError: the row could not be written
    """
    try:
        with get_db_session() as session:
            session.execute(
                insert(credit_ledger).values(
                    user_id=entry.user_id,
                    amount=entry.amount,
                    reason_code=entry.reason_code,
                    balance_after=entry.balance_after,
                    content_key=entry.content_key,
                    request_id=entry.request_id,
                    created_at=entry.created_at,
                )
            )
    except SQLAlchemyError as e:
        logger.error(
            "[ledger] entry write failed",
            extra={"user_id": entry.user_id, "content_key": entry.content_key, "error_code": "store_error"},
        )
        raise StoreError(f"ledger write failed for {entry.user_id}: {e}") from e


def get_user_ledger(user_id: str, limit: int = 100) -> List[LedgerEntry]:
    """Most recent committed charges for a user, newest first."""
    query = (
        select(credit_ledger)
        .where(credit_ledger.c.user_id == user_id)
        .order_by(credit_ledger.c.created_at.desc(), credit_ledger.c.id.desc())
        .limit(limit)
    )
    try:
        with get_db_session() as session:
            rows = session.execute(query).all()
    except SQLAlchemyError as e:
        raise StoreError(f"ledger read failed for {user_id}: {e}") from e
    return [
        LedgerEntry(
            user_id=row.user_id,
            amount=row.amount,
            reason_code=row.reason_code,
            balance_after=row.balance_after,
            content_key=row.content_key,
            request_id=row.request_id,
            created_at=row.created_at,
        )
        for row in rows
    ]
