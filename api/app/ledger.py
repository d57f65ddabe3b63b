"""Per-user, per-day spin bookkeeping.

One ``spin_attempts`` row per (user, reference day). The increment is a
conditional UPDATE guarded by ``attempts_count < limit`` so the row lock taken
by the database, not application code, decides which concurrent spin gets the
last slot. Rows are never reset or deleted.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import InternalError
from .models import SpinAttempt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptResult:
    allowed: bool
    attempts_used: int


def register_attempt(
    db: Session, user_id: int, day: date, *, now: datetime, daily_limit: int
) -> AttemptResult:
    """Consume one spin slot for ``(user_id, day)`` inside the caller's transaction."""
    # second pass only happens when a concurrent first spin created the row
    for _ in range(2):
        result = db.execute(
            update(SpinAttempt)
            .where(
                SpinAttempt.user_id == user_id,
                SpinAttempt.attempt_date == day,
                SpinAttempt.attempts_count < daily_limit,
            )
            .values(attempts_count=SpinAttempt.attempts_count + 1, last_attempt=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return AttemptResult(True, _attempts_used(db, user_id, day))

        used = _attempts_used(db, user_id, day)
        if used is not None or daily_limit < 1:
            return AttemptResult(False, used or 0)

        try:
            with db.begin_nested():
                db.add(
                    SpinAttempt(
                        user_id=user_id,
                        attempt_date=day,
                        attempts_count=1,
                        last_attempt=now,
                    )
                )
        except IntegrityError:
            logger.info("Concurrent first spin for user %s on %s", user_id, day)
            continue
        return AttemptResult(True, 1)

    raise InternalError("Could not record spin attempt")


def _attempts_used(db: Session, user_id: int, day: date) -> int | None:
    return db.scalar(
        select(SpinAttempt.attempts_count).where(
            SpinAttempt.user_id == user_id,
            SpinAttempt.attempt_date == day,
        )
    )


def get_attempt(db: Session, user_id: int, day: date) -> SpinAttempt | None:
    return db.scalar(
        select(SpinAttempt).where(
            SpinAttempt.user_id == user_id,
            SpinAttempt.attempt_date == day,
        )
    )


def spin_history(db: Session, user_id: int, limit: int = 30) -> list[SpinAttempt]:
    return list(
        db.scalars(
            select(SpinAttempt)
            .where(SpinAttempt.user_id == user_id)
            .order_by(SpinAttempt.attempt_date.desc())
            .limit(limit)
        )
    )
