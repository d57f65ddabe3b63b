"""Spin and claim flows for the lucky draw.

A spin runs as one transaction: ledger slot, selection, award row and the
reward's claimed counter commit together or not at all. A claim flips an
award from ``pending`` to ``claimed`` with a conditional update so only one
of two racing requests can win.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .db import run_with_lock_retry
from .errors import Conflict, Expired, InternalError, NotFound, RateLimitExceeded, ServiceUnavailable
from .ledger import register_attempt
from .models import Reward, SpinAttempt, UserReward
from .utils import RandomSource, as_utc, gen_claim_code, reference_day, select_reward, utcnow

logger = logging.getLogger(__name__)

CLAIM_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class Win:
    reward: Reward
    award: UserReward
    attempts_used: int


@dataclass(frozen=True)
class NoPrize:
    reward: Reward
    attempts_used: int


SpinOutcome = Union[Win, NoPrize]


def fetch_reward_pool(db: Session) -> list[Reward]:
    """Active rewards with weight left and supply not exhausted, in stable id order."""
    return list(
        db.scalars(
            select(Reward)
            .where(
                Reward.active == True,
                Reward.weight > 0,
                or_(
                    Reward.total_available.is_(None),
                    Reward.total_claimed < Reward.total_available,
                ),
            )
            .order_by(Reward.id.asc())
        )
    )


def spin(
    db: Session,
    user_id: int,
    *,
    now: datetime | None = None,
    rng: RandomSource | None = None,
    daily_limit: int | None = None,
    expiry_days: int | None = None,
    tz_name: str | None = None,
) -> SpinOutcome:
    now = now or utcnow()
    limit = settings.daily_spin_limit if daily_limit is None else daily_limit
    days = settings.claim_expiry_days if expiry_days is None else expiry_days
    day = reference_day(now, tz_name or settings.draw_timezone)

    def work() -> SpinOutcome:
        attempt = register_attempt(db, user_id, day, now=now, daily_limit=limit)
        if not attempt.allowed:
            logger.warning("User %s hit the daily spin limit (%d) on %s", user_id, limit, day)
            raise RateLimitExceeded()

        pool = fetch_reward_pool(db)
        while pool:
            reward = select_reward(pool, rng)
            if reward.is_no_prize:
                db.commit()
                logger.info("User %s spun %s: no prize", user_id, day)
                return NoPrize(reward=reward, attempts_used=attempt.attempts_used)

            if not _take_from_supply(db, reward):
                # another spin took the last unit between fetch and increment
                logger.warning("Reward %s ran out mid-spin, reselecting", reward.id)
                pool.remove(reward)
                continue

            award = _create_award(db, user_id, reward, now, now + timedelta(days=days))
            db.commit()
            logger.info("User %s won reward %s (award %s)", user_id, reward.id, award.id)
            return Win(reward=reward, award=award, attempts_used=attempt.attempts_used)

        logger.warning("Spin rejected for user %s: reward pool is empty", user_id)
        raise ServiceUnavailable()

    return run_with_lock_retry(db, work)


def _take_from_supply(db: Session, reward: Reward) -> bool:
    result = db.execute(
        update(Reward)
        .where(
            Reward.id == reward.id,
            or_(
                Reward.total_available.is_(None),
                Reward.total_claimed < Reward.total_available,
            ),
        )
        .values(total_claimed=Reward.total_claimed + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _create_award(
    db: Session, user_id: int, reward: Reward, now: datetime, expires_at: datetime
) -> UserReward:
    for _ in range(CLAIM_CODE_ATTEMPTS):
        award = UserReward(
            user_id=user_id,
            reward_id=reward.id,
            claim_code=gen_claim_code(),
            status="pending",
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        try:
            with db.begin_nested():
                db.add(award)
        except IntegrityError:
            logger.warning("Claim code collision for user %s, regenerating", user_id)
            continue
        return award
    raise InternalError("Could not generate a unique claim code")


def claim(db: Session, user_id: int, claim_code: str, *, now: datetime | None = None) -> UserReward:
    now = now or utcnow()

    def work() -> UserReward:
        award = db.scalar(
            select(UserReward).where(
                UserReward.user_id == user_id,
                UserReward.claim_code == claim_code,
                UserReward.status == "pending",
            )
        )
        if award is None:
            raise NotFound()
        if now > as_utc(award.expires_at):
            raise Expired()

        result = db.execute(
            update(UserReward)
            .where(UserReward.id == award.id, UserReward.status == "pending")
            .values(status="claimed", claimed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict()
        db.commit()
        db.refresh(award)
        logger.info("User %s claimed award %s", user_id, award.id)
        return award

    return run_with_lock_retry(db, work)


def award_status(award: UserReward, now: datetime | None = None) -> str:
    """Stored status, with ``expired`` derived for pending awards past expiry."""
    if award.status == "pending" and (now or utcnow()) > as_utc(award.expires_at):
        return "expired"
    return award.status


def user_awards(db: Session, user_id: int) -> list[UserReward]:
    return list(
        db.scalars(
            select(UserReward)
            .where(UserReward.user_id == user_id)
            .order_by(UserReward.created_at.desc(), UserReward.id.desc())
        ).unique()
    )


def user_stats(db: Session, user_id: int, now: datetime | None = None) -> dict:
    now = now or utcnow()
    total_spins = db.scalar(
        select(func.coalesce(func.sum(SpinAttempt.attempts_count), 0)).where(
            SpinAttempt.user_id == user_id
        )
    )
    awards = user_awards(db, user_id)
    statuses = [award_status(a, now) for a in awards]
    return {
        "total_spins": int(total_spins or 0),
        "total_wins": len(awards),
        "pending_rewards": statuses.count("pending"),
        "claimed_rewards": statuses.count("claimed"),
        "expired_rewards": statuses.count("expired"),
    }
