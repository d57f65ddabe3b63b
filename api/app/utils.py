import secrets
from datetime import date, datetime, timezone
from typing import Protocol, Sequence

import pytz

from .models import Reward

CLAIM_CODE_BYTES = 6  # 48 bits -> 12 hex chars

_system_random = secrets.SystemRandom()


class RandomSource(Protocol):
    def random(self) -> float: ...


def select_reward(pool: Sequence[Reward], rng: RandomSource | None = None) -> Reward:
    """Pick one reward with probability ``weight / sum(weights)``.

    ``pool`` is walked in the given order. Callers filter it to active,
    non-exhausted rewards and must not pass an empty pool.
    """
    if not pool:
        raise ValueError("reward pool is empty")
    total = sum(float(r.weight) for r in pool)
    if total <= 0:
        raise ValueError("reward pool has no weight")

    x = (rng or _system_random).random() * total
    cumulative = 0.0
    for reward in pool:
        cumulative += float(reward.weight)
        if x < cumulative:
            return reward
    # float accumulation can fall just short of total
    return pool[-1]


def gen_claim_code() -> str:
    # 12 lowercase hex chars like "9f1c04ab7e22"
    return secrets.token_hex(CLAIM_CODE_BYTES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def reference_day(now: datetime, tz_name: str) -> date:
    """Calendar day of ``now`` in the draw time zone (shared rollover for all users)."""
    return as_utc(now).astimezone(pytz.timezone(tz_name)).date()
