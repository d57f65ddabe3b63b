import random
import string
from collections import Counter
from datetime import date, datetime, timezone

import pytest

from app.models import Reward
from app.utils import as_utc, gen_claim_code, reference_day, select_reward


class FixedRandom:
    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def _pool(*weights):
    return [Reward(id=i + 1, name=f"r{i + 1}", weight=w) for i, w in enumerate(weights)]


def test_select_is_deterministic_for_a_fixed_draw():
    pool = _pool(1, 1, 2)
    picks = [
        select_reward(pool, FixedRandom(x)).id
        for x in (0.0, 0.2499, 0.25, 0.49, 0.5, 0.999)
    ]
    assert picks == [1, 1, 2, 2, 3, 3]


def test_select_falls_back_to_last_reward_when_draw_reaches_total():
    pool = _pool(0.1, 0.2, 0.3)
    assert select_reward(pool, FixedRandom(1.0)).id == 3


def test_zero_weight_reward_is_never_selected():
    pool = _pool(0, 1)
    assert select_reward(pool, FixedRandom(0.0)).id == 2


def test_select_rejects_empty_pool():
    with pytest.raises(ValueError):
        select_reward([])


def test_select_rejects_weightless_pool():
    with pytest.raises(ValueError):
        select_reward(_pool(0, 0))


def test_select_uses_system_random_by_default():
    pool = _pool(1, 1, 2)
    assert select_reward(pool) in pool


def test_selection_frequency_follows_weights():
    pool = _pool(1, 1, 2)
    rng = random.Random(20240101)
    draws = 40_000
    counts = Counter(select_reward(pool, rng).id for _ in range(draws))

    for reward_id, expected in ((1, 0.25), (2, 0.25), (3, 0.5)):
        assert counts[reward_id] / draws == pytest.approx(expected, abs=0.02)


def test_claim_code_is_twelve_lowercase_hex_chars():
    codes = {gen_claim_code() for _ in range(1000)}
    assert len(codes) == 1000
    for code in codes:
        assert len(code) == 12
        assert set(code) <= set(string.hexdigits.lower())


def test_reference_day_rolls_over_at_midnight_in_draw_timezone():
    # 18:29 UTC is 23:59 in Kolkata, 18:30 UTC is midnight
    before = datetime(2024, 1, 1, 18, 29, tzinfo=timezone.utc)
    after = datetime(2024, 1, 1, 18, 30, tzinfo=timezone.utc)
    assert reference_day(before, "Asia/Kolkata") == date(2024, 1, 1)
    assert reference_day(after, "Asia/Kolkata") == date(2024, 1, 2)


def test_as_utc_treats_naive_datetimes_as_utc():
    naive = datetime(2024, 5, 1, 12, 0)
    assert as_utc(naive) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert as_utc(None) is None
