import threading
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.ledger import get_attempt, register_attempt, spin_history
from app.models import SpinAttempt, User

NOW = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)
DAY = date(2024, 3, 10)


def test_fourth_attempt_in_a_day_is_refused(db, user):
    results = []
    for _ in range(4):
        results.append(register_attempt(db, user.id, DAY, now=NOW, daily_limit=3))
        db.commit()

    assert [(r.allowed, r.attempts_used) for r in results] == [
        (True, 1),
        (True, 2),
        (True, 3),
        (False, 3),
    ]
    assert get_attempt(db, user.id, DAY).attempts_count == 3


def test_new_day_starts_a_new_row(db, user):
    for _ in range(3):
        register_attempt(db, user.id, DAY, now=NOW, daily_limit=3)
    db.commit()

    next_day = register_attempt(db, user.id, date(2024, 3, 11), now=NOW, daily_limit=3)
    db.commit()

    assert next_day.allowed
    assert next_day.attempts_used == 1
    rows = spin_history(db, user.id)
    assert [r.attempt_date for r in rows] == [date(2024, 3, 11), DAY]


def test_users_have_independent_counters(db, user, other_user):
    for _ in range(3):
        register_attempt(db, user.id, DAY, now=NOW, daily_limit=3)
    db.commit()

    result = register_attempt(db, other_user.id, DAY, now=NOW, daily_limit=3)
    assert result.allowed
    assert result.attempts_used == 1


def test_zero_limit_refuses_without_creating_a_row(db, user):
    result = register_attempt(db, user.id, DAY, now=NOW, daily_limit=0)
    db.commit()
    assert not result.allowed
    assert get_attempt(db, user.id, DAY) is None


def test_concurrent_attempts_never_exceed_the_limit(file_engine):
    Session = sessionmaker(bind=file_engine, autoflush=False)
    with Session() as setup:
        u = User(full_name="Racer")
        setup.add(u)
        setup.commit()
        user_id = u.id

    workers = 8
    barrier = threading.Barrier(workers)
    allowed = []
    errors = []

    def attempt():
        session = Session()
        try:
            barrier.wait()
            result = register_attempt(session, user_id, DAY, now=NOW, daily_limit=3)
            session.commit()
            allowed.append(result.allowed)
        except Exception as exc:  # surfaced below
            session.rollback()
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert allowed.count(True) == 3
    with Session() as check:
        rows = check.scalars(select(SpinAttempt).where(SpinAttempt.user_id == user_id)).all()
        assert len(rows) == 1
        assert rows[0].attempts_count == 3
