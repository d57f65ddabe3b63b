import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.db import run_with_lock_retry
from app.errors import InternalError, NotFound


def _locked():
    return OperationalError("UPDATE spin_attempts", {}, sqlite3.OperationalError("database is locked"))


def test_lock_timeout_is_retried_once(db):
    calls = []

    def work():
        calls.append(1)
        if len(calls) == 1:
            raise _locked()
        return "done"

    assert run_with_lock_retry(db, work) == "done"
    assert len(calls) == 2


def test_repeated_lock_timeout_becomes_internal_error(db):
    calls = []

    def work():
        calls.append(1)
        raise _locked()

    with pytest.raises(InternalError):
        run_with_lock_retry(db, work)
    assert len(calls) == 2


def test_other_database_errors_are_not_retried(db):
    calls = []

    def work():
        calls.append(1)
        raise IntegrityError("INSERT", {}, sqlite3.IntegrityError("UNIQUE constraint failed"))

    with pytest.raises(InternalError):
        run_with_lock_retry(db, work)
    assert len(calls) == 1


def test_domain_errors_pass_through(db):
    def work():
        raise NotFound()

    with pytest.raises(NotFound):
        run_with_lock_retry(db, work)
