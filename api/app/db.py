import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings
from .errors import DrawError, InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_NOT_AVAILABLE = "55P03"  # postgres lock_timeout


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str | None = None, **kwargs):
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.db_lock_timeout_ms / 1000,
        }
        engine = create_engine(url, connect_args=connect_args, **kwargs)

        # pysqlite defers BEGIN and breaks SAVEPOINT; take over transaction start
        # and grab the write lock up front so transactions serialize.
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    options = (
        f"-c lock_timeout={settings.db_lock_timeout_ms} "
        f"-c statement_timeout={settings.db_statement_timeout_ms}"
    )
    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args={"options": options},
        **kwargs,
    )


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_lock_timeout(exc: OperationalError) -> bool:
    if getattr(exc.orig, "sqlstate", None) == LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig)


def run_with_lock_retry(db: Session, work: Callable[[], T], retries: int = 1) -> T:
    """Run ``work`` as one unit; roll back on any failure.

    A lock-wait timeout is retried ``retries`` times before it is surfaced as
    :class:`InternalError`. Domain errors propagate unchanged.
    """
    attempt = 0
    while True:
        try:
            return work()
        except DrawError:
            db.rollback()
            raise
        except OperationalError as exc:
            db.rollback()
            if is_lock_timeout(exc) and attempt < retries:
                attempt += 1
                logger.warning("Lock wait timed out, retrying (%d/%d)", attempt, retries)
                continue
            logger.exception("Transaction failed")
            raise InternalError("Database error") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Transaction failed")
            raise InternalError("Database error") from exc
