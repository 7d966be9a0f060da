"""
Server store database connection
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from expense_tracker.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str, **kwargs):
    """Create an engine; SQLite gets explicit BEGIN so SAVEPOINTs nest correctly."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        # pysqlite emits its own BEGIN lazily, which breaks SAVEPOINT semantics
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def insert_if_absent(db, row) -> bool:
    """Insert ``row`` in its own savepoint; False if a unique key already holds it."""
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        logger.info("Insert of %s hit an existing natural key", type(row).__name__)
        return False
    return True


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def get_db():
    """Database session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
