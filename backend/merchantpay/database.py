"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from merchantpay.config import get_settings

settings = get_settings()


def configure_sqlite_locking(engine: Engine) -> Engine:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so two connections can both
    hold SHARED locks and deadlock when upgrading. Taking the RESERVED lock up
    front makes concurrent writers queue on the busy timeout instead.
    """

    @event.listens_for(engine, "connect")
    def disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# SQLite requires check_same_thread=False for FastAPI
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)
if settings.database_url.startswith("sqlite"):
    configure_sqlite_locking(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database session (for use outside of FastAPI)."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
