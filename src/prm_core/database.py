"""Database connection and session management."""
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings

settings = get_settings()


def build_engine(database_url: str, **engine_kwargs) -> Engine:
    """
    Create a database engine for the given URL.

    PostgreSQL gets a bounded connection pool. SQLite (used for local runs
    and tests) gets foreign key enforcement, working SAVEPOINTs, a busy
    timeout and write-locking transactions so concurrent writers queue up
    instead of failing.

    Args:
        database_url: SQLAlchemy connection string
        **engine_kwargs: Extra create_engine arguments (e.g. poolclass)

    Returns:
        Configured Engine
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            **engine_kwargs,
        )
        event.listen(sqlite_engine, "connect", _configure_sqlite_connection)
        event.listen(sqlite_engine, "begin", _begin_sqlite_transaction)
        return sqlite_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,          # Verify connections before using
        pool_size=5,                 # Base pool of 5 connections
        max_overflow=10,             # Allow up to 15 total connections
        pool_recycle=3600,           # Recycle connections every hour
        pool_timeout=30,             # Timeout after 30 seconds
    )


def _configure_sqlite_connection(dbapi_connection, connection_record):
    # pysqlite's own transaction handling breaks SAVEPOINT; BEGIN is emitted below
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn):
    # Take the write lock up front; a deferred BEGIN fails with "database is
    # locked" when two readers both try to upgrade
    conn.exec_driver_sql("BEGIN IMMEDIATE")


# Create database engine
engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def is_postgresql(db: Session) -> bool:
    """Return True when the session is bound to a PostgreSQL database."""
    return db.get_bind().dialect.name == "postgresql"


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
