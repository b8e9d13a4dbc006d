"""
Database plumbing shared by the queue and the event locker.

Engines and session factories are built explicitly and handed to the
components that need them; nothing here holds a process-wide connection.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

# SQLSTATE reported by PostgreSQL drivers for unique_violation
UNIQUE_VIOLATION_SQLSTATE = "23505"

# Extended result codes reported by sqlite3 (Python 3.11+)
SQLITE_UNIQUE_ERRORS = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})


def build_engine(
    database_url: str,
    echo: bool = False,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite has no row-level locks, so for SQLite URLs every transaction is
    opened with BEGIN IMMEDIATE: the write lock is taken up front and
    concurrent claimants queue behind it instead of racing.
    """
    logger.debug(f"Creating engine for URL: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        # check_same_thread=False lets pooled connections move between threads
        connect_args={"check_same_thread": False, "timeout": sqlite_busy_timeout},
        echo=echo,
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # pysqlite's own BEGIN handling would defer the lock until the first write
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to `engine`; sessions keep loaded values after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """
    Create any missing tables. Existing tables and data are left untouched.
    Called during application startup.
    """
    logger.debug(f"Initializing database: {engine.url.render_as_string(hide_password=True)}")
    try:
        # Import models to register them with Base.metadata
        from review_queue.models import LockEntry, QueueItem  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health(engine: Engine, tables: tuple = ("prs", "msg")) -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and all tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            existing = set(inspect(conn).get_table_names())
        missing = [name for name in tables if name not in existing]
        if missing:
            logger.error(f"Database schema not applied: missing tables {missing}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    Tell a unique-constraint violation apart from other integrity errors.

    Uses the driver's structured error code rather than the message text:
    `sqlstate` (psycopg 3) or `pgcode` (psycopg2) on PostgreSQL, and
    `sqlite_errorname` on SQLite.
    """
    orig = exc.orig
    code: Optional[str] = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == UNIQUE_VIOLATION_SQLSTATE
    return getattr(orig, "sqlite_errorname", None) in SQLITE_UNIQUE_ERRORS
