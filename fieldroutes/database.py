"""
Engine and session setup.

PostgreSQL runs behind a pre-pinged connection pool. SQLite is used for local runs and tests:
it ignores SELECT ... FOR UPDATE, so concurrent waypoint transitions are caught by the version
column alone, and foreign keys are switched on per connection so a dangling route or contact
reference fails the way it does on PostgreSQL.
"""

import logging
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import (
    DATABASE_URL,
    DB_LOG_SLOW_QUERIES,
    DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_SLOW_QUERY_THRESHOLD,
)

logger = logging.getLogger(__name__)


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str, slow_query_threshold: Optional[float] = None) -> Engine:
    """Create the engine for url; slow statements are logged when a threshold is given"""
    try:
        if is_sqlite(url):
            engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            logger.info("✅ SQLite engine created (foreign keys on, no row locks)")
        else:
            engine = create_engine(
                url,
                echo=False,
                pool_pre_ping=True,
                pool_recycle=DB_POOL_RECYCLE,
                pool_size=DB_POOL_SIZE,
                max_overflow=DB_MAX_OVERFLOW,
                pool_timeout=DB_POOL_TIMEOUT,
            )
            logger.info(
                f"✅ Database engine created: pool size={DB_POOL_SIZE}, "
                f"max_overflow={DB_MAX_OVERFLOW}, timeout={DB_POOL_TIMEOUT}s"
            )
    except Exception as e:
        logger.error(f"❌ Failed to create database engine: {e}")
        raise

    if slow_query_threshold is not None:
        watch_slow_queries(engine, slow_query_threshold)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def watch_slow_queries(engine: Engine, threshold: float) -> None:
    """Warn about any statement that takes longer than threshold seconds"""

    def start(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    def finish(conn, _cursor, statement, parameters, _context, executemany):
        elapsed = time.perf_counter() - conn.info["query_start_time"].pop()
        if elapsed > threshold:
            batch = f", {len(parameters)} rows" if executemany else ""
            logger.warning(f"🐌 Slow query ({elapsed:.2f}s{batch}): {' '.join(statement.split())[:200]}")

    event.listen(engine, "before_cursor_execute", start)
    event.listen(engine, "after_cursor_execute", finish)
    logger.info(f"📊 Slow query logging enabled (threshold: {threshold}s)")


engine = build_engine(DATABASE_URL, DB_SLOW_QUERY_THRESHOLD if DB_LOG_SLOW_QUERIES else None)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
