"""
SQLAlchemy engine and sessions for FeedHub.

PostgreSQL in production, SQLite for local runs and tests. The API opens
one session per request through get_db(); Celery tasks and ingestion
workers use get_db_context() or SessionLocal directly.
"""

from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings
from .db_models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

logger.info(f"Database: {DATABASE_URL.rsplit('@', 1)[-1]}")

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(
        DATABASE_URL,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )
else:
    # In-memory SQLite exists per connection, so every session shares one
    sqlite_kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
    if ":memory:" in DATABASE_URL:
        sqlite_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **sqlite_kwargs)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        # Interaction and saved-content rows cascade with their content item
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create missing tables. Runs in the API lifespan and on Celery worker start."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("FeedHub tables ready")
    except Exception as e:
        logger.error(f"Could not create FeedHub tables: {e}")
        raise


def get_db() -> Session:
    """Request-scoped session for routers; see dependencies.py."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context():
    """
    Session for code outside a request.

    Commits on a clean exit and rolls back if the block raises, e.g.:

        with get_db_context() as db:
            user_ids = [row.user_id for row in db.query(DBSource.user_id).distinct()]
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_health() -> dict:
    """Report connectivity and backend type for GET /health."""
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
            return {
                "database_connected": True,
                "database_type": "postgresql" if DATABASE_URL.startswith("postgresql") else "sqlite",
            }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "database_connected": False,
            "database_error": str(e),
        }
