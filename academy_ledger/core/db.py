# academy_ledger/core/db.py - SQLAlchemy database setup with connection pooling
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool, QueuePool
from typing import Generator, Optional
import logging
import time
import threading
from contextlib import contextmanager

from academy_ledger.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Database manager with connection pooling and health monitoring"""

    def __init__(self):
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self.database_url: str = settings.DATABASE_URL
        self._initialized = False
        self._lock = threading.Lock()

    def initialize(self, database_url: Optional[str] = None):
        """
        Initialize database engine and session maker.

        Args:
            database_url: Overrides settings.DATABASE_URL (used by scripts and tests)
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            if database_url:
                self.database_url = database_url

            try:
                self.engine = self._create_engine()
                self.SessionLocal = sessionmaker(
                    autocommit=False,
                    autoflush=False,
                    expire_on_commit=False,
                    bind=self.engine
                )

                self._setup_event_listeners()
                self._test_connection()

                self._initialized = True
                logger.info("Database initialized successfully")

            except Exception as e:
                logger.error(f"Failed to initialize database: {e}")
                raise

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _create_engine(self) -> Engine:
        """Create SQLAlchemy engine for SQLite or PostgreSQL"""
        engine_args = {
            "url": self.database_url,
            "echo": settings.DATABASE_ECHO or settings.DEV_LOG_SQL,
        }

        if self.is_sqlite:
            engine_args.update({
                "poolclass": StaticPool,
                "connect_args": {
                    "check_same_thread": False,
                    "timeout": 30,  # 30 second timeout for SQLite locks
                },
            })
        else:
            engine_args.update({
                "poolclass": QueuePool,
                "pool_size": settings.DATABASE_POOL_SIZE,
                "max_overflow": settings.DATABASE_MAX_OVERFLOW,
                "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
                "pool_recycle": settings.DATABASE_POOL_RECYCLE,
                "pool_pre_ping": True,  # Verify connections before use
                "connect_args": {
                    "connect_timeout": 10,
                    "application_name": f"academy_ledger_{settings.ENV}",
                    "options": "-c timezone=UTC"
                }
            })

        return create_engine(**engine_args)

    def _setup_event_listeners(self):
        """Set up SQLAlchemy event listeners for pragmas and slow query logging"""
        is_sqlite = self.is_sqlite

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Enforce foreign keys on SQLite"""
            if is_sqlite:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.close()

        @event.listens_for(self.engine, "before_cursor_execute")
        def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if settings.is_development:
                context._query_start_time = time.time()

        @event.listens_for(self.engine, "after_cursor_execute")
        def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if settings.is_development and hasattr(context, '_query_start_time'):
                total = time.time() - context._query_start_time
                if total > 0.1:  # Log queries taking more than 100ms
                    logger.warning(f"Slow query ({total:.3f}s): {statement[:100]}...")

    def _test_connection(self):
        """Test database connection and log status"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()

                if self.is_sqlite:
                    db_info = conn.execute(text("SELECT sqlite_version()")).fetchone()
                    logger.info(f"Connected to SQLite: {db_info[0]}")
                else:
                    db_info = conn.execute(text("SELECT version()")).fetchone()
                    logger.info(f"Connected to PostgreSQL: {db_info[0][:50]}...")

        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            raise

    def get_session(self) -> Generator[Session, None, None]:
        """
        Get database session with automatic cleanup and error handling.

        Yields:
            Session: SQLAlchemy database session
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback.

        Usage:
            with db_manager.transaction() as session:
                PaymentAllocator(session, config).reverse_transaction(payment_id)
                # Automatically commits on success, rolls back on error
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Transaction error: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        """
        Perform database health check.

        Returns:
            Dict with health status information
        """
        try:
            if not self._initialized:
                self.initialize()

            start_time = time.time()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            response_time = (time.time() - start_time) * 1000
            return {
                "status": "healthy",
                "response_time_ms": round(response_time, 2),
                "database": "sqlite" if self.is_sqlite else "postgresql",
            }

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }

    def close(self):
        """Close database connections and reset the manager"""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connections closed")
        self.engine = None
        self.SessionLocal = None
        self._initialized = False


# Create global database manager instance
db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency to get database session.

    Usage in FastAPI:
        @router.get("/course-fees")
        def list_course_fees(db: Session = Depends(get_db)):
            ...
    """
    yield from db_manager.get_session()


def get_engine() -> Engine:
    """Get SQLAlchemy engine instance"""
    if not db_manager._initialized:
        db_manager.initialize()
    return db_manager.engine


def get_session_maker() -> sessionmaker:
    """Get session maker for manual session creation"""
    if not db_manager._initialized:
        db_manager.initialize()
    return db_manager.SessionLocal


def health_check() -> dict:
    """Get database health status (convenience function)"""
    return db_manager.health_check()


__all__ = [
    "get_db",
    "get_engine",
    "get_session_maker",
    "health_check",
    "db_manager",
    "DatabaseManager",
]
