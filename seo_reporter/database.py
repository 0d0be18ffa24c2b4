"""Database handle, session management, and initialization for SQLAlchemy."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/seo_reporter.db"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def _enable_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL journal mode and foreign keys for SQLite connections."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


class Database:
    """Explicitly constructed handle around one engine and its session factory.

    Every service receives the handle it should use; nothing reaches for a
    module-level engine.  Call :meth:`dispose` at process shutdown.

    Usage::

        db = Database("sqlite:///data/seo_reporter.db")
        db.init_db()
        with db.session() as session:
            session.add(obj)
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        if database_url is None:
            database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.url = database_url

        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url == "sqlite://":
                # One shared connection, so worker threads see the same data.
                engine_kwargs["poolclass"] = StaticPool
            else:
                db_path = database_url.replace("sqlite:///", "")
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._engine: Engine = create_engine(database_url, **engine_kwargs)
        if database_url.startswith("sqlite"):
            event.listen(self._engine, "connect", _enable_sqlite_pragmas)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info("Database engine created: %s", database_url)

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional session: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create all tables that do not yet exist."""
        # Side-effect import: registers all models with Base.metadata
        import seo_reporter.models  # noqa: F401
        Base.metadata.create_all(bind=self._engine)
        logger.info("All database tables created / verified.")

    def reset_db(self) -> None:
        """Drop and recreate every table.  **Destructive** -- use only in tests."""
        import seo_reporter.models  # noqa: F401
        Base.metadata.drop_all(bind=self._engine)
        Base.metadata.create_all(bind=self._engine)
        logger.warning("Database has been reset (all tables dropped and recreated).")

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
        logger.debug("Database engine disposed: %s", self.url)
