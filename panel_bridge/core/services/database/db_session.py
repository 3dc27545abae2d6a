"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from sqlalchemy import Engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, create_engine

from panel_bridge.runtime.config.config_data import DatabaseConfig


class DbSessionService:
    def __init__(self, db_config: DatabaseConfig, engine: Engine | None = None):
        """Initialize the shared database engine and session factory.

        Args:
            db_config: Database section of the configuration
            engine: Pre-built engine (tests pass an in-memory one)
        """
        self._config = db_config
        self._engine = engine or self._create_engine(db_config)

    @property
    def engine(self) -> Engine:
        return self._engine

    def _create_engine(self, db_config: DatabaseConfig) -> Engine:
        logger.info("Setting up database engine and session factory")
        engine_kwargs: dict = {
            "echo": db_config.echo,
            "pool_pre_ping": True,
            "connect_args": self._get_connect_args(db_config),
        }

        if db_config.is_sqlite:
            self._ensure_sqlite_directory(db_config.url)
        else:
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                }
            )

        safe_url = make_url(db_config.url).render_as_string(hide_password=True)
        logger.info(f"Initializing database engine for {safe_url}")
        return create_engine(db_config.url, **engine_kwargs)

    def _get_connect_args(self, db_config: DatabaseConfig) -> dict:
        """Get database-specific connection arguments."""
        if db_config.is_sqlite:
            return {
                "check_same_thread": False,
                "timeout": 20,  # seconds to wait on a locked database
            }
        if "postgresql" in db_config.url:
            return {"connect_timeout": 30, "application_name": "panel_bridge"}
        return {}

    @staticmethod
    def _ensure_sqlite_directory(url: str) -> None:
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """One short transaction: commit on success, roll back on any error."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except IntegrityError:
            # uniqueness races are expected and handled by the caller
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(
                "Database transaction failed",
                extra={"error_type": type(e).__name__, "error_message": str(e)},
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {type(e).__name__}: {e}")
            return False

    def dispose(self) -> None:
        self._engine.dispose()
