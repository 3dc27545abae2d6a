"""Schema management for the panel bridge tables."""

from loguru import logger
from sqlmodel import SQLModel

from panel_bridge.core.services.database.db_session import DbSessionService


def create_all(database_service: DbSessionService) -> None:
    """Create all database tables."""
    # imported for their side effect of registering tables on the metadata
    from panel_bridge.entities.core.account import AccountTable  # noqa: F401
    from panel_bridge.entities.core.nonce import NonceTable  # noqa: F401
    from panel_bridge.entities.core.user import UserTable  # noqa: F401

    SQLModel.metadata.create_all(database_service.engine)
    logger.info("Database initialized with tables.")
