"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.filetree.db import session as db_session
from app.packages.filetree.models.base import Base
from app.packages.filetree.models.file_node import FileNode  # noqa: F401 - ensure table creation

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist."""
    try:
        Base.metadata.create_all(bind=db_session.engine)
    except Exception:  # pragma: no cover - initialization failures should surface
        logger.exception("Failed to create tables during database initialization")
        raise


def dispose_db() -> None:
    """Release pooled connections on application shutdown."""
    db_session.engine.dispose()
