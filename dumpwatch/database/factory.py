"""
Store selection for DumpWatch
"""

import logging
from typing import Optional

from dumpwatch.core.config import Settings, settings as default_settings

from .connection import DatabaseConnection
from .memory import InMemoryStore
from .repositories import Store
from .sql_store import SqlStore

logger = logging.getLogger(__name__)


def create_store(config: Optional[Settings] = None) -> Store:
    """
    Build the store configured by the environment.

    Args:
        config: Settings override, defaults to the global settings

    Returns:
        SqlStore when DATABASE_URL is set, otherwise an InMemoryStore
    """
    config = config or default_settings

    if not config.database_url:
        logger.warning("DATABASE_URL not set, reports are kept in memory only")
        return InMemoryStore()

    db = DatabaseConnection(
        database_url=config.database_url,
        pool_size=config.db_pool_size,
        echo=config.db_echo,
    )
    db.create_tables()
    return SqlStore(db)
