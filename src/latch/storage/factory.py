"""Store factory.

Builds the configured session store backend. Optional backends are
imported only when selected.
"""

import logging
from typing import TYPE_CHECKING, Optional

from latch.core.clock import Clock
from latch.storage.base import SessionStore

if TYPE_CHECKING:
    from latch.core.config import LatchConfig

logger = logging.getLogger(__name__)


def create_store(config: "LatchConfig", clock: Optional[Clock] = None) -> SessionStore:
    """Create the session store described by ``config``.

    Args:
        config: Latch settings.
        clock: Optional time source shared by the store and its sessions.

    Returns:
        A MemorySessionStore, RedisSessionStore or PostgreSQLSessionStore.
    """
    common = {
        "renewal": config.renewal_policy(),
        "clock": clock,
        "identifier_bytes": config.identifier_bytes,
        "max_id_retries": config.max_id_retries,
    }

    if config.backend == "redis":
        from latch.storage.redis_store import RedisSessionStore

        store: SessionStore = RedisSessionStore(
            config.redis_url,
            key_prefix=config.key_prefix,
            **common,
        )
    elif config.backend == "postgresql":
        from latch.storage.postgresql_store import PostgreSQLSessionStore

        store = PostgreSQLSessionStore(
            config.postgres_dsn,
            table_name=config.table_name,
            **common,
        )
    else:
        from latch.storage.memory_store import MemorySessionStore

        store = MemorySessionStore(**common)

    logger.debug("Created %s session store", store.backend_name)
    return store
