"""Session persistence backends.

Pick a backend once, at process start, and inject the store::

    from trellis.storage import create_store

    store = create_store("postgresql+psycopg://localhost/trellis")
    runner = SessionRunner(orchestrator, store)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ..core.exceptions import ConfigurationError
from .base import STATUS_TRANSITIONS, SessionStore
from .relational import RelationalSessionStore
from .wide_column import WideColumnSessionStore

logger = logging.getLogger(__name__)

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///:memory:")


def create_store(url: Optional[str] = None, create_tables: bool = True) -> SessionStore:
    """Build the store for *url* (``DATABASE_URL`` when omitted).

    ``cassandra://`` URLs select the wide-column backend; anything
    SQLAlchemy understands (``postgresql://``, ``sqlite://``) selects the
    relational one.

    Raises:
        ConfigurationError: No URL given and ``DATABASE_URL`` unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError(
            "No database configured. Pass a URL or set the DATABASE_URL environment variable."
        )

    if url.startswith("cassandra://"):
        store: SessionStore = WideColumnSessionStore.from_url(url)
    else:
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        if url in _IN_MEMORY_SQLITE:
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(url, pool_pre_ping=True)
        store = RelationalSessionStore(engine)

    logger.info("Using %s", type(store).__name__)
    if create_tables:
        store.create_tables()
    return store


__all__ = [
    "STATUS_TRANSITIONS",
    "RelationalSessionStore",
    "SessionStore",
    "WideColumnSessionStore",
    "create_store",
]
