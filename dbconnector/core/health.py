"""
Liveness checks for the pooled engine.
"""

import logging

from sqlalchemy import Engine, text

logger = logging.getLogger(__name__)


def ping(engine: Engine) -> None:
    """Run SELECT 1 on a pooled connection; raises on failure."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1")).scalar()


def check_database(engine: Engine | None) -> bool:
    """Return True if *engine* is set and answers SELECT 1."""
    if engine is None:
        return False
    try:
        ping(engine)
        return True
    except Exception:
        logger.debug("Database ping failed", exc_info=True)
        return False
