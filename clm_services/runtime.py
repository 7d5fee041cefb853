"""
Process start-up for hosts embedding the contract engine.

``start`` applies an ``EngineConfig`` to the process: logging level,
database engine and the ORM immutability listeners.  Afterwards callers
open a unit of work with ``clm_kernel.db.engine.session_scope`` and build
services on that session.
"""

from __future__ import annotations

from clm_config.loader import load_config
from clm_config.schema import EngineConfig
from clm_kernel.db.engine import create_tables, init_engine_from_url
from clm_kernel.db.immutability import register_immutability_listeners
from clm_kernel.logging_config import configure_logging, get_logger

logger = get_logger("services.runtime")


def start(config: EngineConfig | None = None, *, create_schema: bool = False) -> EngineConfig:
    """
    Initialise logging, the database engine and immutability enforcement.

    Args:
        config: Configuration to apply; ``load_config()`` when None.
        create_schema: Create missing tables.  Migrations own the schema in
            production, so this is meant for demos and local databases.

    Returns:
        The configuration that was applied.
    """
    config = config or load_config()
    configure_logging(level=config.logging.level)

    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()

    logger.info(
        "engine_started",
        extra={
            "finance_approval_required": config.workflow.finance_approval_required,
            "create_schema": create_schema,
        },
    )
    return config
