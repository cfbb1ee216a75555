"""
Runtime wiring

Builds the signal store, engine and services from settings and manages the
database and Redis connections for the lifetime of the host process.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from .cache import CachedSignalStore, close_redis, init_redis
from .config import Settings, get_settings
from .db import SignalStore, SqlSignalStore, close_db, create_engine, create_session_maker, init_db
from .engines import ScoringHooks, ScoringPolicy, SessionAnalyzer, VisitorTrustEngine
from .services import AccessListService, SessionReportService, VisitorTrustService
from .utils.logging import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class TrustRuntime:
    """Wired components sharing one store"""

    store: SignalStore
    engine: VisitorTrustEngine
    visitors: VisitorTrustService
    sessions: SessionReportService
    access_lists: AccessListService


def build_runtime(
    store: SignalStore,
    policy: Optional[ScoringPolicy] = None,
    hooks: Optional[ScoringHooks] = None,
) -> TrustRuntime:
    engine = VisitorTrustEngine(store, policy=policy, hooks=hooks)
    return TrustRuntime(
        store=store,
        engine=engine,
        visitors=VisitorTrustService(store, engine=engine),
        sessions=SessionReportService(store, SessionAnalyzer()),
        access_lists=AccessListService(store),
    )


@asynccontextmanager
async def lifespan(
    settings: Optional[Settings] = None,
    hooks: Optional[ScoringHooks] = None,
    use_cache: bool = True,
) -> AsyncIterator[TrustRuntime]:
    """
    Open connections, create tables, and yield a wired runtime

    Args:
        settings: settings object (defaults to get_settings())
        hooks: policy hooks for the engine
        use_cache: wrap the store with the Redis access list cache
    """
    settings = settings or get_settings()
    configure_logging(settings)

    logger.info(f"Starting {settings.APP_NAME} ({settings.ENV})")
    db_engine = create_engine(settings)
    redis = None

    # Everything opened so far is closed even if a later step fails
    try:
        await init_db(db_engine)

        store: SignalStore = SqlSignalStore(create_session_maker(db_engine))
        if use_cache:
            redis = await init_redis(settings)
            store = CachedSignalStore(
                store, redis, ttl_seconds=settings.ACCESS_LIST_CACHE_TTL_SECONDS
            )

        yield build_runtime(store, ScoringPolicy.from_settings(settings), hooks)
    finally:
        logger.info(f"Stopping {settings.APP_NAME}")
        if redis is not None:
            await close_redis()
        await close_db(db_engine)
