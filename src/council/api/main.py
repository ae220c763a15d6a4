"""Council FastAPI application factory.

Provides create_app() for bootstrapping the council API. All collaborators
are built here (or injected by tests) and stored on app.state; nothing is
held in module globals.
"""

from __future__ import annotations

import logging
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from council import __version__
from council.api.errors import register_exception_handlers
from council.api.middleware.request_id import RequestIdMiddleware
from council.api.routes.debate import router as debate_router
from council.api.routes.health import router as health_router
from council.config import CouncilConfig, load_council_config
from council.debate.state_machine import SessionStateMachine
from council.debate.turn_executor import TurnExecutor
from council.observability.tracing import configure_tracing, instrument_fastapi
from council.persistence.session_repo import InMemorySessionRepository, SessionRepository
from council.persistence.snapshot import DebouncedSnapshotScheduler, JsonFileSnapshotStore
from council.services.council_service import CouncilService
from council.services.generation.factory import build_generation_client
from council.services.generation.llm_client import LLMClient

logger = logging.getLogger(__name__)


def create_app(
    repository: SessionRepository | None = None,
    llm_client: LLMClient | None = None,
    config: CouncilConfig | None = None,
    rng: random.Random | None = None,
    scheduler: DebouncedSnapshotScheduler | None = None,
) -> FastAPI:
    """Create and configure the council FastAPI application.

    On startup the session table is loaded from the last snapshot; on
    shutdown the pending save is cancelled and a synchronous flush runs.

    Args:
        repository: Session repository. Defaults to a fresh in-memory table.
        llm_client: Generation client. Defaults to the configured backend.
        config: Engine configuration. Loaded from the environment if None.
        rng: Random source for deck shuffles.
        scheduler: Snapshot scheduler. Defaults to a JSON file scheduler at
            config.sessions_path.

    Returns:
        Configured FastAPI application instance.
    """
    config = config or load_council_config()
    repository = repository if repository is not None else InMemorySessionRepository()
    llm_client = llm_client if llm_client is not None else build_generation_client(config)
    if scheduler is None:
        scheduler = DebouncedSnapshotScheduler(
            JsonFileSnapshotStore(config.sessions_path),
            repository,
            debounce_seconds=config.save_debounce_seconds,
        )

    state_machine = SessionStateMachine(
        rng,
        default_step_turns=config.default_step_turns,
        default_extension_turns=config.default_extension_turns,
    )
    executor = TurnExecutor(
        repository,
        llm_client,
        state_machine=state_machine,
        scheduler=scheduler,
        config=config,
    )
    service = CouncilService(repository, executor, scheduler)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        loaded = scheduler.load_all()
        logger.info("Council API started with %d sessions", loaded)
        yield
        scheduler.shutdown()
        logger.info("Council API stopped; sessions flushed")

    app = FastAPI(
        title="Council API",
        description="Multi-role council debate orchestration engine",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.repository = repository
    app.state.scheduler = scheduler
    app.state.council_service = service

    configure_tracing()

    app.add_middleware(RequestIdMiddleware)
    instrument_fastapi(app)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(debate_router)

    return app
