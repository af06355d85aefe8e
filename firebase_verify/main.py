from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from firebase_verify.idtoken.fetch import HttpKeySource, KeySource
from firebase_verify.idtoken.verifier import id_token_verifier, session_cookie_verifier
from firebase_verify.logging_config import configure_app_logging
from firebase_verify.routers import auth, health
from firebase_verify.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, key_source: KeySource | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resolved = settings or get_settings()
        configure_app_logging(resolved.log_level)
        logger.info("App startup beginning")

        project_id = resolved.resolved_project_id()
        emulated = resolved.emulated()
        owned_source: HttpKeySource | None = None
        source = key_source
        if source is None and not emulated:
            owned_source = HttpKeySource(timeout_seconds=resolved.http_timeout_seconds)
            source = owned_source

        app.state.settings = resolved
        app.state.emulated = emulated
        app.state.id_token_verifier = await id_token_verifier(
            project_id,
            source,
            emulated=emulated,
            clock_skew_seconds=resolved.clock_skew_seconds,
            auth_time_skew_seconds=resolved.auth_time_skew_seconds,
        )
        app.state.session_cookie_verifier = await session_cookie_verifier(
            project_id,
            source,
            emulated=emulated,
            clock_skew_seconds=resolved.clock_skew_seconds,
            auth_time_skew_seconds=resolved.auth_time_skew_seconds,
        )
        logger.info("Token verifiers ready project=%s emulated=%s", project_id, emulated)

        yield
        # Shutdown
        if owned_source is not None:
            await owned_source.aclose()

    app = FastAPI(lifespan=lifespan)

    app.include_router(health.router)
    app.include_router(auth.router)

    return app


app = create_app()
