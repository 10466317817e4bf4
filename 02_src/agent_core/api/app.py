"""FastAPI factory for the agent runtime."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from .routes import chat, control, observability

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5174"

_app: Application | None = None


def get_app() -> Application:
    """Process-wide runtime used when no application is passed in."""
    global _app
    if _app is None:
        _app = Application()
    return _app


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Build the API around ``application``; its lifecycle follows the server's."""
    runtime = application or get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    api = FastAPI(
        title="Agent Runtime API",
        description="Agent execution core with OpenAI-compatible chat",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    api.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (
        chat.create_chat_router(runtime),
        observability.create_observability_router(runtime),
        control.create_control_router(runtime),
    ):
        api.include_router(router)

    return api
