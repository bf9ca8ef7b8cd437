"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from support_bridge.core.logging import setup_logging
from support_bridge.core.dependencies import startup, shutdown
from support_bridge.api import health, calls, realtime
from support_bridge.api.webhooks import provider as provider_webhooks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await startup()
    yield
    # Shutdown
    await shutdown()


app = FastAPI(
    title="Support Bridge",
    description="Places support calls through an AI voice agent on a user's behalf",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(calls.router, tags=["calls"])
app.include_router(provider_webhooks.router, tags=["webhooks"])
app.include_router(realtime.router, tags=["realtime"])


def run() -> None:
    """Run the API server."""
    import uvicorn
    from support_bridge.core.config import settings

    uvicorn.run("support_bridge.main:app", host=settings.host, port=settings.port)
