"""
FastAPI application for the DataLens chat gateway.

Usage:
    datalens-server
    python -m app.main
    uvicorn app.main:app --host 0.0.0.0 --port 8080
"""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

import datalens as dl
from app.routes.chat import SERVICE_NAME, SERVICE_VERSION, chat_router
from app.routes.metrics import metrics_router
from app.services import build_services, set_services

logger = logging.getLogger(__name__)

MEMORY_CLEANUP_INTERVAL_SECS = 60.0


async def _cleanup_memory_periodically(services) -> None:
    while True:
        await asyncio.sleep(MEMORY_CLEANUP_INTERVAL_SECS)
        removed = services.memory.cleanup()
        if removed:
            logger.info(f"Expired {removed} idle chat session(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup, close integration clients on shutdown."""
    dl.common.setup()
    services = build_services()
    set_services(services)
    cleanup_task = asyncio.create_task(_cleanup_memory_periodically(services))
    logger.info(f"{SERVICE_NAME} {SERVICE_VERSION} started with tools: {', '.join(services.registry.names)}")
    yield
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await services.aclose()
    set_services(None)


app = FastAPI(
    title=SERVICE_NAME,
    version=SERVICE_VERSION,
    description="Conversational data agent over databases, logs, code and email.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("DATALENS_CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(metrics_router)


def main() -> None:
    uvicorn.run(
        "app.main:app",
        host=os.getenv("DATALENS_HOST", "0.0.0.0"),
        port=int(os.getenv("DATALENS_PORT", "8080")),
    )


if __name__ == "__main__":
    main()
