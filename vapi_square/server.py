"""FastAPI server for the Vapi → Square booking connector.

Run with:
    uv run uvicorn vapi_square.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from vapi_square.api.routes import router, vapi_webhook
from vapi_square.api.schemas import ToolCallResponse
from vapi_square.booking import BookingOrchestrator
from vapi_square.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, load_square_settings
from vapi_square.services.square_client import SquareClient

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: read the Square settings once and build the orchestrator."""
    settings = load_square_settings()
    missing = settings.missing()
    if missing:
        logger.warning("Square configuration incomplete, missing: %s", ", ".join(missing))
    logger.info("Square token present: %s", bool(settings.token))

    client = SquareClient(settings)
    application.state.orchestrator = BookingOrchestrator(settings, client)
    logger.info("Connector ready.")
    yield
    client.close()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Vapi Square Connector",
    description="Books Square appointments from Vapi voice-assistant tool calls.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")

# Vapi tool server URLs configured against the bare host still work.
app.add_api_route("/", vapi_webhook, methods=["POST"], response_model=ToolCallResponse)


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting Vapi Square connector on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "vapi_square.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
    )
