"""FastAPI route definitions for the Vapi webhook."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from vapi_square.api.schemas import HealthResponse, ToolCallRequest, ToolCallResponse
from vapi_square.booking import BookingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_orchestrator(request: Request) -> BookingOrchestrator:
    """Retrieve the booking orchestrator built during the FastAPI lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="The connector is still starting up. Please try again in a moment.",
        )
    return orchestrator


async def _read_tool_call(http_request: Request, request_id: str) -> ToolCallRequest:
    """Parse the body leniently: anything unusable becomes an empty call,
    which the orchestrator answers with the configuration-error result."""
    try:
        payload: Any = await http_request.json()
    except ValueError:
        logger.warning("[%s] Webhook body is not valid JSON", request_id)
        return ToolCallRequest()

    if not isinstance(payload, dict):
        logger.warning("[%s] Webhook body is not a JSON object", request_id)
        return ToolCallRequest()

    try:
        return ToolCallRequest.model_validate(payload)
    except ValidationError:
        logger.warning("[%s] Webhook body has an unexpected shape", request_id)
        tool_call_id = payload.get("toolCallId")
        return ToolCallRequest(
            toolCallId=tool_call_id if isinstance(tool_call_id, str) else None,
        )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/webhook", response_model=ToolCallResponse)
async def vapi_webhook(http_request: Request):
    """Handle a ``schedule_square_appointment`` tool call from Vapi.

    Always answers 200 with a single-result envelope; failures are
    described inside ``result``.  The orchestrator talks to Square with a
    blocking client, so it runs in a worker thread via
    ``asyncio.to_thread``.
    """
    orchestrator = _get_orchestrator(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    tool_call = await _read_tool_call(http_request, request_id)
    return await asyncio.to_thread(orchestrator.handle, tool_call)
