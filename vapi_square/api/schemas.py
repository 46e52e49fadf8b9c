"""Pydantic schemas for the Vapi webhook."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Echoed when the caller did not send a toolCallId.
FALLBACK_TOOL_CALL_ID = "test-error"


class ToolCallArgs(BaseModel):
    """Arguments Vapi extracted from the conversation.

    Everything is optional here; completeness is checked by the
    orchestrator so a bad call still gets a result envelope, not a 422.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    customer_name: str | None = None
    customer_phone: str | None = None
    start_time: str | None = None
    service_name: str | None = None


class ToolCallRequest(BaseModel):
    """Incoming tool call from Vapi."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    functionName: str | None = None
    toolCallId: str | None = None
    args: ToolCallArgs = Field(default_factory=ToolCallArgs)


class ToolCallResult(BaseModel):
    toolCallId: str
    result: str


class ToolCallResponse(BaseModel):
    """Result envelope: always exactly one entry."""

    results: list[ToolCallResult] = Field(..., min_length=1, max_length=1)

    @classmethod
    def single(cls, tool_call_id: str | None, result: str) -> ToolCallResponse:
        return cls(
            results=[
                ToolCallResult(
                    toolCallId=tool_call_id or FALLBACK_TOOL_CALL_ID,
                    result=result,
                )
            ]
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "vapi-square-connector"
