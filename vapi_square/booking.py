"""Booking orchestration: validate → resolve customer → create booking → respond.

One :class:`BookingOrchestrator` is built at startup with the deployment's
:class:`~vapi_square.config.SquareSettings` and a
:class:`~vapi_square.services.square_client.SquareClient`, then shared by
every request.  It keeps no per-request state.

Whatever happens upstream, :meth:`BookingOrchestrator.handle` returns a
result envelope with exactly one entry.  Failures travel as a
:class:`BookingFailure` (kind + detail) until that envelope is rendered.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from vapi_square.api.schemas import ToolCallRequest, ToolCallResponse
from vapi_square.config import SquareSettings
from vapi_square.errors import BookingError, FailureKind
from vapi_square.services.square_client import SquareClient

logger = logging.getLogger(__name__)

FUNCTION_NAME = "schedule_square_appointment"
DEFAULT_FAMILY_NAME = "Client"

CONFIGURATION_ERROR_MESSAGE = (
    "Configuration Error: Missing required booking data (name or service) "
    "or invalid function name."
)
CUSTOMER_NOT_SECURED_DETAIL = "Failed to secure customer ID for booking."
UNKNOWN_ERROR_DETAIL = "Unknown API Error."

_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


# ── Helpers ──────────────────────────────────────────────────────────


def normalize_phone(raw: str | None) -> str:
    """Strip *raw* down to its digits, keeping a leading ``+``."""
    if not raw:
        return ""
    raw = raw.strip()
    digits = "".join(ch for ch in raw if ch.isdigit())
    if not digits:
        return ""
    return f"+{digits}" if raw.startswith("+") else digits


def split_customer_name(full_name: str) -> tuple[str, str]:
    """Split a spoken full name into Square's given and family names."""
    parts = full_name.split()
    given_name = parts[0]
    family_name = " ".join(parts[1:]) or DEFAULT_FAMILY_NAME
    return given_name, family_name


def sanitize_detail(detail: str) -> str:
    """Collapse line breaks so the detail is safe inside Vapi's transcript."""
    return _LINE_BREAKS_RE.sub(" ", detail).strip()


# ── Outcome types ────────────────────────────────────────────────────


@dataclass(frozen=True)
class BookingFailure:
    kind: FailureKind
    detail: str

    def render(self) -> str:
        if self.kind is FailureKind.CONFIGURATION:
            return CONFIGURATION_ERROR_MESSAGE
        detail = sanitize_detail(self.detail) or UNKNOWN_ERROR_DETAIL
        return f"Booking failed. Failure Detail: {detail}"


@dataclass(frozen=True)
class BookingOutcome:
    """Structured result of one tool call."""

    tool_call_id: str | None
    booking_id: str | None = None
    failure: BookingFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def message(self) -> str:
        if self.failure is not None:
            return self.failure.render()
        return f"Booking success. ID: {self.booking_id}."

    def to_response(self) -> ToolCallResponse:
        return ToolCallResponse.single(self.tool_call_id, self.message)


# ── Orchestrator ─────────────────────────────────────────────────────


class BookingOrchestrator:
    """Turns one Vapi tool call into Square calls and a single result."""

    def __init__(self, settings: SquareSettings, client: SquareClient):
        self._settings = settings
        self._client = client

    def handle(self, request: ToolCallRequest) -> ToolCallResponse:
        """Process *request* and return the envelope Vapi expects."""
        return self.run(request).to_response()

    def run(self, request: ToolCallRequest) -> BookingOutcome:
        tool_call_id = request.toolCallId

        problem = self._validate(request)
        if problem:
            logger.warning("[%s] Rejected tool call: %s", tool_call_id, problem)
            return BookingOutcome(
                tool_call_id,
                failure=BookingFailure(FailureKind.CONFIGURATION, problem),
            )

        args = request.args
        logger.info(
            "[%s] Booking %r for %r at %s",
            tool_call_id, args.service_name, args.customer_name, args.start_time,
        )
        try:
            customer_id = self._resolve_customer(args.customer_name, args.customer_phone)
            booking_id = self._client.create_booking(customer_id, args.start_time)
        except BookingError as exc:
            logger.warning(
                "[%s] Booking failed (%s): %s", tool_call_id, exc.kind.value, exc.detail,
            )
            return BookingOutcome(
                tool_call_id, failure=BookingFailure(exc.kind, exc.detail),
            )
        except Exception as exc:
            logger.exception("[%s] Unexpected error while booking", tool_call_id)
            return BookingOutcome(
                tool_call_id,
                failure=BookingFailure(FailureKind.INTERNAL, str(exc)),
            )

        logger.info("[%s] Booking %s created", tool_call_id, booking_id)
        return BookingOutcome(tool_call_id, booking_id=booking_id)

    # ── Steps ────────────────────────────────────────────────────────

    def _validate(self, request: ToolCallRequest) -> str | None:
        """Return why *request* cannot be processed, or ``None``."""
        if request.functionName != FUNCTION_NAME:
            return f"unexpected function name {request.functionName!r}"
        if not (request.args.customer_name or "").strip():
            return "customer_name is missing"
        if not (request.args.service_name or "").strip():
            return "service_name is missing"
        if not self._settings.token:
            return "SQUARE_TOKEN is not configured"
        return None

    def _resolve_customer(self, full_name: str, raw_phone: str | None) -> str:
        """Find the customer by phone, creating one when nobody matches."""
        phone = normalize_phone(raw_phone)

        if phone:
            customer_id = self._client.search_customer_by_phone(phone)
            if customer_id:
                logger.info("Found existing Square customer %s", customer_id)
                return customer_id

        given_name, family_name = split_customer_name(full_name)
        customer_id = self._client.create_customer(given_name, family_name, phone or None)
        if not customer_id:
            raise BookingError(CUSTOMER_NOT_SECURED_DETAIL, kind=FailureKind.INVARIANT)

        logger.info("Created Square customer %s", customer_id)
        return customer_id
