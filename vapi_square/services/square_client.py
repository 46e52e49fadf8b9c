"""HTTP client for the three Square API v2 calls the connector needs.

Square API docs: https://developer.squareup.com/reference/square
Every request is a ``POST`` carrying the access token as a Bearer token
and a pinned ``Square-Version`` header.

Calls are made exactly once.  A timeout, a connection error or a non-2xx
status raises :class:`SquareAPIError` with ``kind=TRANSPORT``; a 2xx
booking response without a booking object raises it with
``kind=UNAVAILABLE``.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import httpx

from vapi_square.config import SquareSettings
from vapi_square.errors import BookingError, FailureKind
from vapi_square.services.metrics import metrics

logger = logging.getLogger(__name__)

SEARCH_CUSTOMERS_PATH = "/v2/customers/search"
CREATE_CUSTOMER_PATH = "/v2/customers"
CREATE_BOOKING_PATH = "/v2/bookings"

UNAVAILABLE_DETAIL = (
    "Square accepted request but returned no booking object "
    "(e.g., time slot unavailable)."
)


class SquareAPIError(BookingError):
    """Raised when a Square call fails or returns an unusable body."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        kind: FailureKind = FailureKind.TRANSPORT,
    ):
        self.status_code = status_code
        super().__init__(message, kind=kind)


def new_idempotency_key(prefix: str) -> str:
    """Return a fresh key: epoch milliseconds plus random hex."""
    return f"vapi-{prefix}-{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:12]}"


def _first_error_detail(data: dict[str, Any]) -> str | None:
    """Return ``errors[0].detail`` from a Square error body, if any."""
    errors = data.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        detail = errors[0].get("detail")
        if detail:
            return str(detail)
    return None


class SquareClient:
    """Thin wrapper around the Square customers and bookings endpoints."""

    def __init__(
        self,
        settings: SquareSettings,
        *,
        http_client: httpx.Client | None = None,
    ):
        self._settings = settings
        self._client = http_client or httpx.Client(
            base_url=settings.base_url,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Square-Version": settings.api_version,
                "Content-Type": "application/json",
            },
            timeout=settings.timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    # ── Internal helpers ─────────────────────────────────────────────

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _post(self, label: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST *body* to *path* once and return the decoded JSON body."""
        data, elapsed = self._send(label, path, body)
        metrics.record_success(f"POST {path}", latency_ms=elapsed)
        return data

    def _send(
        self, label: str, path: str, body: dict[str, Any],
    ) -> tuple[dict[str, Any], float]:
        """POST once; failures are recorded and raised, success is left to
        the caller.  Returns the decoded body and the latency in ms."""
        operation = f"POST {path}"
        t0 = time.perf_counter()
        try:
            response = self._client.request("POST", path, json=body)
        except httpx.TransportError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(operation, type(exc).__name__, latency_ms=elapsed)
            logger.warning("Square %s failed: %s", operation, type(exc).__name__)
            raise SquareAPIError(
                f"{label} request to Square failed ({type(exc).__name__})."
            ) from exc

        elapsed = (time.perf_counter() - t0) * 1000
        data = self._parse_body(response)
        if not 200 <= response.status_code < 300:
            metrics.record_failure(
                operation, f"http_{response.status_code}", latency_ms=elapsed,
            )
            logger.warning(
                "Square %s returned HTTP %d", operation, response.status_code,
            )
            raise SquareAPIError(
                _first_error_detail(data)
                or f"{label} HTTP error {response.status_code} from Square.",
                status_code=response.status_code,
            )

        return data, elapsed

    # ── Public API methods ───────────────────────────────────────────

    def search_customer_by_phone(self, phone: str) -> str | None:
        """Return the id of the first customer whose phone matches exactly."""
        data = self._post(
            "Search Customer",
            SEARCH_CUSTOMERS_PATH,
            {"query": {"filter": {"phone_number": {"exact": phone}}}},
        )
        customers = data.get("customers") or []
        if customers and isinstance(customers[0], dict):
            return customers[0].get("id")
        return None

    def create_customer(
        self,
        given_name: str,
        family_name: str,
        phone: str | None = None,
    ) -> str | None:
        """Create a customer record and return its id (``None`` if Square
        omitted the customer object)."""
        payload: dict[str, Any] = {
            "idempotency_key": new_idempotency_key("customer"),
            "given_name": given_name,
            "family_name": family_name,
        }
        if phone:
            payload["phone_number"] = phone

        data = self._post("Create Customer", CREATE_CUSTOMER_PATH, payload)
        customer = data.get("customer")
        return customer.get("id") if isinstance(customer, dict) else None

    def create_booking(self, customer_id: str, start_at: str | None) -> str:
        """Book the configured service and team member for *customer_id*.

        Args:
            customer_id: Square customer id from search or creation.
            start_at: RFC 3339 start time as supplied by the caller.

        Returns:
            The new booking id.

        Raises:
            SquareAPIError: ``TRANSPORT`` on a failed call, ``UNAVAILABLE``
                when Square answered 2xx without a booking.
        """
        settings = self._settings
        payload = {
            "booking": {
                "start_at": start_at,
                "location_id": settings.location_id,
                "customer_id": customer_id,
                "appointment_segments": [
                    {
                        "service_variation_id": settings.service_variation_id,
                        "team_member_id": settings.team_member_id,
                    }
                ],
            },
            "idempotency_key": new_idempotency_key("booking"),
        }

        operation = f"POST {CREATE_BOOKING_PATH}"
        data, elapsed = self._send("Booking", CREATE_BOOKING_PATH, payload)
        booking = data.get("booking")
        if not isinstance(booking, dict) or not booking.get("id"):
            metrics.record_failure(
                operation, FailureKind.UNAVAILABLE.value, latency_ms=elapsed,
            )
            logger.warning("Square %s returned no booking object", operation)
            raise SquareAPIError(
                _first_error_detail(data) or UNAVAILABLE_DETAIL,
                kind=FailureKind.UNAVAILABLE,
            )
        metrics.record_success(operation, latency_ms=elapsed)
        return booking["id"]
