"""Tests for the booking orchestrator.

Covers:
  - Local validation (no Square calls)
  - Customer find-or-create
  - Transport vs. unavailable booking failures
  - Result envelope rendering
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from vapi_square.api.schemas import ToolCallRequest
from vapi_square.booking import (
    CONFIGURATION_ERROR_MESSAGE,
    BookingOrchestrator,
    normalize_phone,
    split_customer_name,
)
from vapi_square.config import SquareSettings
from vapi_square.errors import FailureKind
from vapi_square.services.square_client import SquareAPIError, SquareClient

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_client() -> MagicMock:
    client = MagicMock(spec=SquareClient)
    client.search_customer_by_phone.return_value = "CUST1"
    client.create_customer.return_value = "CUST2"
    client.create_booking.return_value = "BOOK1"
    return client


def _request(payload: dict) -> ToolCallRequest:
    return ToolCallRequest.model_validate(payload)


@pytest.fixture
def client():
    return _mock_client()


@pytest.fixture
def orchestrator(square_settings, client):
    return BookingOrchestrator(square_settings, client)


# ── Helpers under test ───────────────────────────────────────────────


class TestNormalizePhone:
    def test_keeps_leading_plus_and_digits(self):
        assert normalize_phone("+1 (555) 123-4567") == "+15551234567"

    def test_without_plus(self):
        assert normalize_phone("555.123.4567") == "5551234567"

    def test_empty_values(self):
        assert normalize_phone(None) == ""
        assert normalize_phone("  ") == ""
        assert normalize_phone("+") == ""


class TestSplitCustomerName:
    def test_first_token_is_given_name(self):
        assert split_customer_name("Jane Doe") == ("Jane", "Doe")

    def test_remaining_tokens_form_family_name(self):
        assert split_customer_name("Mary  Ann   van Dyke") == ("Mary", "Ann van Dyke")

    def test_single_token_gets_placeholder_family_name(self):
        assert split_customer_name("Cher") == ("Cher", "Client")


# ── Validation ───────────────────────────────────────────────────────


class TestValidation:
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: p.update(functionName="book_something_else"),
            lambda p: p.pop("functionName"),
            lambda p: p["args"].pop("customer_name"),
            lambda p: p["args"].update(customer_name="   "),
            lambda p: p["args"].pop("service_name"),
            lambda p: p["args"].update(service_name=""),
        ],
    )
    def test_rejects_without_calling_square(self, orchestrator, client, booking_payload, mutate):
        mutate(booking_payload)
        response = orchestrator.handle(_request(booking_payload))

        assert response.results[0].result == CONFIGURATION_ERROR_MESSAGE
        assert response.results[0].toolCallId == "abc"
        client.search_customer_by_phone.assert_not_called()
        client.create_customer.assert_not_called()
        client.create_booking.assert_not_called()

    def test_rejects_when_token_missing(self, client, booking_payload):
        orchestrator = BookingOrchestrator(SquareSettings(token=""), client)
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.CONFIGURATION
        assert outcome.message == CONFIGURATION_ERROR_MESSAGE
        client.search_customer_by_phone.assert_not_called()

    def test_missing_tool_call_id_falls_back_to_sentinel(self, orchestrator, booking_payload):
        booking_payload.pop("toolCallId")
        booking_payload["functionName"] = "wrong"
        response = orchestrator.handle(_request(booking_payload))
        assert response.results[0].toolCallId == "test-error"


# ── Customer resolution ──────────────────────────────────────────────


class TestCustomerResolution:
    def test_existing_customer_skips_create(self, orchestrator, client, booking_payload):
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.ok
        client.search_customer_by_phone.assert_called_once_with("+15551234567")
        client.create_customer.assert_not_called()
        client.create_booking.assert_called_once_with("CUST1", "2025-01-01T10:00:00Z")

    def test_unknown_phone_creates_exactly_one_customer(self, orchestrator, client, booking_payload):
        client.search_customer_by_phone.return_value = None
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.ok
        client.create_customer.assert_called_once_with("Jane", "Doe", "+15551234567")
        client.create_booking.assert_called_once_with("CUST2", "2025-01-01T10:00:00Z")

    def test_phone_is_normalized_before_search(self, orchestrator, client, booking_payload):
        booking_payload["args"]["customer_phone"] = "+1 (555) 123-4567"
        orchestrator.run(_request(booking_payload))
        client.search_customer_by_phone.assert_called_once_with("+15551234567")

    def test_missing_phone_skips_search(self, orchestrator, client, booking_payload):
        booking_payload["args"].pop("customer_phone")
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.ok
        client.search_customer_by_phone.assert_not_called()
        client.create_customer.assert_called_once_with("Jane", "Doe", None)

    def test_no_customer_id_is_an_invariant_failure(self, orchestrator, client, booking_payload):
        client.search_customer_by_phone.return_value = None
        client.create_customer.return_value = None
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.INVARIANT
        assert "Failed to secure customer ID" in outcome.message
        client.create_booking.assert_not_called()

    def test_search_failure_stops_the_pipeline(self, orchestrator, client, booking_payload):
        client.search_customer_by_phone.side_effect = SquareAPIError(
            "This request could not be authorized.", status_code=401,
        )
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.TRANSPORT
        client.create_customer.assert_not_called()
        client.create_booking.assert_not_called()


# ── Booking failures ─────────────────────────────────────────────────


class TestBookingFailures:
    def test_transport_failure_detail_has_no_newlines(self, orchestrator, client, booking_payload):
        client.create_booking.side_effect = SquareAPIError(
            "Invalid start_at.\r\nMust be RFC 3339.", status_code=400,
        )
        response = orchestrator.handle(_request(booking_payload))
        result = response.results[0].result

        assert result == "Booking failed. Failure Detail: Invalid start_at. Must be RFC 3339."
        assert "\n" not in result and "\r" not in result

    def test_unavailable_is_distinct_from_transport(self, orchestrator, client, booking_payload):
        client.create_booking.side_effect = SquareAPIError(
            "Square accepted request but returned no booking object "
            "(e.g., time slot unavailable).",
            kind=FailureKind.UNAVAILABLE,
        )
        outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.UNAVAILABLE
        assert "unavailable" in outcome.message

    def test_unexpected_exception_never_escapes(self, orchestrator, client, booking_payload):
        client.create_booking.side_effect = RuntimeError("boom")
        response = orchestrator.handle(_request(booking_payload))

        assert response.results[0].toolCallId == "abc"
        assert response.results[0].result == "Booking failed. Failure Detail: boom"

    def test_empty_detail_uses_unknown_message(self, orchestrator, client, booking_payload):
        client.create_booking.side_effect = RuntimeError()
        response = orchestrator.handle(_request(booking_payload))
        assert response.results[0].result == "Booking failed. Failure Detail: Unknown API Error."


# ── End-to-end scenarios through the real client ─────────────────────


class TestScenarios:
    def _orchestrator(self, settings: SquareSettings, responses: list) -> tuple:
        square = SquareClient(settings)
        patcher = patch.object(square._client, "request", side_effect=responses)
        return BookingOrchestrator(settings, square), patcher

    def test_new_customer_then_booking(self, square_settings, mock_square_response, booking_payload):
        orchestrator, patcher = self._orchestrator(
            square_settings,
            [
                mock_square_response({}),
                mock_square_response({"customer": {"id": "CUST1"}}),
                mock_square_response({"booking": {"id": "BOOK1"}}),
            ],
        )
        with patcher as mock_req:
            response = orchestrator.handle(_request(booking_payload))

        assert [c[0][1] for c in mock_req.call_args_list] == [
            "/v2/customers/search",
            "/v2/customers",
            "/v2/bookings",
        ]
        dumped = response.model_dump()
        assert dumped["results"][0]["toolCallId"] == "abc"
        assert "BOOK1" in dumped["results"][0]["result"]
        assert len(dumped["results"]) == 1

    def test_booking_with_no_booking_object(self, square_settings, mock_square_response, booking_payload):
        orchestrator, patcher = self._orchestrator(
            square_settings,
            [
                mock_square_response({}),
                mock_square_response({"customer": {"id": "CUST1"}}),
                mock_square_response({}),
            ],
        )
        with patcher:
            outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.UNAVAILABLE
        assert outcome.tool_call_id == "abc"
        assert "unavailable" in outcome.message

    def test_booking_http_error_without_detail(self, square_settings, mock_square_response, booking_payload):
        orchestrator, patcher = self._orchestrator(
            square_settings,
            [
                mock_square_response({"customers": [{"id": "CUST9"}]}),
                mock_square_response({}, 500),
            ],
        )
        with patcher:
            outcome = orchestrator.run(_request(booking_payload))

        assert outcome.failure.kind is FailureKind.TRANSPORT
        assert outcome.message == (
            "Booking failed. Failure Detail: Booking HTTP error 500 from Square."
        )
