"""Shared test fixtures for the Vapi Square connector test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    Keeps the metrics singleton disabled and gives the lifespan a
    complete Square configuration when a test enters the app context.
    """
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("SQUARE_TOKEN", "test-square-token-123")
    os.environ.setdefault("SQUARE_LOCATION_ID", "test-location")
    os.environ.setdefault("SQUARE_SERVICE_ID", "test-service-variation")
    os.environ.setdefault("SQUARE_TEAM_ID", "test-team-member")


@pytest.fixture
def square_settings():
    from vapi_square.config import SquareSettings

    return SquareSettings(
        token="test-token",
        location_id="LOC1",
        service_variation_id="SVC1",
        team_member_id="TEAM1",
    )


@pytest.fixture
def mock_square_response():
    """Factory fixture for creating mock Square API responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make


@pytest.fixture
def booking_payload():
    """A valid ``schedule_square_appointment`` tool call."""
    return {
        "functionName": "schedule_square_appointment",
        "toolCallId": "abc",
        "args": {
            "customer_name": "Jane Doe",
            "customer_phone": "+15551234567",
            "start_time": "2025-01-01T10:00:00Z",
            "service_name": "Haircut",
        },
    }
