"""Vapi → Square booking connector.

A stateless webhook adapter: a Vapi voice assistant calls the
``schedule_square_appointment`` tool, and the connector books the
appointment in Square Appointments and answers with one spoken-friendly
result string.

Request flow
============

validate → resolve customer (search by phone, else create) → create booking → respond

Every path, including Square failures, ends in an HTTP 200 response of the
form ``{"results": [{"toolCallId": ..., "result": ...}]}``; Vapi reads the
outcome from ``result``.

Package Structure
-----------------
- ``vapi_square/booking.py`` - the orchestrator and outcome types
- ``vapi_square/errors.py`` - failure kinds shared across layers
- ``vapi_square/config.py`` - settings from env / ``.env`` / AWS SSM
- ``vapi_square/server.py`` - FastAPI application
- ``vapi_square/services/`` - Square HTTP client, CloudWatch metrics
- ``vapi_square/api/`` - FastAPI routes and Pydantic schemas
"""
