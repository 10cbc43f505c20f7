"""Fixture definitions for fuel log tests."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pandas as pd
import pytest

from fuel_settings import WebhookConfig
from webhook_client import FuelWebhookClient

SUBMIT_URL = "https://automation.example.com/webhook/fuel-entry"
FETCH_URL = "https://automation.example.com/webhook/fuel-history"
SENT_AT = datetime(2024, 3, 5, 8, 30, 15, 250000, tzinfo=timezone.utc)
FALLBACK_NOW = pd.Timestamp("2024-06-01T12:00:00Z")

JAN_10 = {"total": 60, "litres": 40, "kilometres": 500, "date": "2024-01-10"}
JAN_01 = {"total": 55, "litres": 35, "kilometres": 480, "date": "2024-01-01"}


def make_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def webhook_config() -> WebhookConfig:
    return WebhookConfig(submit_url=SUBMIT_URL, fetch_url=FETCH_URL, timeout_seconds=5)


@pytest.fixture
def mock_session() -> MagicMock:
    session = MagicMock()
    session.post.return_value = make_response(200, text="ok")
    session.get.return_value = make_response(200, json_data=[])
    return session


@pytest.fixture
def client(webhook_config, mock_session) -> FuelWebhookClient:
    return FuelWebhookClient(
        webhook_config,
        session=mock_session,
        clock=lambda: SENT_AT,
        millis=lambda: 1_700_000_000_000,
    )


@pytest.fixture
def fixed_now():
    return lambda: FALLBACK_NOW


@pytest.fixture
def two_fill_ups():
    return [dict(JAN_10), dict(JAN_01)]
