"""Page-level tests for the dashboard error, empty and data states."""

from pathlib import Path
from unittest.mock import patch

import pytest
import streamlit as st
from streamlit.testing.v1 import AppTest

from webhook_client import WebhookError

from .conftest import FETCH_URL, JAN_01, JAN_10, SUBMIT_URL

APP_PATH = str(Path(__file__).resolve().parent.parent / "app.py")


@pytest.fixture(autouse=True)
def clear_streamlit_caches():
    st.cache_data.clear()
    st.cache_resource.clear()
    yield
    st.cache_data.clear()
    st.cache_resource.clear()


def run_app() -> AppTest:
    app = AppTest.from_file(APP_PATH, default_timeout=30)
    app.secrets["webhooks"] = {"submit_url": SUBMIT_URL, "fetch_url": FETCH_URL}
    return app.run()


def _errors(app: AppTest) -> list:
    return [element.value for element in app.error]


def _button(app: AppTest, label: str):
    return next(button for button in app.button if button.label == label)


def test_workflow_started_shows_configuration_message() -> None:
    with patch("webhook_client.FuelWebhookClient.fetch_history", return_value={"message": "Workflow was started"}):
        app = run_app()

    assert not app.exception
    errors = _errors(app)
    assert any("When Last Node Finishes" in error for error in errors)
    assert not any("Unable to synchronize" in error for error in errors)
    assert "Show technical details" in [expander.label for expander in app.expander]


def test_transport_error_shows_generic_message() -> None:
    with patch(
        "webhook_client.FuelWebhookClient.fetch_history",
        side_effect=WebhookError("HTTP error: 502", status_code=502),
    ):
        app = run_app()

    assert not app.exception
    errors = _errors(app)
    assert any("Unable to synchronize the fuel history." in error for error in errors)
    assert not any("When Last Node Finishes" in error for error in errors)
    assert "Reconnect" in [button.label for button in app.button]


def test_reconnect_clears_cached_history() -> None:
    with patch(
        "webhook_client.FuelWebhookClient.fetch_history",
        return_value={"message": "Workflow was started"},
    ) as fetch_history:
        app = run_app()
        assert fetch_history.call_count == 1

        _button(app, "Reconnect").click().run()

    assert fetch_history.call_count == 2


def test_empty_history_shows_no_data_and_raw_inspector() -> None:
    with patch("webhook_client.FuelWebhookClient.fetch_history", return_value=[]):
        app = run_app()

    assert not app.exception
    assert not app.error
    assert [info.value for info in app.info] == ["No fill-up data received yet."]
    assert "Show received data (debug)" in [expander.label for expander in app.expander]


def test_string_body_renders_in_raw_inspector() -> None:
    with patch("webhook_client.FuelWebhookClient.fetch_history", return_value="text"):
        app = run_app()

    assert not app.exception
    assert [info.value for info in app.info] == ["No fill-up data received yet."]
    assert len(app.json) == 1


def test_history_renders_summary_tiles() -> None:
    with patch("webhook_client.FuelWebhookClient.fetch_history", return_value=[JAN_10, JAN_01]):
        app = run_app()

    assert not app.exception
    assert not app.error
    tiles = {metric.label: metric.value for metric in app.metric}
    assert tiles["Total Cost"] == "115 €"
    assert tiles["Avg. Consumption"] == "7.7 L/100km"
