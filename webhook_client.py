"""HTTP client for the fill-up submission and history webhooks."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import requests

from fuel_records import FuelEntry
from fuel_settings import WebhookConfig

logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """Raised when a webhook call fails at the transport or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_sent_at(sent_at: datetime) -> str:
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=timezone.utc)
    return sent_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_submission_payload(entry: FuelEntry, sent_at: datetime) -> dict:
    """
    Wire payload for one fill-up.

    The price goes out under both ``total`` and the legacy ``prix`` key.
    """

    litres = entry.volume_liters
    kilometres = entry.distance_km
    total = entry.price

    price_per_liter = 0.0
    if litres > 0 and total > 0:
        price_per_liter = total / litres

    return {
        "kilometres": kilometres,
        "litres": litres,
        "total": total,
        "prix": total,
        "prix_par_litre": round(price_per_liter, 3),
        "date": format_sent_at(sent_at),
    }


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class FuelWebhookClient:
    def __init__(
        self,
        config: WebhookConfig,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = _utc_now,
        millis: Callable[[], int] = lambda: time.time_ns() // 1_000_000,
    ):
        self.config = config
        self._session = session or requests.Session()
        self._clock = clock
        self._millis = millis
        self._last_cache_buster = 0

    def next_cache_buster(self) -> int:
        """Millisecond stamp that never repeats, even if the wall clock steps back."""

        self._last_cache_buster = max(self._millis(), self._last_cache_buster + 1)
        return self._last_cache_buster

    def submit_entry(self, entry: FuelEntry) -> str:
        payload = build_submission_payload(entry, self._clock())
        logger.info("Posting fill-up to webhook: %s", json.dumps(payload, indent=2))

        try:
            response = self._session.post(
                self.config.submit_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as error:
            logger.error("Fill-up submission failed: %s", error)
            raise WebhookError(f"Network error posting fill-up: {error}") from error

        if not _is_success(response.status_code):
            logger.error("Fill-up submission returned HTTP %s", response.status_code)
            raise WebhookError(
                f"HTTP error: {response.status_code}", status_code=response.status_code
            )

        logger.info("Webhook response: %s", response.text)
        return response.text

    def fetch_history(self) -> Any:
        """Return the parsed JSON body of the history webhook, unexamined."""

        params = {"t": self.next_cache_buster()}

        try:
            response = self._session.get(
                self.config.fetch_url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as error:
            logger.error("Fetching fuel history failed: %s", error)
            raise WebhookError(f"Network error fetching history: {error}") from error

        if not _is_success(response.status_code):
            logger.error("History webhook returned HTTP %s", response.status_code)
            raise WebhookError(
                f"HTTP error: {response.status_code}", status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as error:
            logger.error("History webhook returned invalid JSON: %s", error)
            raise WebhookError(
                f"Invalid JSON from history webhook: {error}", status_code=response.status_code
            ) from error
