import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WEBHOOKS_SECTION = "webhooks"
DEFAULT_TIMEOUT_SECONDS = 30.0


class MissingSecretError(Exception):
    """Raised when required Streamlit secrets are absent."""


@dataclass(frozen=True)
class WebhookConfig:
    submit_url: str
    fetch_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


def load_webhook_config(secrets: Mapping) -> WebhookConfig:
    """
    Build the webhook configuration from a secrets mapping.

    Expects a ``[webhooks]`` table holding ``submit_url`` and ``fetch_url``
    and optionally ``timeout_seconds``. Pass ``st.secrets`` only after the
    page has begun rendering: Streamlit Cloud mounts secrets at runtime.
    """

    secrets_keys = list(secrets.keys())
    section = secrets.get(WEBHOOKS_SECTION)

    if not section:
        raise MissingSecretError(
            f"Missing '{WEBHOOKS_SECTION}' secrets table. Visible keys: {secrets_keys}"
        )

    submit_url = str(section.get("submit_url") or "").strip()
    fetch_url = str(section.get("fetch_url") or "").strip()

    if not submit_url:
        raise MissingSecretError(
            f"Missing '{WEBHOOKS_SECTION}.submit_url' secret. Visible keys: {secrets_keys}"
        )

    if not fetch_url:
        raise MissingSecretError(
            f"Missing '{WEBHOOKS_SECTION}.fetch_url' secret. Visible keys: {secrets_keys}"
        )

    timeout_value = section.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    try:
        timeout_seconds = float(timeout_value)
    except (TypeError, ValueError):
        logger.warning(
            "Ignoring invalid timeout_seconds %r, using %s", timeout_value, DEFAULT_TIMEOUT_SECONDS
        )
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS

    if timeout_seconds <= 0:
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS

    return WebhookConfig(
        submit_url=submit_url,
        fetch_url=fetch_url,
        timeout_seconds=timeout_seconds,
    )
