"""State machine behind the fill-up entry form."""

import logging
import re
import time
from enum import Enum
from typing import Callable, Optional

from fuel_records import FuelEntry
from webhook_client import WebhookError

logger = logging.getLogger(__name__)

ENTRY_FIELDS = ("price", "volume_liters", "distance_km")
SUCCESS_DISPLAY_SECONDS = 3.0
VALIDATION_MESSAGE = "Invalid data: price, volume and distance must all be greater than zero."
SYNC_ERROR_MESSAGE = "Synchronization error. Your values were kept, please try again."
SUCCESS_MESSAGE = "Saved successfully!"

DECIMAL_INPUT_PATTERN = re.compile(r"\d*[.,]?\d*", re.ASCII)


class FormStatus(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def parse_decimal_input(text: str) -> Optional[float]:
    """
    Parse form text that may use ``,`` or ``.`` as decimal separator.

    Returns None when the text is not digits with at most one separator.
    Empty text and a lone separator count as 0.
    """

    if text is None:
        text = ""

    if not DECIMAL_INPUT_PATTERN.fullmatch(text):
        return None

    normalized = text.replace(",", ".")
    if normalized in ("", "."):
        return 0.0

    return float(normalized)


class FuelEntryForm:
    def __init__(
        self,
        on_success: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.on_success = on_success
        self._clock = clock
        self.status = FormStatus.IDLE
        self.message = ""
        self.succeeded_at: Optional[float] = None
        self.display_values = {}
        self.values = {}
        self.reset_fields()

    def reset_fields(self) -> None:
        self.display_values = {name: "" for name in ENTRY_FIELDS}
        self.values = {name: 0.0 for name in ENTRY_FIELDS}

    def update_field(self, name: str, text: str) -> bool:
        """Store accepted input; rejected text leaves the field unchanged."""

        if name not in ENTRY_FIELDS:
            raise KeyError(f"Unknown entry field '{name}'")

        parsed = parse_decimal_input(text)
        if parsed is None:
            return False

        self.display_values[name] = text
        self.values[name] = parsed
        return True

    def build_entry(self) -> FuelEntry:
        return FuelEntry(
            price=self.values["price"],
            volume_liters=self.values["volume_liters"],
            distance_km=self.values["distance_km"],
        )

    def is_valid(self) -> bool:
        return all(self.values[name] > 0 for name in ENTRY_FIELDS)

    def submit(self, sender: Callable[[FuelEntry], object]) -> FormStatus:
        if self.status == FormStatus.SUBMITTING:
            return self.status

        if not self.is_valid():
            self.status = FormStatus.FAILED
            self.message = VALIDATION_MESSAGE
            return self.status

        self.status = FormStatus.SUBMITTING
        self.message = ""
        entry = self.build_entry()
        logger.info("Submitting fill-up: %s", entry)

        try:
            sender(entry)
        except WebhookError as error:
            logger.error("Fill-up submission failed: %s", error)
            self.status = FormStatus.FAILED
            self.message = SYNC_ERROR_MESSAGE
            return self.status
        except Exception:
            logger.exception("Unexpected error while submitting fill-up")
            self.status = FormStatus.FAILED
            self.message = SYNC_ERROR_MESSAGE
            return self.status

        self.reset_fields()
        self.status = FormStatus.SUCCEEDED
        self.message = SUCCESS_MESSAGE
        self.succeeded_at = self._clock()

        if self.on_success is not None:
            self.on_success()

        return self.status

    def expire_success(self) -> FormStatus:
        """Return to IDLE once the success message has been shown long enough."""

        if (
            self.status == FormStatus.SUCCEEDED
            and self.succeeded_at is not None
            and self._clock() - self.succeeded_at >= SUCCESS_DISPLAY_SECONDS
        ):
            self.status = FormStatus.IDLE
            self.message = ""
            self.succeeded_at = None

        return self.status
