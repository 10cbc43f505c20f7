"""Normalization of webhook history responses into canonical fuel records."""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Callable, NamedTuple, Optional, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

WORKFLOW_STARTED_MESSAGE = "Workflow was started"
WRAPPER_KEY = "json"
RECORDS_KEY = "records"
FIELDS_KEY = "fields"

COST_FIELDS = ("total", "prix")
VOLUME_FIELDS = ("litres",)
DISTANCE_FIELDS = ("kilometres",)
PRICE_PER_LITER_FIELDS = ("prix_par_litre", "pricePerLiter")
DATE_FIELDS = ("date", "createdTime")
CLOCK_KEYWORDS = {"now", "today"}

SHORT_MONTHS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


class FuelDataError(Exception):
    """Raised when the history webhook returns unusable data."""


class WorkflowNotFinishedError(FuelDataError):
    """Raised when the webhook answers before its workflow has finished."""

    def __init__(self, message=None):
        super().__init__(
            message
            or "Webhook configuration: the webhook responds too early. Set 'Respond' "
            "to 'When Last Node Finishes' on the Webhook node."
        )


@dataclass(frozen=True)
class FuelEntry:
    """One fill-up as typed into the form, before submission."""

    price: float
    volume_liters: float
    distance_km: float


@dataclass(frozen=True)
class FuelRecord:
    id: Union[str, int]
    display_date: str
    iso_date: str
    price_per_liter: float
    total_cost: float
    distance_km: float
    volume_liters: float
    efficiency_l_per_100km: float
    estimated_date: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class DecodedResponse(NamedTuple):
    shape: str
    items: list


def _first_wrapper(raw):
    if isinstance(raw, list) and raw and isinstance(raw[0], dict):
        return raw[0].get(WRAPPER_KEY)
    return None


def _decode_wrapped_bundle(raw):
    wrapped = _first_wrapper(raw)
    if isinstance(wrapped, list):
        return wrapped
    return None


def _decode_wrapped_items(raw):
    wrapped = _first_wrapper(raw)
    if not (isinstance(wrapped, dict) or wrapped):
        return None
    return [wrapper.get(WRAPPER_KEY) if isinstance(wrapper, dict) else None for wrapper in raw]


def _decode_flat_list(raw):
    if isinstance(raw, list):
        return raw
    return None


def _decode_records_envelope(raw):
    if isinstance(raw, dict) and isinstance(raw.get(RECORDS_KEY), list):
        return raw[RECORDS_KEY]
    return None


def _decode_single_object(raw):
    if isinstance(raw, dict):
        return [raw]
    return None


# Priority order matters: wrapped lists are lists too.
RESPONSE_SHAPES = (
    ("wrapped_bundle", _decode_wrapped_bundle),
    ("wrapped_items", _decode_wrapped_items),
    ("flat_list", _decode_flat_list),
    ("records_envelope", _decode_records_envelope),
    ("single_object", _decode_single_object),
)


def is_workflow_started_response(raw: Any) -> bool:
    return isinstance(raw, dict) and raw.get("message") == WORKFLOW_STARTED_MESSAGE


def decode_response(raw: Any) -> DecodedResponse:
    """Match ``raw`` against the known response shapes, first match wins."""

    for shape, decoder in RESPONSE_SHAPES:
        items = decoder(raw)
        if items is not None:
            return DecodedResponse(shape, list(items))

    return DecodedResponse("empty", [])


def _record_fields(item) -> dict:
    if not isinstance(item, dict):
        return {}

    grouped = item.get(FIELDS_KEY)
    if isinstance(grouped, dict):
        return grouped

    return item


def _first_present(props: dict, names):
    for name in names:
        value = props.get(name)
        if value is not None:
            return value
    return None


def coerce_number(value) -> float:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return 0.0

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0

    try:
        number = float(pd.to_numeric(value, errors="coerce"))
    except (TypeError, ValueError, OverflowError):
        return 0.0

    if not np.isfinite(number):
        return 0.0

    return number


def parse_timestamp(value) -> Optional[pd.Timestamp]:
    """Parse a raw date value to a UTC timestamp, or None when unusable."""

    if value is None or isinstance(value, (bool, dict, list, tuple, set)):
        return None

    if isinstance(value, (int, float)):
        try:
            if not math.isfinite(value):
                return None
            parsed = pd.to_datetime(value, unit="ms", utc=True, errors="coerce")
        except (OverflowError, ValueError, pd.errors.OutOfBoundsDatetime):
            return None
    else:
        text = str(value).strip()
        # pandas reads these as the wall clock
        if not text or text.lower() in CLOCK_KEYWORDS:
            return None
        try:
            parsed = pd.to_datetime(text, utc=True, errors="coerce")
        except (OverflowError, ValueError, pd.errors.OutOfBoundsDatetime):
            return None

    if pd.isna(parsed):
        return None

    return parsed


def format_iso_date(timestamp: pd.Timestamp) -> str:
    utc_timestamp = timestamp.tz_convert("UTC")
    return utc_timestamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_timestamp.microsecond // 1000:03d}Z"


def format_display_date(timestamp: pd.Timestamp) -> str:
    utc_timestamp = timestamp.tz_convert("UTC")
    return f"{utc_timestamp.day} {SHORT_MONTHS[utc_timestamp.month - 1]}"


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


def _resolve_timestamp(props: dict, now: Callable[[], Any]):
    for name in DATE_FIELDS:
        timestamp = parse_timestamp(props.get(name))
        if timestamp is not None:
            return timestamp, False

    fallback = pd.Timestamp(now())
    if fallback.tzinfo is None:
        fallback = fallback.tz_localize("UTC")

    return fallback, True


def build_record(item, index: int, now: Callable[[], Any] = _utc_now) -> Optional[FuelRecord]:
    """Map one raw item to a FuelRecord, or None when it carries no figures."""

    props = _record_fields(item)

    total_cost = coerce_number(_first_present(props, COST_FIELDS))
    volume_liters = coerce_number(_first_present(props, VOLUME_FIELDS))
    distance_km = coerce_number(_first_present(props, DISTANCE_FIELDS))

    if total_cost == 0 and volume_liters == 0 and distance_km == 0:
        return None

    raw_price_per_liter = _first_present(props, PRICE_PER_LITER_FIELDS)
    if raw_price_per_liter is not None:
        price_per_liter = coerce_number(raw_price_per_liter)
    elif volume_liters > 0:
        price_per_liter = total_cost / volume_liters
    else:
        price_per_liter = 0.0

    efficiency = (volume_liters / distance_km) * 100 if distance_km > 0 else 0.0

    timestamp, estimated = _resolve_timestamp(props, now)
    if estimated:
        logger.warning("Record %s has no usable date, using processing time", index)

    record_id = item.get("id") if isinstance(item, dict) else None

    return FuelRecord(
        id=record_id or index,
        display_date=format_display_date(timestamp),
        iso_date=format_iso_date(timestamp),
        price_per_liter=round(price_per_liter, 3),
        total_cost=total_cost,
        distance_km=distance_km,
        volume_liters=volume_liters,
        efficiency_l_per_100km=round(efficiency, 1),
        estimated_date=estimated,
    )


def normalize_response(raw: Any, now: Optional[Callable[[], Any]] = None) -> list[FuelRecord]:
    """
    Convert a raw history response into records sorted by date.

    ``now`` supplies the timestamp for items without a usable date and
    defaults to the current UTC time. Unknown shapes yield an empty list;
    the only error raised is WorkflowNotFinishedError.
    """

    if is_workflow_started_response(raw):
        raise WorkflowNotFinishedError()

    decoded = decode_response(raw)
    logger.debug("History response shape: %s (%s items)", decoded.shape, len(decoded.items))

    clock = now or _utc_now
    records = []
    for index, item in enumerate(decoded.items):
        record = build_record(item, index, now=clock)
        if record is not None:
            records.append(record)

    dropped = len(decoded.items) - len(records)
    if dropped:
        logger.debug("Dropped %s items without cost, volume or distance", dropped)

    return sorted(records, key=lambda record: record.iso_date)
