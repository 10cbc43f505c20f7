from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from fuel_records import FuelRecord

CURRENCY_SYMBOL = "€"

HISTORY_COLUMNS = {
    "display_date": "Date",
    "total_cost": "Total Cost",
    "volume_liters": "Volume (L)",
    "distance_km": "Distance (km)",
    "price_per_liter": "Price/L",
    "efficiency_l_per_100km": "Consumption (L/100km)",
    "estimated_date": "Estimated Date",
}


@dataclass(frozen=True)
class AggregateStats:
    total_distance: float
    total_cost: float
    total_volume: float
    average_price_per_liter: float
    average_consumption: float


def _safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return float(numerator / denominator)


def records_to_frame(records: Iterable[FuelRecord]) -> pd.DataFrame:
    """Tabulate records, indexed by their parsed ISO timestamp."""

    rows = [record.to_dict() for record in records]
    if not rows:
        return pd.DataFrame(columns=list(HISTORY_COLUMNS.values()))

    frame = pd.DataFrame(rows)
    frame["Event Datetime"] = pd.to_datetime(frame["iso_date"], utc=True)
    frame = frame.set_index("Event Datetime").sort_index(kind="stable")
    return frame[list(HISTORY_COLUMNS)].rename(columns=HISTORY_COLUMNS)


def compute_aggregate_stats(records: Iterable[FuelRecord]) -> AggregateStats:
    records = list(records)

    distances = np.array([record.distance_km for record in records], dtype=float)
    costs = np.array([record.total_cost for record in records], dtype=float)
    volumes = np.array([record.volume_liters for record in records], dtype=float)

    total_distance = float(distances.sum())
    total_cost = float(costs.sum())
    total_volume = float(volumes.sum())

    return AggregateStats(
        total_distance=total_distance,
        total_cost=total_cost,
        total_volume=total_volume,
        average_price_per_liter=_safe_ratio(total_cost, total_volume),
        average_consumption=_safe_ratio(total_volume, total_distance) * 100,
    )


def format_stat_tiles(stats: AggregateStats, currency: str = CURRENCY_SYMBOL) -> list[tuple[str, str]]:
    """Label/value pairs for the summary tiles."""

    return [
        ("Total Cost", f"{stats.total_cost:,.0f} {currency}"),
        ("Distance", f"{stats.total_distance:,.0f} km"),
        ("Avg. Consumption", f"{stats.average_consumption:.1f} L/100km"),
        ("Avg. Price/L", f"{stats.average_price_per_liter:.3f} {currency}"),
    ]
