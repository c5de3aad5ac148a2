"""Statistics computed locally when the store only hands back raw rows."""
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from tool_executor.normalize import to_float

SENSITIVITY_THRESHOLDS = {
    "high": 1.5,
    "medium": 2.0,
    "low": 3.0,
}


def round2(value: float) -> float:
    return round(float(value), 2)


def percent_change(value1: float, value2: float) -> float:
    """(value1 - value2) / value2 * 100, defined as 0 when value2 is 0."""
    if value2 == 0:
        return 0.0
    return (value1 - value2) / value2 * 100


def aggregate(values: Sequence[float], aggregation: str, row_count: Optional[int] = None) -> float:
    """Aggregate metric values; ``count`` counts rows, not values."""
    if aggregation == "count":
        return float(row_count if row_count is not None else len(values))
    if not values:
        return 0.0
    if aggregation == "avg":
        return sum(values) / len(values)
    if aggregation == "countDistinct":
        return float(len(set(values)))
    if aggregation == "min":
        return min(values)
    if aggregation == "max":
        return max(values)
    return float(sum(values))


def sensitivity_threshold(sensitivity: Optional[str]) -> float:
    return SENSITIVITY_THRESHOLDS.get((sensitivity or "medium").lower(), SENSITIVITY_THRESHOLDS["medium"])


def mean_and_std(values: Sequence[float]) -> Dict[str, float]:
    """Mean and population standard deviation."""
    if not values:
        return {"mean": 0.0, "std_dev": 0.0}
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return {"mean": mean, "std_dev": math.sqrt(variance)}


def detect_outliers(groups: List[Dict[str, Any]], threshold: float) -> Dict[str, Any]:
    """Flag groups whose value lies more than ``threshold`` standard deviations from the mean."""
    values = [g["value"] for g in groups]
    stats = mean_and_std(values)
    mean, std_dev = stats["mean"], stats["std_dev"]

    anomalies = []
    if std_dev > 0:
        for g in groups:
            if abs(g["value"] - mean) > threshold * std_dev:
                anomalies.append({
                    "group": g["group"],
                    "value": round2(g["value"]),
                    "deviation": round2((g["value"] - mean) / std_dev),
                    "type": "high" if g["value"] > mean else "low",
                })

    return {
        "anomalies": anomalies,
        "stats": {"mean": round2(mean), "std_dev": round2(std_dev), "threshold": threshold},
    }


def as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def period_bucket(value: Any, period: str) -> Optional[str]:
    """Bucket key for a date: ISO day, Sunday-start ISO week, or YYYY-MM."""
    day = as_date(value)
    if day is None:
        return None
    if period == "daily":
        return day.isoformat()
    if period == "weekly":
        # date.weekday(): Monday=0 ... Sunday=6
        week_start = day - timedelta(days=(day.weekday() + 1) % 7)
        return week_start.isoformat()
    return f"{day.year:04d}-{day.month:02d}"


class RowGroup(NamedTuple):
    values: List[float]
    row_count: int

    def aggregate(self, aggregation: str) -> float:
        return aggregate(self.values, aggregation, row_count=self.row_count)


def group_rows(rows: Iterable[Dict[str, Any]], key_fn, metric: str) -> Dict[Any, RowGroup]:
    """Group rows by ``key_fn(row)``, preserving first-seen key order.

    Null metric values are left out of ``values`` but still counted in ``row_count``.
    """
    values: Dict[Any, List[float]] = {}
    counts: Dict[Any, int] = {}
    for row in rows:
        key = key_fn(row)
        if key is None:
            continue
        bucket = values.setdefault(key, [])
        counts[key] = counts.get(key, 0) + 1
        if row.get(metric) is not None:
            bucket.append(to_float(row.get(metric)))
    return {key: RowGroup(values[key], counts[key]) for key in values}


def bucket_numeric(
    rows: Iterable[Dict[str, Any]],
    bucket_field: str,
    metric: str,
    aggregation: str,
    buckets: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Aggregate ``metric`` into the numeric ranges of ``bucket_field``; empty buckets are dropped."""
    def bucket_index(row: Dict[str, Any]) -> Optional[int]:
        raw = row.get(bucket_field)
        if raw is None:
            return None
        position = to_float(raw)
        for idx, bucket in enumerate(buckets):
            upper = bucket.get("max")
            if position >= bucket.get("min", 0) and (upper is None or position < upper):
                return idx
        return None

    grouped = group_rows(rows, bucket_index, metric)
    results = []
    for idx, bucket in enumerate(buckets):
        group = grouped.get(idx)
        if group is None:
            continue
        results.append({
            "group": bucket["label"],
            "value": group.aggregate(aggregation),
            "count": group.row_count,
        })
    return results
