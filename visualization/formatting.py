"""Label and number formatting shared by chart titles and textual summaries."""
import re
from typing import Optional

CURRENCY_KEYWORDS = ("cost", "retail", "price", "spend")
PERCENT_KEYWORDS = ("percent", "rate", "ratio")


def humanize_metric_name(name: Optional[str]) -> str:
    """carrier_name -> Carrier Name"""
    text = (name or "").replace("_", " ").strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)


def determine_format(metric: Optional[str]) -> str:
    lowered = (metric or "").lower()
    if any(keyword in lowered for keyword in CURRENCY_KEYWORDS):
        return "currency"
    if any(keyword in lowered for keyword in PERCENT_KEYWORDS):
        return "percent"
    return "number"


def format_value(value: float, value_format: str) -> str:
    if value_format == "currency":
        return f"${value:,.2f}"
    if value_format == "percent":
        return f"{value:,.1f}%"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"
