import json
from decimal import Decimal

import pytest

from tool_executor.normalize import (
    normalize_field_exploration,
    normalize_grouping,
    to_float,
    unwrap_rpc_payload,
)

ROWS = [{"name": "FedEx", "value": 1200.5, "count": 10}, {"name": "UPS", "value": 800, "count": 7}]
EXPECTED_GROUPS = [
    {"group": "FedEx", "value": 1200.5, "count": 10},
    {"group": "UPS", "value": 800.0, "count": 7},
]


@pytest.mark.parametrize("raw", [
    {"results": ROWS},
    json.dumps({"results": ROWS}),
    [{"preview_grouping": {"results": ROWS}}],
    {"preview_grouping": {"results": ROWS}},
    {"preview_grouping": json.dumps({"results": ROWS})},
    ROWS,
    {"data": {"results": ROWS}},
])
def test_grouping_envelopes(raw):
    """Every observed envelope normalizes to the same groups"""
    result = normalize_grouping(raw)

    assert result["groups"] == EXPECTED_GROUPS
    assert result["total_groups"] == 2


def test_grouping_with_groups_key_and_total():
    raw = {"groups": [{"group": None, "value": "12.5", "count": "3"}], "total_groups": 40}

    result = normalize_grouping(raw)

    assert result == {"groups": [{"group": "Unknown", "value": 12.5, "count": 3}], "total_groups": 40}


def test_grouping_keeps_secondary_group():
    raw = {"results": [{"name": "FedEx", "secondary": "LTL", "value": 1, "count": 1}]}

    assert normalize_grouping(raw)["groups"][0]["secondary_group"] == "LTL"


@pytest.mark.parametrize("raw", [None, "", "not json", 42, {"results": "nope"}])
def test_grouping_with_unusable_payload(raw):
    assert normalize_grouping(raw) == {"groups": [], "total_groups": 0}


def test_unwrap_decodes_bytes():
    assert unwrap_rpc_payload(b'{"a": 1}') == {"a": 1}


def test_field_exploration_variants():
    raw = {
        "explore_single_field": {
            "total_count": 200,
            "populated_count": 150,
            "unique_count": 3,
            "top_values": [{"value": "LTL", "count": 100}, {"value": "FTL", "count": 40}, {"value": None, "count": 10}],
        }
    }

    result = normalize_field_exploration(raw, "mode_name")

    assert result["field_name"] == "mode_name"
    assert result["coverage_percent"] == 75.0
    assert result["unique_count"] == 3
    assert result["values"] == [
        {"value": "LTL", "count": 100},
        {"value": "FTL", "count": 40},
        {"value": "Unknown", "count": 10},
    ]


def test_field_exploration_uses_reported_coverage():
    raw = {"total_count": 10, "populated_percent": 33.3, "sample_values": ["a", "b"]}

    result = normalize_field_exploration(raw, "status_name")

    assert result["coverage_percent"] == 33.3
    assert result["values"] == [{"value": "a", "count": 0}, {"value": "b", "count": 0}]
    assert result["unique_count"] == 2


def test_to_float():
    assert to_float(None) == 0.0
    assert to_float("12.5") == 12.5
    assert to_float(Decimal("3.25")) == 3.25
    assert to_float("abc") == 0.0
    assert to_float(True) == 0.0
