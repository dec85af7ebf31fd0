"""Unit tests for the insight → metric transformer.

WHAT: Derived ratios, zero-denominator guards, action tag matching
WHY: Stored metrics must be deterministic and never NaN/Infinity
"""

import math

import pytest

from adsync.connectors.meta.transformer import calculate, sum_tagged
from adsync.core.metric_registry import MetricType, metrics_by_type
from adsync.models.remote_models import ActionRecord, RawInsight

DERIVED = [m.name for m in metrics_by_type(MetricType.DERIVED)]


def _insight(**overrides) -> RawInsight:
    row = {
        "ad_id": "ad-a",
        "date_start": "2026-10-11",
        "date_stop": "2026-10-18",
        "spend": "100",
        "impressions": "1000",
        "clicks": "10",
        "actions": [{"action_type": "purchase", "value": "1"}],
        "action_values": [{"action_type": "purchase", "value": "300"}],
    }
    row.update(overrides)
    return RawInsight.model_validate(row)


def test_reference_scenario():
    m = calculate(_insight())

    assert m.date == "2026-10-11"
    assert m.ctr == 1.00
    assert m.cpc == 10.00
    assert m.cpm == 100.00
    assert m.roas == 3.00
    assert m.cpa == 100.00
    assert m.purchases == 1
    assert m.conversions == 1
    assert m.revenue == 300.0


def test_zero_impressions_gives_zero_ctr_and_cpm():
    m = calculate(_insight(impressions="0", clicks="0"))
    assert m.ctr == 0
    assert m.cpm == 0
    assert m.cpc == 0


def test_zero_clicks_gives_zero_cpc():
    assert calculate(_insight(clicks="0")).cpc == 0


def test_zero_conversions_gives_zero_cpa():
    m = calculate(_insight(actions=[]))
    assert m.conversions == 0
    assert m.cpa == 0


def test_zero_spend_gives_zero_roas():
    m = calculate(_insight(spend="0"))
    assert m.roas == 0
    assert m.cpc == 0


def test_missing_and_malformed_numbers_fall_back_to_zero():
    insight = RawInsight.model_validate(
        {
            "date_start": "2026-10-11",
            "spend": "abc",
            "impressions": None,
            "actions": None,
            "action_values": [{"action_type": "purchase", "value": "NaN"}],
        }
    )
    m = calculate(insight)

    assert m.spend == 0
    assert m.impressions == 0
    assert m.clicks == 0
    assert m.revenue == 0
    for name in DERIVED:
        value = getattr(m, name)
        assert value == 0
        assert math.isfinite(value)


def test_unknown_action_tags_are_ignored():
    m = calculate(
        _insight(
            actions=[
                {"action_type": "link_click", "value": "40"},
                {"action_type": "some_future_action", "value": "7"},
                {"action_type": "add_to_cart", "value": "4"},
            ]
        )
    )
    assert m.purchases == 0
    assert m.add_to_cart == 4


def test_purchase_aliases_are_not_double_counted():
    m = calculate(
        _insight(
            actions=[
                {"action_type": "omni_purchase", "value": "2"},
                {"action_type": "purchase", "value": "2"},
            ],
            action_values=[
                {"action_type": "omni_purchase", "value": "200"},
                {"action_type": "purchase", "value": "200"},
            ],
        )
    )
    assert m.purchases == 2
    assert m.revenue == 200
    assert m.roas == 2.0


def test_alias_used_when_primary_tag_absent():
    records = [ActionRecord(action_type="omni_purchase", value="5")]
    assert sum_tagged(records, ("purchase", "omni_purchase")) == 5


@pytest.mark.parametrize(
    "spend,impressions,clicks,expected_ctr,expected_cpc",
    [
        ("33.333", "3000", "7", 0.23, 4.76),
        ("1", "3", "3", 100.0, 0.33),
    ],
)
def test_ratios_rounded_to_two_places(spend, impressions, clicks, expected_ctr, expected_cpc):
    m = calculate(_insight(spend=spend, impressions=impressions, clicks=clicks))
    assert m.ctr == expected_ctr
    assert m.cpc == expected_cpc


def test_numeric_payload_values_are_accepted():
    m = calculate(_insight(spend=50, impressions=500, clicks=5, frequency=1.234))
    assert m.cpc == 10.0
    assert m.frequency == 1.23
