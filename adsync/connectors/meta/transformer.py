"""AdSync - Meta Insight → Metric Transformer.

Pure and synchronous: turns one RawInsight into the values stored for an
ad/day. Never raises on missing or malformed numbers.
"""

from typing import Any, Dict, List

from pydantic import BaseModel

from adsync.core.metric_registry import ACTION_FIELDS, REVENUE_TAGS
from adsync.models.remote_models import ActionRecord, RawInsight

RATIO_PRECISION = 2


class MetricValues(BaseModel):
    """Normalized metric set for one ad on one date."""

    date: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    purchases: int = 0
    add_to_cart: int = 0
    revenue: float = 0.0
    frequency: float = 0.0
    ctr: float = 0.0
    cpc: float = 0.0
    cpm: float = 0.0
    cpa: float = 0.0
    roas: float = 0.0


def _safe_float(value: Any) -> float:
    """Safely convert a value to float."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN and infinities count as malformed
    if result != result or result in (float("inf"), float("-inf")):
        return 0.0
    return result


def _safe_int(value: Any) -> int:
    return int(_safe_float(value))


def _ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    """numerator / denominator * scale, 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return round(numerator / denominator * scale, RATIO_PRECISION)


def sum_tagged(records: List[ActionRecord], tags: tuple[str, ...]) -> float:
    """Sum the values of the highest-priority tag present in `records`."""
    for tag in tags:
        matched = [r for r in records if r.action_type == tag]
        if matched:
            return sum(_safe_float(r.value) for r in matched)
    return 0.0


def extract_actions(insight: RawInsight) -> Dict[str, float]:
    """Action counts keyed by registry field. Unknown tags are ignored."""
    return {
        field: sum_tagged(insight.actions, tags) for field, tags in ACTION_FIELDS.items()
    }


def calculate(insight: RawInsight) -> MetricValues:
    """Compute the stored metric set (with derived ratios) for one insight row."""
    spend = _safe_float(insight.spend)
    impressions = _safe_int(insight.impressions)
    clicks = _safe_int(insight.clicks)

    actions = extract_actions(insight)
    purchases = int(actions.get("purchases", 0))
    add_to_cart = int(actions.get("add_to_cart", 0))
    conversions = purchases
    revenue = sum_tagged(insight.action_values, REVENUE_TAGS)

    return MetricValues(
        date=insight.date_start,
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        conversions=conversions,
        purchases=purchases,
        add_to_cart=add_to_cart,
        revenue=revenue,
        frequency=round(_safe_float(insight.frequency), RATIO_PRECISION),
        ctr=_ratio(clicks, impressions, 100),
        cpc=_ratio(spend, clicks),
        cpm=_ratio(spend, impressions, 1000),
        cpa=_ratio(spend, conversions),
        roas=_ratio(revenue, spend),
    )
