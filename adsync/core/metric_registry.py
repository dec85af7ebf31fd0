"""AdSync - Metric & Action Registry.

Defines the metrics stored per ad/day and how Meta action tags feed them.
Supporting a new action tag is a registry change here; callers of the
transformer never change.
"""

from enum import Enum
from typing import Dict, Tuple


class MetricType(str, Enum):
    """How a metric is categorised."""

    VOLUME = "volume"  # Raw counts: impressions, clicks
    COST = "cost"  # Monetary: spend
    REVENUE = "revenue"  # Income: purchase value
    ACTION = "action"  # Counts extracted from the actions list
    DERIVED = "derived"  # Ratios computed by the transformer


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self, name: str, metric_type: MetricType, unit: str = "", description: str = ""
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


# ─────────────────────────────────────────────
# ACTION TAGS
# ─────────────────────────────────────────────

# Field -> action tags in priority order. Meta reports the same events under
# several aliases, so the first tag present in a row wins and the rest are
# not added on top. Tags not listed anywhere are ignored.
ACTION_FIELDS: Dict[str, Tuple[str, ...]] = {
    "purchases": (
        "purchase",
        "omni_purchase",
        "offsite_conversion.fb_pixel_purchase",
    ),
    "add_to_cart": (
        "add_to_cart",
        "omni_add_to_cart",
        "offsite_conversion.fb_pixel_add_to_cart",
    ),
}

# action_values entries that count as purchase revenue
REVENUE_TAGS: Tuple[str, ...] = ACTION_FIELDS["purchases"]


# ─────────────────────────────────────────────
# STORED METRICS
# ─────────────────────────────────────────────

METRICS: Dict[str, MetricDefinition] = {
    "spend": MetricDefinition("spend", MetricType.COST, "currency", "Total amount spent"),
    "impressions": MetricDefinition(
        "impressions", MetricType.VOLUME, "count", "Number of times ad was shown"
    ),
    "clicks": MetricDefinition("clicks", MetricType.VOLUME, "count", "Total clicks"),
    "frequency": MetricDefinition(
        "frequency", MetricType.VOLUME, "avg", "Average times ad shown per user"
    ),
    "purchases": MetricDefinition(
        "purchases", MetricType.ACTION, "count", "Purchase actions"
    ),
    "conversions": MetricDefinition(
        "conversions", MetricType.ACTION, "count", "Conversions (purchases)"
    ),
    "add_to_cart": MetricDefinition(
        "add_to_cart", MetricType.ACTION, "count", "Add-to-cart actions"
    ),
    "revenue": MetricDefinition(
        "revenue", MetricType.REVENUE, "currency", "Total purchase conversion value"
    ),
    "ctr": MetricDefinition("ctr", MetricType.DERIVED, "%", "Clicks / impressions x 100"),
    "cpc": MetricDefinition("cpc", MetricType.DERIVED, "currency", "Spend / clicks"),
    "cpm": MetricDefinition(
        "cpm", MetricType.DERIVED, "currency", "Spend / impressions x 1000"
    ),
    "cpa": MetricDefinition("cpa", MetricType.DERIVED, "currency", "Spend / conversions"),
    "roas": MetricDefinition("roas", MetricType.DERIVED, "ratio", "Revenue / spend"),
}


def metrics_by_type(metric_type: MetricType) -> list[MetricDefinition]:
    """Return all metrics of a given type."""
    return [m for m in METRICS.values() if m.metric_type == metric_type]
