# core/analysis/catalog.py
"""
Declarative analysis definitions.

Each analysis is data: optional pre-filter, bucket rules pulled in through the
group fields, group fields, metrics and a sort order. The Aggregator is the
only algorithm; the catalog only configures it.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from streamchurn.errors import ConfigurationError
from streamchurn.core.segment.bucket_rule import Bucketizer
from streamchurn.core.segment.metrics import FieldCondition, MetricSpec
from streamchurn.core.segment.aggregator import Aggregator


CHURNED = {"field": "churned", "op": "==", "value": True}

DEFAULT_CONFIG: Dict[str, Any] = {
    # Source column -> canonical column, applied by the DataLoader
    "column_map": {
        "subscription_type": "subscription_tier",
        "listening_time": "listening_minutes_per_day",
        "songs_played_per_day": "songs_per_day",
        "ads_listened_per_week": "ads_per_week",
        "is_churned": "churned",
        "device_type": "device",
    },
    "bucket_rules": {
        "age_group": {
            "field": "age",
            "description": "Age bands used for the country x age churn view",
            "buckets": [
                {"label": "<18", "max": 18, "max_inclusive": False},
                {"label": "18–24", "min": 18, "max": 25, "max_inclusive": False},
                {"label": "25–34", "min": 25, "max": 35, "max_inclusive": False},
                {"label": "35–44", "min": 35, "max": 45, "max_inclusive": False},
            ],
            "default": "45+",
        },
        "ad_exposure": {
            "field": "ads_per_week",
            "description": "Weekly ad load tiers for Free users",
            "buckets": [
                {"label": "Low Ads", "max": 5},
                {"label": "Medium Ads", "min": 5, "min_inclusive": False, "max": 15},
            ],
            "default": "High Ads",
        },
    },
    "analyses": {
        "engagement_by_tier": {
            "description": "Listening engagement per subscription tier",
            "group_by": ["subscription_tier"],
            "metrics": [
                {"name": "users", "kind": "count"},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
                {"name": "avg_songs_per_day", "kind": "mean", "field": "songs_per_day", "precision": 1},
                {"name": "avg_skip_rate", "kind": "mean", "field": "skip_rate", "precision": 2},
            ],
        },
        "churn_rate_by_tier": {
            "description": "Churn rate per subscription tier",
            "group_by": ["subscription_tier"],
            "metrics": [
                {"name": "total_users", "kind": "count"},
                {"name": "churned_users", "kind": "matches", "condition": CHURNED},
                {"name": "churn_rate_pct", "kind": "rate", "condition": CHURNED, "precision": 2},
            ],
            "sort_by": "churn_rate_pct",
        },
        "churned_vs_retained": {
            "description": "Behaviour of churned compared with retained users",
            "group_by": ["churned"],
            "metrics": [
                {"name": "users", "kind": "count"},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
                {"name": "avg_songs_per_day", "kind": "mean", "field": "songs_per_day", "precision": 1},
                {"name": "avg_skip_rate", "kind": "mean", "field": "skip_rate", "precision": 2},
                {"name": "avg_ads_per_week", "kind": "mean", "field": "ads_per_week", "precision": 1},
            ],
        },
        "ad_exposure_churn": {
            "description": "Churn by weekly ad exposure, Free tier only",
            "filters": [{"field": "subscription_tier", "op": "==", "value": "Free"}],
            "group_by": ["ad_exposure"],
            "metrics": [
                {"name": "users", "kind": "count"},
                {"name": "churn_rate_pct", "kind": "rate", "condition": CHURNED, "precision": 2},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
            ],
            "sort_by": "churn_rate_pct",
        },
        "offline_listening_churn": {
            "description": "Churn of offline listeners compared with online-only users",
            "group_by": ["offline_listening"],
            "metrics": [
                {"name": "users", "kind": "count"},
                {"name": "churn_rate_pct", "kind": "rate", "condition": CHURNED, "precision": 2},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
            ],
        },
        "churn_by_age_country": {
            "description": "Churn rate per country and age group",
            "group_by": ["country", "age_group"],
            "metrics": [
                {"name": "churn_rate_pct", "kind": "rate", "condition": CHURNED, "precision": 2},
            ],
            "sort_by": "churn_rate_pct",
        },
        "high_engagement_segment": {
            "description": "Retained heavy listeners with a low skip rate, by tier and device",
            "filters": [
                {"field": "listening_minutes_per_day", "op": ">=", "value": 120},
                {"field": "skip_rate", "op": "<", "value": 20},
                {"field": "churned", "op": "==", "value": False},
            ],
            "group_by": ["subscription_tier", "device"],
            "metrics": [
                {"name": "users", "kind": "count"},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
                {"name": "avg_skip_rate", "kind": "mean", "field": "skip_rate", "precision": 2},
            ],
            "sort_by": "users",
        },
        "dataset_overview": {
            "description": "Headline KPIs over the whole record set",
            "group_by": [],
            "metrics": [
                {"name": "total_users", "kind": "count"},
                {"name": "churned_users", "kind": "matches", "condition": CHURNED},
                {"name": "churn_rate_pct", "kind": "rate", "condition": CHURNED, "precision": 2},
                {"name": "avg_listening_time", "kind": "mean", "field": "listening_minutes_per_day", "precision": 1},
                {"name": "avg_skip_rate", "kind": "mean", "field": "skip_rate", "precision": 2},
            ],
        },
    },
    "output": {
        "save_results": False,
        "output_dir": None,
    },
}

STANDING_ANALYSES: Tuple[str, ...] = (
    "engagement_by_tier",
    "churn_rate_by_tier",
    "churned_vs_retained",
    "ad_exposure_churn",
    "offline_listening_churn",
    "churn_by_age_country",
    "high_engagement_segment",
)


def default_config() -> Dict[str, Any]:
    """Deep copy of the built-in configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


@dataclass(frozen=True)
class AnalysisSpec:
    """One named analysis: pre-filter, group fields, metrics and sort order."""
    name: str
    group_by: Tuple[str, ...]
    metrics: Tuple[MetricSpec, ...]
    filters: Tuple[FieldCondition, ...] = field(default_factory=tuple)
    sort_by: Optional[str] = None
    ascending: Optional[bool] = None
    description: str = ""

    @classmethod
    def from_config(cls, name: str, spec: Dict[str, Any]) -> "AnalysisSpec":
        if not isinstance(spec, dict):
            raise ConfigurationError(f"Analysis '{name}' must be a mapping")
        if not spec.get("metrics"):
            raise ConfigurationError(f"Analysis '{name}' defines no metrics")
        return cls(
            name=name,
            group_by=tuple(spec.get("group_by") or ()),
            metrics=tuple(MetricSpec.from_config(m) for m in spec["metrics"]),
            filters=tuple(FieldCondition.from_config(f) for f in spec.get("filters") or ()),
            sort_by=spec.get("sort_by"),
            ascending=spec.get("ascending"),
            description=spec.get("description", ""),
        )

    @property
    def columns(self) -> List[str]:
        return list(self.group_by) + [m.name for m in self.metrics]

    def aggregator(self, bucketizer: Bucketizer) -> Aggregator:
        return Aggregator(
            group_by=self.group_by,
            metrics=self.metrics,
            bucketizer=bucketizer,
            filters=self.filters,
            sort_by=self.sort_by,
            ascending=self.ascending,
        )


def build_catalog(section: Dict[str, Any]) -> Dict[str, AnalysisSpec]:
    """Build every analysis of the 'analyses' config section, in config order."""
    if not section:
        raise ConfigurationError("No analyses configured")
    return {name: AnalysisSpec.from_config(name, spec) for name, spec in section.items()}
