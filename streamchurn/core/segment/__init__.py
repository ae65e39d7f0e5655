# core/segment/__init__.py

"""
Segmentation & Metrics Engine
=============================

Rule-based bucketing of user fields and grouped metric aggregation.

Main Components:
----------------
- BucketRule / Bucketizer: ordered first-match-wins labelling (age group, ad exposure)
- FieldCondition: pre-filters and rate conditions
- MetricSpec: count, mean, rate and matches reducers
- Aggregator: grouping, partial aggregates, sharded execution, ordering

Usage:
------
    from streamchurn.core.segment import Aggregator, FieldCondition, metrics

    aggregator = Aggregator(
        group_by=["ad_exposure"],
        metrics=[metrics.count(), metrics.churn_rate()],
        bucketizer=bucketizer,  # e.g. Bucketizer.from_config(config["bucket_rules"])
        filters=[FieldCondition("subscription_tier", "==", "Free")],
        sort_by="churn_rate_pct",
    )
    table = aggregator.run(users_df)
"""

from .bucket_rule import RangePredicate, SetPredicate, BucketRule, Bucketizer
from .metrics import FieldCondition, MetricSpec
from .aggregator import Aggregator

__all__ = [
    'RangePredicate',
    'SetPredicate',
    'BucketRule',
    'Bucketizer',
    'FieldCondition',
    'MetricSpec',
    'Aggregator',
]
