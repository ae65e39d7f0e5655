# streamchurn/core/__init__.py
"""
Core module initializer for StreamChurn.

Provides record loading, segmentation (bucketing + aggregation) and the
analysis catalog.
"""

from .processing import (
    UserRecord,
    DataLoader,
    validate_records,
    records_to_frame,
    frame_to_records,
)

from .segment import (
    RangePredicate,
    SetPredicate,
    BucketRule,
    Bucketizer,
    FieldCondition,
    MetricSpec,
    Aggregator,
)

from .analysis import (
    AnalysisSpec,
    ChurnAnalysis,
    SqlQueryBuilder,
    DataManager,
    DEFAULT_CONFIG,
    STANDING_ANALYSES,
    build_catalog,
)

__all__ = [
    # Loading data
    "UserRecord",
    "DataLoader",
    "validate_records",
    "records_to_frame",
    "frame_to_records",

    # Segmentation & metrics
    "RangePredicate",
    "SetPredicate",
    "BucketRule",
    "Bucketizer",
    "FieldCondition",
    "MetricSpec",
    "Aggregator",

    # Analyses
    "AnalysisSpec",
    "ChurnAnalysis",
    "SqlQueryBuilder",
    "DataManager",
    "DEFAULT_CONFIG",
    "STANDING_ANALYSES",
    "build_catalog",
]
