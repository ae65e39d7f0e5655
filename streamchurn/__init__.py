# streamchurn/__init__.py
"""
StreamChurn Package
"""
__version__ = "0.1.0"

from .db import Database
from .errors import (
    ChurnAnalyticsError,
    ConfigurationError,
    InvalidFieldError,
    EmptyInputError,
)
from .utils import (
    # Directory paths
    project_root,
    config_path,
    raw_data_path,
    processed_data_path,
    results_path,
    sql_path,
    get_path,

    # Config
    load_config,
    load_yaml,
)

from .core import (
    # Loading data
    UserRecord,
    DataLoader,
    validate_records,
    records_to_frame,

    # Segmentation & metrics
    RangePredicate,
    SetPredicate,
    BucketRule,
    Bucketizer,
    FieldCondition,
    MetricSpec,
    Aggregator,

    # Analyses
    AnalysisSpec,
    ChurnAnalysis,
    SqlQueryBuilder,
    DataManager,
    DEFAULT_CONFIG,
    STANDING_ANALYSES,
)


__all__ = [
    # Database
    "Database",

    # Errors
    "ChurnAnalyticsError",
    "ConfigurationError",
    "InvalidFieldError",
    "EmptyInputError",

    # Paths
    "project_root",
    "config_path",
    "raw_data_path",
    "processed_data_path",
    "results_path",
    "sql_path",
    "get_path",

    # Config
    "load_config",
    "load_yaml",

    # Loading data
    "UserRecord",
    "DataLoader",
    "validate_records",
    "records_to_frame",

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
]
