# core/analysis/__init__.py

"""
Churn Analysis Catalog
======================

Standing analyses expressed as configuration over the segmentation engine.

Usage:
------
    from streamchurn.core.analysis import ChurnAnalysis

    analysis = ChurnAnalysis(users_df)
    results = analysis.run()
    results["churn_rate_by_tier"]

Individual Operations:
----------------------
    analysis.run_analysis("ad_exposure_churn")
    analysis.run_sharded("churn_by_age_country", shards=8)
    analysis.sql_queries()
    analysis.save_results()
"""

from .catalog import AnalysisSpec, DEFAULT_CONFIG, STANDING_ANALYSES, build_catalog, default_config
from .sql_builder import SqlQueryBuilder
from .data_manager import DataManager
from .churn_analysis import ChurnAnalysis

__all__ = [
    'AnalysisSpec',
    'DEFAULT_CONFIG',
    'STANDING_ANALYSES',
    'build_catalog',
    'default_config',
    'SqlQueryBuilder',
    'DataManager',
    'ChurnAnalysis',
]
