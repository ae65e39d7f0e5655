# core/analysis/churn_analysis.py

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd  # type: ignore

from streamchurn.db import Database
from streamchurn.errors import ConfigurationError
from streamchurn.utils import get_path, load_config
from streamchurn.core.segment.aggregator import Aggregator
from streamchurn.core.segment.bucket_rule import Bucketizer
from streamchurn.core.processing.load_data import DataLoader
from .catalog import AnalysisSpec, build_catalog, default_config
from .data_manager import DataManager
from .sql_builder import SqlQueryBuilder

logger = logging.getLogger(__name__)


class ChurnAnalysis:
    """
    Churn analysis orchestrator.
    Coordinates:
    - Configuration loading (bucket rules and the analysis catalog)
    - Up-front validation of every requested analysis
    - Aggregation, in one pass, sharded, or inside the database
    - Result export
    """

    REQUIRED_CONFIG_SECTIONS = ["bucket_rules", "analyses"]

    def __init__(
        self,
        users: pd.DataFrame,
        config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
    ) -> None:
        if users.empty:
            logger.warning("⚠️ Input DataFrame is empty; every analysis will return an empty table.")

        self.df = users.copy()
        self.config = self.resolve_config(config, config_file)

        self.bucketizer = Bucketizer.from_config(self.config["bucket_rules"])
        self.catalog: Dict[str, AnalysisSpec] = build_catalog(self.config["analyses"])
        self.results: Dict[str, pd.DataFrame] = {}

        self._print_initialization_summary()

    # ---------------- Configuration ----------------

    @classmethod
    def resolve_config(cls, config: Optional[Dict[str, Any]] = None, config_file: Optional[str] = None) -> Dict[str, Any]:
        """Explicit dict first, then the YAML file, then the built-in defaults."""
        if config is None:
            config = load_config(config_file)
            if config is None:
                logger.warning("⚠️ Using default configuration...")
                config = default_config()
            else:
                logger.info("✅ Configuration loaded successfully")

        # If YAML has a top-level 'churn_analysis' key, unwrap it
        if "churn_analysis" in config:
            config = config["churn_analysis"]

        for section in cls.REQUIRED_CONFIG_SECTIONS:
            if section not in config:
                raise ConfigurationError(f"Missing required configuration section: {section}")
        return config

    def _print_initialization_summary(self) -> None:
        logger.info("✅ ChurnAnalysis initialized")
        logger.info(f"   - Total users: {len(self.df):,}")
        logger.info(f"   - Bucket rules: {len(self.bucketizer.names)}")
        for name in self.bucketizer.names:
            logger.info(f"     {name} = {self.bucketizer.rule(name).describe()}")
        logger.info(f"   - Analyses: {len(self.catalog)}")

    @classmethod
    def from_csv(
        cls,
        path: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
    ) -> "ChurnAnalysis":
        """Load the record set with the configured column map and build the analysis."""
        config = cls.resolve_config(config, config_file)
        loader = DataLoader(column_map=config.get("column_map"))
        return cls(loader.load_csv(path), config=config)

    # ---------------- Catalog access ----------------

    @property
    def analysis_names(self) -> List[str]:
        return list(self.catalog)

    def spec(self, name: str) -> AnalysisSpec:
        try:
            return self.catalog[name]
        except KeyError:
            raise ConfigurationError(f"Unknown analysis '{name}'. Known: {self.analysis_names}") from None

    def aggregator(self, name: str) -> Aggregator:
        return self.spec(name).aggregator(self.bucketizer)

    def validate(self, names: Optional[Sequence[str]] = None) -> Dict[str, Aggregator]:
        """Build and check every requested analysis before any of them runs."""
        aggregators = {}
        for name in names if names is not None else self.analysis_names:
            aggregator = self.aggregator(name)
            aggregator.validate(self.df.columns)
            aggregators[name] = aggregator
        return aggregators

    # ---------------- Pipeline ----------------

    def run(
        self,
        names: Optional[Sequence[str]] = None,
        save: Optional[bool] = None,
        output_dir: Optional[str] = None,
    ) -> Dict[str, pd.DataFrame]:
        """
        Execute the requested analyses (all by default).

        Nothing is returned or saved unless every analysis succeeds.
        """
        logger.info("=" * 80)
        logger.info("🚀 CHURN SEGMENTATION ANALYSIS")
        logger.info("=" * 80)

        aggregators = self.validate(names)

        results = {}
        for step, (name, aggregator) in enumerate(aggregators.items(), start=1):
            logger.info(f"[STEP {step}] {name}...")
            results[name] = aggregator.run(self.df)
            logger.info(f"   ✅ {len(results[name]):,} groups")

        self.results = results

        output = self.config.get("output") or {}
        if save is None:
            save = output.get("save_results", False)
        if save:
            self.save_results(results, output_dir or output.get("output_dir"))

        self._print_final_summary(results)
        return results

    def run_analysis(self, name: str) -> pd.DataFrame:
        """Run a single analysis."""
        return self.aggregator(name).run(self.df)

    def run_sharded(self, name: str, shards: int = 4, max_workers: Optional[int] = None) -> pd.DataFrame:
        """Run a single analysis over concurrent shards; same table as run_analysis."""
        return self.aggregator(name).run_sharded(self.df, shards=shards, max_workers=max_workers)

    def sql_queries(self, table: str = "users") -> Dict[str, str]:
        return SqlQueryBuilder(self.bucketizer, table=table).render_all(self.catalog)

    def run_sql(
        self,
        database: Database,
        table: str = "users",
        names: Optional[Sequence[str]] = None,
    ) -> Dict[str, pd.DataFrame]:
        """Execute the analyses as SQL inside the database holding the user table."""
        builder = SqlQueryBuilder(self.bucketizer, table=table)
        selected = [self.spec(n) for n in (names if names is not None else self.analysis_names)]
        queries = {spec.name: builder.render(spec) for spec in selected}

        results = {}
        for name, query in queries.items():
            logger.info(f"📄 Running SQL for {name}")
            results[name] = database.execute_query(query)
        return results

    def bucket_distribution(self, rule_name: str) -> pd.DataFrame:
        return self.bucketizer.distribution(self.df, rule_name)

    def save_results(
        self,
        results: Optional[Dict[str, pd.DataFrame]] = None,
        output_dir: Optional[str] = None,
    ) -> Dict[str, str]:
        results = results if results is not None else self.results
        if not results:
            raise ValueError("❌ No results to save. Run the analyses first.")
        manager = DataManager(output_dir or get_path("results"))
        return manager.save_all_results(results, self.catalog)

    def _print_final_summary(self, results: Dict[str, pd.DataFrame]) -> None:
        logger.info("=" * 80)
        logger.info("🎉 ANALYSIS COMPLETE!")
        logger.info("=" * 80)
        for name, table in results.items():
            logger.info(f"   - {name}: {len(table):,} rows")
        logger.info("=" * 80)
