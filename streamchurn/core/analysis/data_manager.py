# core/analysis/data_manager.py

import os
import logging
from typing import Dict, Optional

import pandas as pd  # type: ignore

from .catalog import AnalysisSpec

logger = logging.getLogger(__name__)


class DataManager:
    """
    Handles saving of analysis result tables.
    """

    SUMMARY_FILE = "analysis_summary.csv"

    def __init__(self, output_dir: str):
        """
        Initialize data manager.

        Parameters
        ----------
        output_dir : str
            Directory path for saving output files
        """
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)

    def save_all_results(
        self,
        results: Dict[str, pd.DataFrame],
        catalog: Optional[Dict[str, AnalysisSpec]] = None,
    ) -> Dict[str, str]:
        """
        Save every result table as '<analysis>.csv' plus a run summary.

        Parameters
        ----------
        results : Dict[str, pd.DataFrame]
            Result tables keyed by analysis name
        catalog : Dict[str, AnalysisSpec], optional
            Definitions used, for the descriptions in the summary

        Returns
        -------
        Dict[str, str]
            Paths of the written files keyed by analysis name
        """
        logger.info("[SAVE] Writing analysis result tables...")

        paths = {name: self._save_table(name, df) for name, df in results.items()}
        paths["__summary__"] = self._save_summary(results, catalog or {})

        logger.info(f"💾 ALL FILES SAVED TO: {self.output_dir}")
        return paths

    def _save_table(self, name: str, df: pd.DataFrame) -> str:
        path = os.path.join(self.output_dir, f"{name}.csv")
        df.to_csv(path, index=False)
        logger.info(f"   ✅ Saved {name}: {len(df):,} rows")
        return path

    def _save_summary(self, results: Dict[str, pd.DataFrame], catalog: Dict[str, AnalysisSpec]) -> str:
        """Save one line per analysis with its row count and description"""
        path = os.path.join(self.output_dir, self.SUMMARY_FILE)
        summary = pd.DataFrame([
            {
                "analysis": name,
                "rows": len(df),
                "description": catalog[name].description if name in catalog else "",
            }
            for name, df in results.items()
        ], columns=["analysis", "rows", "description"])
        summary.to_csv(path, index=False)
        logger.info(f"   ✅ Saved run summary: {path}")
        return path
