# core/processing/load_data.py
"""Load the cleaned user record set from CSV or the database and check its shape."""

import os
import logging
from typing import Dict, Optional

import pandas as pd  # type: ignore
from pandas.api import types as ptypes  # type: ignore

from streamchurn.db import Database
from streamchurn.errors import EmptyInputError, InvalidFieldError
from streamchurn.utils import get_path
from .records import RECORD_COLUMNS, BOOLEAN_COLUMNS, NUMERIC_COLUMNS

logger = logging.getLogger(__name__)

SKIP_RATE_SCALES = ("auto", "fraction", "percent")


def validate_records(df: pd.DataFrame, allow_empty: bool = True) -> None:
    """
    Check the cleaning preconditions the engine relies on.

    Raises
    ------
    InvalidFieldError
        A canonical column is missing
    ValueError
        Nulls in canonical columns, duplicate user ids, non-numeric or
        non-boolean columns
    EmptyInputError
        No rows while allow_empty is False
    """
    for column in RECORD_COLUMNS:
        if column not in df.columns:
            raise InvalidFieldError(column, df.columns, context="user records")

    if df.empty:
        if not allow_empty:
            raise EmptyInputError("❌ The record set has no rows.")
        return

    nulls = df[RECORD_COLUMNS].isnull().sum()
    nulls = nulls[nulls > 0]
    if not nulls.empty:
        raise ValueError(f"❌ Null values in cleaned records: {nulls.to_dict()}")

    duplicated = df["user_id"].duplicated()
    if duplicated.any():
        sample = df.loc[duplicated, "user_id"].head(5).tolist()
        raise ValueError(f"❌ {int(duplicated.sum())} duplicate user_id values, e.g. {sample}")

    for column in NUMERIC_COLUMNS:
        if not ptypes.is_numeric_dtype(df[column]) or ptypes.is_bool_dtype(df[column]):
            raise ValueError(f"❌ Column '{column}' must be numeric, got {df[column].dtype}")
    for column in BOOLEAN_COLUMNS:
        if not ptypes.is_bool_dtype(df[column]):
            raise ValueError(f"❌ Column '{column}' must be boolean, got {df[column].dtype}")


class DataLoader:
    def __init__(
        self,
        db: Optional[Database] = None,
        column_map: Optional[Dict[str, str]] = None,
        skip_rate_scale: str = "auto",
    ):
        """
        Initializes the DataLoader.

        Args:
            db (Database): Optional database; created from the environment on first use.
            column_map (dict): Source column name -> canonical column name.
            skip_rate_scale (str): 'fraction' (0-1), 'percent' (0-100) or 'auto'.
        """
        if skip_rate_scale not in SKIP_RATE_SCALES:
            raise ValueError(f"❌ Invalid skip_rate_scale '{skip_rate_scale}'. Allowed: {SKIP_RATE_SCALES}")
        self._db = db
        self.column_map = dict(column_map or {})
        self.skip_rate_scale = skip_rate_scale

    @property
    def db(self) -> Database:
        if self._db is None:
            self._db = Database()
        return self._db

    def load_csv(self, path: Optional[str] = None, table_name: str = "users", allow_empty: bool = True) -> pd.DataFrame:
        """
        Loads the record set from a CSV file (default: data/csv/raw/<table_name>.csv).
        """
        file_path = path or os.path.join(get_path("raw"), f"{table_name}.csv")
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"❌ CSV not found: {file_path}")

        logger.info(f"📁 Loading records from CSV: {file_path}")
        df = pd.read_csv(file_path)
        logger.info(f"✅ CSV loaded. Rows: {len(df)}")
        return self.prepare(df, allow_empty=allow_empty)

    def load_table(self, table_name: str = "users", allow_empty: bool = True) -> pd.DataFrame:
        """
        Loads the record set directly from a database table.
        """
        logger.info(f"🌐 Loading table '{table_name}' from the database...")
        df = self.db.execute_query(f"SELECT * FROM {table_name};")
        return self.prepare(df, allow_empty=allow_empty)

    def load_sql_file(self, sql_file_path: str, allow_empty: bool = True) -> pd.DataFrame:
        """
        Loads the record set with the query stored in a SQL file.
        """
        df = self.db.execute_sql_file(sql_file_path)
        return self.prepare(df, allow_empty=allow_empty)

    def prepare(self, df: pd.DataFrame, allow_empty: bool = True) -> pd.DataFrame:
        """
        Renames source columns, converts 0/1 flags and the skip rate scale,
        then validates the result. The input frame is not modified.
        """
        out = df.rename(columns=self.column_map)

        for column in BOOLEAN_COLUMNS:
            if column in out.columns and ptypes.is_integer_dtype(out[column]):
                if not out[column].isin([0, 1]).all():
                    raise ValueError(f"❌ Column '{column}' holds values other than 0/1")
                out[column] = out[column].astype(bool)

        if "skip_rate" in out.columns and not out.empty:
            out["skip_rate"] = self._skip_rate_as_percent(out["skip_rate"])

        validate_records(out, allow_empty=allow_empty)
        logger.info(f"✅ Records ready: {len(out):,} users, {len(out.columns)} columns")
        return out

    def _skip_rate_as_percent(self, series: pd.Series) -> pd.Series:
        scale = self.skip_rate_scale
        if scale == "auto":
            scale = "fraction" if series.dropna().le(1).all() else "percent"
        if scale == "fraction":
            logger.info("   ➡️ skip_rate given as a fraction, converted to percent")
            return series * 100
        return series
