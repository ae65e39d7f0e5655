# streamchurn/db.py
# type: ignore
import os
import logging
from typing import Optional, Union

import pandas as pd  # type: ignore
import sqlalchemy as sa  # type: ignore
from sqlalchemy.exc import SQLAlchemyError  # type: ignore
from sqlalchemy.engine import URL
from dotenv import load_dotenv

load_dotenv()  # Loads DB_* variables from .env

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, url: Optional[Union[str, URL]] = None):
        self._url = url
        self._engine = None
        self._connection = None
        self._connect()

    @staticmethod
    def url_from_env() -> URL:
        """Build the PostgreSQL URL from DB_* environment variables."""
        return URL.create(
            drivername="postgresql",
            username=os.getenv("DB_USER"),
            password=os.getenv("DB_PASSWORD"),
            host=os.getenv("DB_HOST"),
            database=os.getenv("DB_NAME"),
            query={"sslmode": os.getenv("DB_SSLMODE", "require")}
        )

    def _connect(self):
        """
        Opens the database connection.
        Without an explicit URL the credentials are read from environment variables.
        """
        try:
            db_url = self._url or self.url_from_env()
            self._engine = sa.create_engine(db_url, pool_pre_ping=True)
            self._connection = self._engine.connect().execution_options(isolation_level="AUTOCOMMIT")
            logger.info(f"✅ Connected to database ({self._engine.dialect.name}).")
        except SQLAlchemyError as e:
            logger.error(f"❌ Connection error: {e}")
            self._engine = None
            self._connection = None

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _require_connection(self):
        if not self._connection:
            raise ConnectionError("⚠️ No active database connection.")

    def execute_query(self, query: str) -> pd.DataFrame:
        """
        Runs a SQL query and returns the result as a DataFrame.
        """
        self._require_connection()
        try:
            df = pd.read_sql(sa.text(query), self._connection)
        except SQLAlchemyError as e:
            logger.error(f"❌ Query error: {e}")
            raise
        logger.info(f"✅ Query succeeded. {len(df)} rows fetched.")
        return df

    def execute_sql_file(self, sql_file_path: str) -> pd.DataFrame:
        """
        Runs a SQL file and returns the result as a DataFrame.
        """
        if not os.path.exists(sql_file_path):
            raise FileNotFoundError(f"⚠️ SQL file not found: {sql_file_path}")
        with open(sql_file_path, "r", encoding="utf-8") as file:
            sql_query = file.read()
        logger.info(f"📄 Running SQL file: {sql_file_path}")
        return self.execute_query(sql_query)

    def write_table(self, df: pd.DataFrame, table_name: str, if_exists: str = "replace") -> int:
        """
        Writes a DataFrame to a table, replacing it by default.
        """
        self._require_connection()
        try:
            df.to_sql(table_name, self._connection, if_exists=if_exists, index=False)
        except SQLAlchemyError as e:
            logger.error(f"❌ Write error for table '{table_name}': {e}")
            raise
        logger.info(f"💾 Wrote {len(df)} rows to table '{table_name}'.")
        return len(df)

    def close(self):
        """
        Closes the database connection.
        """
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("🔒 Connection closed.")
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
