# core/processing/records.py
"""User record schema shared by the loader, the bucketizer and the aggregator."""

from dataclasses import dataclass, asdict, fields
from typing import Iterable, List

import pandas as pd  # type: ignore


@dataclass(frozen=True)
class UserRecord:
    """
    One cleaned user row.

    Attributes
    ----------
    user_id : unique user identifier
    subscription_tier : 'Free' or 'Premium'
    listening_minutes_per_day : average daily listening time in minutes
    songs_per_day : songs played per day
    skip_rate : share of skipped songs as a percentage (0-100)
    ads_per_week : ads heard per week, only meaningful on the Free tier
    offline_listening : whether the user listens offline
    churned : whether the user stopped using the service
    age : age in years
    country : country code
    device : device type (Mobile, Desktop, ...)
    """
    user_id: int
    subscription_tier: str
    listening_minutes_per_day: float
    songs_per_day: int
    skip_rate: float
    ads_per_week: int
    offline_listening: bool
    churned: bool
    age: int
    country: str
    device: str


RECORD_COLUMNS: List[str] = [f.name for f in fields(UserRecord)]

NUMERIC_COLUMNS: List[str] = [
    "listening_minutes_per_day",
    "songs_per_day",
    "skip_rate",
    "ads_per_week",
    "age",
]

BOOLEAN_COLUMNS: List[str] = ["offline_listening", "churned"]


def records_to_frame(records: Iterable[UserRecord]) -> pd.DataFrame:
    """Build a record frame with the canonical column order."""
    rows = [asdict(r) for r in records]
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def frame_to_records(df: pd.DataFrame) -> List[UserRecord]:
    """Convert the canonical columns of a frame back into UserRecord objects."""
    return [UserRecord(**row) for row in df[RECORD_COLUMNS].to_dict(orient="records")]
