"""
Pytest configuration and shared fixtures for the streamchurn tests.

Fixtures:
- sample_users: small hand-written record set with known per-group results
- random_users: larger seeded record set for property checks
- bucketizer: standing bucket rules from the built-in configuration
"""

from typing import List

import numpy as np
import pandas as pd
import pytest

from streamchurn.core.analysis.catalog import default_config
from streamchurn.core.processing.records import UserRecord, records_to_frame
from streamchurn.core.segment.bucket_rule import Bucketizer


def make_user(user_id: int, **overrides) -> UserRecord:
    values = dict(
        user_id=user_id,
        subscription_tier="Free",
        listening_minutes_per_day=60.0,
        songs_per_day=20,
        skip_rate=30.0,
        ads_per_week=10,
        offline_listening=False,
        churned=False,
        age=30,
        country="US",
        device="Mobile",
    )
    values.update(overrides)
    return UserRecord(**values)


@pytest.fixture
def sample_records() -> List[UserRecord]:
    return [
        make_user(1, subscription_tier="Free", ads_per_week=3, churned=False, age=17,
                  listening_minutes_per_day=100.0, skip_rate=10.0, country="US"),
        make_user(2, subscription_tier="Free", ads_per_week=20, churned=True, age=24,
                  listening_minutes_per_day=50.0, skip_rate=40.0, country="US"),
        make_user(3, subscription_tier="Free", ads_per_week=10, churned=True, age=40,
                  listening_minutes_per_day=80.0, skip_rate=35.0, country="DE"),
        make_user(4, subscription_tier="Free", ads_per_week=12, churned=False, age=52,
                  listening_minutes_per_day=130.0, skip_rate=15.0, country="DE", device="Desktop"),
        make_user(5, subscription_tier="Premium", ads_per_week=0, churned=False, age=29,
                  listening_minutes_per_day=200.0, skip_rate=5.0, country="US", offline_listening=True),
        make_user(6, subscription_tier="Premium", ads_per_week=0, churned=False, age=33,
                  listening_minutes_per_day=150.0, skip_rate=12.5, country="DE", offline_listening=True,
                  device="Desktop"),
        make_user(7, subscription_tier="Premium", ads_per_week=0, churned=True, age=45,
                  listening_minutes_per_day=40.0, skip_rate=55.0, country="US"),
        make_user(8, subscription_tier="Premium", ads_per_week=0, churned=False, age=19,
                  listening_minutes_per_day=125.0, skip_rate=19.0, country="US", offline_listening=True),
    ]


@pytest.fixture
def sample_users(sample_records) -> pd.DataFrame:
    return records_to_frame(sample_records)


@pytest.fixture
def random_users() -> pd.DataFrame:
    rng = np.random.RandomState(42)
    n = 500
    return pd.DataFrame({
        "user_id": np.arange(1, n + 1),
        "subscription_tier": rng.choice(["Free", "Premium"], size=n),
        "listening_minutes_per_day": rng.randint(10, 300, size=n).astype(float),
        "songs_per_day": rng.randint(1, 100, size=n),
        "skip_rate": rng.randint(0, 60, size=n).astype(float),
        "ads_per_week": rng.randint(0, 40, size=n),
        "offline_listening": rng.rand(n) < 0.4,
        "churned": rng.rand(n) < 0.25,
        "age": rng.randint(13, 70, size=n),
        "country": rng.choice(["US", "DE", "IN", "BR", "UK"], size=n),
        "device": rng.choice(["Mobile", "Desktop", "Web"], size=n),
    })


@pytest.fixture
def config() -> dict:
    return default_config()


@pytest.fixture
def bucketizer(config) -> Bucketizer:
    return Bucketizer.from_config(config["bucket_rules"])
