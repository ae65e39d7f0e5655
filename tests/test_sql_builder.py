"""
SQL rendering tests.

The rendered queries are executed against an in-memory SQLite database through
SQLAlchemy and compared with the pandas engine on the same records.
"""

import pytest

from streamchurn.core.analysis import ChurnAnalysis, SqlQueryBuilder, build_catalog
from streamchurn.core.processing.records import records_to_frame
from streamchurn.db import Database

from conftest import make_user


@pytest.fixture
def catalog(config):
    return build_catalog(config["analyses"])


@pytest.fixture
def builder(bucketizer):
    return SqlQueryBuilder(bucketizer, table="users")


@pytest.fixture
def sqlite_db(random_users):
    db = Database("sqlite://")
    db.write_table(random_users, "users")
    yield db
    db.close()


class TestRendering:
    def test_case_expression(self, builder, bucketizer):
        sql = builder.case_expression(bucketizer.rule("ad_exposure"))
        assert sql == (
            "CASE WHEN ads_per_week <= 5 THEN 'Low Ads' "
            "WHEN ads_per_week > 5 AND ads_per_week <= 15 THEN 'Medium Ads' "
            "ELSE 'High Ads' END"
        )

    def test_ad_exposure_query(self, builder, catalog):
        sql = builder.render(catalog["ad_exposure_churn"])
        assert "WHERE subscription_tier = 'Free'" in sql
        assert "AS ad_exposure" in sql
        assert "ROUND(CAST(100.0 * SUM(CASE WHEN churned = TRUE THEN 1 ELSE 0 END) / COUNT(*) AS NUMERIC), 2)" in sql
        assert sql.rstrip().endswith("ORDER BY churn_rate_pct DESC, ad_exposure ASC;")

    def test_high_engagement_filters(self, builder, catalog):
        sql = builder.render(catalog["high_engagement_segment"])
        assert "WHERE listening_minutes_per_day >= 120\n  AND skip_rate < 20\n  AND churned = FALSE" in sql
        assert "GROUP BY subscription_tier, device" in sql

    def test_overview_wraps_global_aggregate(self, builder, catalog):
        sql = builder.render(catalog["dataset_overview"])
        assert "GROUP BY" not in sql
        assert "WHERE group_rows > 0" in sql

    def test_render_all(self, builder, catalog):
        assert set(builder.render_all(catalog)) == set(catalog)

    def test_write_sql_files(self, builder, catalog, tmp_path):
        paths = builder.write_sql_files(catalog, str(tmp_path))
        text = (tmp_path / "churn_rate_by_tier.sql").read_text(encoding="utf-8")
        assert text.startswith("-- Churn rate per subscription tier")
        assert paths["churn_rate_by_tier"] == str(tmp_path / "churn_rate_by_tier.sql")


def assert_same_table(actual, expected, spec):
    assert list(actual.columns) == list(expected.columns)
    assert len(actual) == len(expected)
    for column in spec.group_by:
        assert actual[column].tolist() == expected[column].tolist()
    for metric in spec.metrics:
        assert actual[metric.name].astype(float).tolist() == expected[metric.name].astype(float).tolist()


def run_both(users, config, name):
    db = Database("sqlite://")
    try:
        db.write_table(users, "users")
        analysis = ChurnAnalysis(users, config=config)
        return analysis.run_sql(db, names=[name])[name], analysis.run_analysis(name), analysis.spec(name)
    finally:
        db.close()


class TestExecution:
    # Boolean group keys come back from SQLite as 0/1, so those analyses are compared elsewhere
    @pytest.mark.parametrize("name", [
        "engagement_by_tier",
        "churn_rate_by_tier",
        "ad_exposure_churn",
        "churn_by_age_country",
        "high_engagement_segment",
        "dataset_overview",
    ])
    def test_sql_matches_engine(self, sample_users, config, name):
        actual, expected, spec = run_both(sample_users, config, name)
        assert_same_table(actual, expected, spec)

    @pytest.mark.parametrize("name", ["churn_rate_by_tier", "churn_by_age_country"])
    def test_sql_matches_engine_on_larger_set(self, random_users, config, name):
        actual, expected, spec = run_both(random_users, config, name)
        assert_same_table(actual, expected, spec)

    def test_half_way_values_round_up_in_both(self, config):
        users = records_to_frame([
            make_user(i, churned=(i == 1), listening_minutes_per_day=0.5 if i <= 16 else 0.0)
            for i in range(1, 33)
        ])
        actual, expected, spec = run_both(users, config, "dataset_overview")

        assert_same_table(actual, expected, spec)
        assert expected.loc[0, "churn_rate_pct"] == 3.13
        assert expected.loc[0, "avg_listening_time"] == 0.3

    def test_sql_file_roundtrip(self, builder, catalog, sqlite_db, tmp_path):
        paths = builder.write_sql_files(catalog, str(tmp_path))
        result = sqlite_db.execute_sql_file(paths["churn_rate_by_tier"])
        assert list(result.columns) == ["subscription_tier", "total_users", "churned_users", "churn_rate_pct"]
        assert result["total_users"].sum() == 500

    def test_empty_table_overview(self, sample_users, config):
        db = Database("sqlite://")
        try:
            db.write_table(sample_users.iloc[0:0], "users")
            analysis = ChurnAnalysis(sample_users.iloc[0:0], config=config)
            assert analysis.run_sql(db, names=["dataset_overview"])["dataset_overview"].empty
        finally:
            db.close()
