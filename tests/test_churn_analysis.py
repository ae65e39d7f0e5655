import logging
import os

import pandas as pd
import pytest
import yaml

from streamchurn.core.analysis import ChurnAnalysis, STANDING_ANALYSES
from streamchurn.errors import ConfigurationError, InvalidFieldError


@pytest.fixture
def analysis(sample_users, config) -> ChurnAnalysis:
    return ChurnAnalysis(sample_users, config=config)


class TestStandingAnalyses:
    def test_engagement_by_tier(self, analysis):
        result = analysis.run_analysis("engagement_by_tier")
        assert result["subscription_tier"].tolist() == ["Free", "Premium"]
        assert result["users"].tolist() == [4, 4]
        assert result["avg_listening_time"].tolist() == [90.0, 128.8]
        assert result["avg_songs_per_day"].tolist() == [20.0, 20.0]

    def test_churn_rate_by_tier(self, analysis):
        result = analysis.run_analysis("churn_rate_by_tier")
        assert result.to_dict(orient="records") == [
            {"subscription_tier": "Free", "total_users": 4, "churned_users": 2, "churn_rate_pct": 50.0},
            {"subscription_tier": "Premium", "total_users": 4, "churned_users": 1, "churn_rate_pct": 25.0},
        ]

    def test_churned_vs_retained(self, analysis):
        result = analysis.run_analysis("churned_vs_retained")
        assert result["churned"].tolist() == [False, True]
        assert result["users"].tolist() == [5, 3]
        assert result["avg_ads_per_week"].tolist() == [3.0, 10.0]

    def test_ad_exposure_churn(self, analysis):
        result = analysis.run_analysis("ad_exposure_churn")
        assert result.to_dict(orient="records") == [
            {"ad_exposure": "High Ads", "users": 1, "churn_rate_pct": 100.0, "avg_listening_time": 50.0},
            {"ad_exposure": "Medium Ads", "users": 2, "churn_rate_pct": 50.0, "avg_listening_time": 105.0},
            {"ad_exposure": "Low Ads", "users": 1, "churn_rate_pct": 0.0, "avg_listening_time": 100.0},
        ]

    def test_offline_listening_churn(self, analysis):
        result = analysis.run_analysis("offline_listening_churn")
        assert result["offline_listening"].tolist() == [False, True]
        assert result["users"].tolist() == [5, 3]
        assert result["churn_rate_pct"].tolist() == [60.0, 0.0]
        assert result["avg_listening_time"].tolist() == [80.0, 158.3]

    def test_churn_by_age_country(self, analysis):
        result = analysis.run_analysis("churn_by_age_country")
        assert list(result.columns) == ["country", "age_group", "churn_rate_pct"]
        assert result.iloc[0].tolist() == ["DE", "35–44", 100.0]
        assert result["churn_rate_pct"].is_monotonic_decreasing

    def test_high_engagement_segment(self, analysis):
        result = analysis.run_analysis("high_engagement_segment")
        assert result.to_dict(orient="records") == [
            {"subscription_tier": "Premium", "device": "Mobile", "users": 2,
             "avg_listening_time": 162.5, "avg_skip_rate": 12.0},
            {"subscription_tier": "Free", "device": "Desktop", "users": 1,
             "avg_listening_time": 130.0, "avg_skip_rate": 15.0},
            {"subscription_tier": "Premium", "device": "Desktop", "users": 1,
             "avg_listening_time": 150.0, "avg_skip_rate": 12.5},
        ]

    def test_dataset_overview(self, analysis):
        row = analysis.run_analysis("dataset_overview").iloc[0]
        assert row["total_users"] == 8
        assert row["churned_users"] == 3
        assert row["churn_rate_pct"] == 37.5
        assert row["avg_listening_time"] == 109.4
        assert row["avg_skip_rate"] == 23.94


class TestRun:
    def test_runs_every_analysis(self, analysis):
        results = analysis.run(save=False)
        assert set(STANDING_ANALYSES) <= set(results)
        assert analysis.results is results

    def test_runs_named_subset(self, analysis):
        results = analysis.run(["churn_rate_by_tier"], save=False)
        assert list(results) == ["churn_rate_by_tier"]

    def test_rerun_is_identical(self, analysis):
        first = analysis.run(save=False)
        second = analysis.run(save=False)
        for name in first:
            assert first[name].to_csv(index=False) == second[name].to_csv(index=False)

    def test_sharded_matches(self, random_users, config):
        analysis = ChurnAnalysis(random_users, config=config)
        for name in STANDING_ANALYSES:
            pd.testing.assert_frame_equal(analysis.run_sharded(name, shards=5), analysis.run_analysis(name))

    def test_empty_input_gives_empty_tables(self, sample_users, config):
        results = ChurnAnalysis(sample_users.iloc[0:0], config=config).run(save=False)
        assert all(table.empty for table in results.values())
        assert list(results["ad_exposure_churn"].columns) == [
            "ad_exposure", "users", "churn_rate_pct", "avg_listening_time",
        ]

    def test_invalid_analysis_fails_before_any_result(self, sample_users, config):
        config["analyses"]["zz_broken"] = {
            "group_by": ["tenure_months"],
            "metrics": [{"name": "users", "kind": "count"}],
        }
        analysis = ChurnAnalysis(sample_users, config=config)
        with pytest.raises(InvalidFieldError):
            analysis.run(save=False)
        assert analysis.results == {}

    def test_unknown_analysis(self, analysis):
        with pytest.raises(ConfigurationError):
            analysis.run_analysis("churn_by_planet")

    def test_saves_results(self, analysis, tmp_path):
        analysis.run(save=True, output_dir=str(tmp_path))
        saved = pd.read_csv(tmp_path / "churn_rate_by_tier.csv")
        assert saved["churn_rate_pct"].tolist() == [50.0, 25.0]
        summary = pd.read_csv(tmp_path / "analysis_summary.csv")
        assert set(STANDING_ANALYSES) <= set(summary["analysis"])

    def test_save_without_results(self, analysis, tmp_path):
        with pytest.raises(ValueError):
            analysis.save_results(output_dir=str(tmp_path))

    def test_bucket_distribution(self, analysis):
        dist = analysis.bucket_distribution("ad_exposure")
        assert dist["count"].tolist() == [5, 2, 1]


class TestConfiguration:
    def test_missing_section(self, sample_users):
        with pytest.raises(ConfigurationError):
            ChurnAnalysis(sample_users, config={"analyses": {}})

    def test_missing_file_falls_back_to_defaults(self, sample_users, tmp_path):
        analysis = ChurnAnalysis(sample_users, config_file=str(tmp_path / "absent.yaml"))
        assert set(STANDING_ANALYSES) <= set(analysis.analysis_names)

    def test_yaml_file(self, sample_users, tmp_path, config):
        config["analyses"] = {"churn_rate_by_tier": config["analyses"]["churn_rate_by_tier"]}
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"churn_analysis": config}, allow_unicode=True), encoding="utf-8")
        analysis = ChurnAnalysis(sample_users, config_file=str(path))
        assert analysis.analysis_names == ["churn_rate_by_tier"]

    def test_malformed_yaml_raises(self, sample_users, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("analyses: [unclosed", encoding="utf-8")
        with pytest.raises(ValueError):
            ChurnAnalysis(sample_users, config_file=str(path))

    def test_bucket_rule_without_default(self, sample_users, config):
        del config["bucket_rules"]["age_group"]["default"]
        with pytest.raises(ConfigurationError):
            ChurnAnalysis(sample_users, config=config)

    def test_from_csv_applies_column_map(self, sample_users, tmp_path):
        source = sample_users.rename(columns={
            "subscription_tier": "subscription_type",
            "listening_minutes_per_day": "listening_time",
            "songs_per_day": "songs_played_per_day",
            "ads_per_week": "ads_listened_per_week",
            "churned": "is_churned",
            "device": "device_type",
        })
        source["is_churned"] = source["is_churned"].astype(int)
        source["offline_listening"] = source["offline_listening"].astype(int)
        path = tmp_path / "users.csv"
        source.to_csv(path, index=False)

        analysis = ChurnAnalysis.from_csv(str(path), config_file=str(tmp_path / "absent.yaml"))
        result = analysis.run_analysis("churn_rate_by_tier")
        assert result["churn_rate_pct"].tolist() == [50.0, 25.0]
        assert os.path.exists(path)

    def test_logs_bucket_rules_on_start(self, sample_users, config, caplog):
        caplog.set_level(logging.INFO, logger="streamchurn")
        ChurnAnalysis(sample_users, config=config)
        assert "ad_exposure = ads_per_week: Low Ads ≤ 5 | Medium Ads (5, 15] | High Ads otherwise" in caplog.text
