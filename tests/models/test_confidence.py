"""Tests for confidence scoring, bucket policies and threshold tuning."""

import pytest

from edgeguard.errors import InsufficientDataError, ValidationError
from edgeguard.models.confidence import (
    ConfidenceBacktest,
    ConfidenceConfig,
    ThresholdTuner,
    bucket_for,
    build_scored_picks,
    confidence_score,
)
from edgeguard.models.logistic import train_logistic, with_predictions


def _side(p_model, implied, books=4, missing=0):
    return {
        "p_model": p_model,
        "implied_prob": implied,
        "books_aggregated": books,
        "missing_form_features": missing,
        "missing_schedule_features": 0,
        "missing_market_features": 0,
    }


class TestConfidenceScore:

    def test_composition(self):
        side = _side(0.5, 0.5)
        score, edge = confidence_score(side, [side, _side(0.5, 0.5)], -0.03, 0.03)
        assert edge == 0.0
        assert score == pytest.approx(70.0)

    def test_clamped_to_range(self):
        high = _side(0.9, 0.5, books=10)
        low = _side(0.1, 0.5, books=0, missing=5)
        assert confidence_score(high, [high, high], -0.03, 0.03)[0] == pytest.approx(100.0)
        assert confidence_score(low, [low, low], -0.03, 0.03)[0] == pytest.approx(0.0)

    def test_buckets(self):
        assert bucket_for(75.0, 75.0, 60.0) == "A"
        assert bucket_for(60.0, 75.0, 60.0) == "B"
        assert bucket_for(59.9, 75.0, 60.0) == "C"


class TestThresholdTuner:

    def test_grid_respects_bounds_and_order(self):
        cfg = ConfidenceConfig()
        pairs = ThresholdTuner(cfg).grid([5.0, 95.0])

        assert pairs
        for a, b in pairs:
            assert a > b
            assert cfg.auto_bucket_a_min <= a <= cfg.auto_bucket_a_max
            assert cfg.auto_bucket_b_min <= b <= cfg.auto_bucket_b_max

    def test_tuned_pair_invariant(self, feature_df, fast_train):
        cfg = ConfidenceConfig(train=fast_train)
        model = train_logistic(feature_df, fast_train)
        picks, _, _ = build_scored_picks(with_predictions(model, feature_df), cfg)
        tuned = ThresholdTuner(cfg).tune(picks)

        assert tuned is not None
        assert tuned.bucket_a > tuned.bucket_b
        assert cfg.auto_bucket_a_min <= tuned.bucket_a <= cfg.auto_bucket_a_max
        assert cfg.auto_bucket_b_min <= tuned.bucket_b <= cfg.auto_bucket_b_max

    def test_no_scores(self):
        assert ThresholdTuner(ConfidenceConfig()).tune([]) is None


class TestConfidenceBacktest:

    def test_manual_policies_nested(self, feature_df, fast_train):
        cfg = ConfidenceConfig(train=fast_train, threshold_mode="manual")
        report = ConfidenceBacktest(cfg).run(feature_df)

        assert (report.bucket_a, report.bucket_b) == (75.0, 60.0)
        a_only, a_b, all_ = (report.policy(n) for n in ("A_only", "A_B", "all"))
        assert a_only.n_bets <= a_b.n_bets <= all_.n_bets <= len(report.picks)
        assert len(report.picks) == 60

    def test_hybrid_falls_back_on_small_calibration(self, feature_df, fast_train):
        report = ConfidenceBacktest(ConfidenceConfig(train=fast_train)).run(feature_df)

        assert report.tuning["used_fallback_manual"] is True
        assert "Calibration event count too low" in report.tuning["reason"]
        assert (report.bucket_a, report.bucket_b) == (75.0, 60.0)

    def test_hybrid_tunes_when_enough_events(self, feature_df, fast_train):
        # Bounds span the whole score range and one bet suffices, so any
        # calibration slice whose scores are not all equal yields a pair.
        cfg = ConfidenceConfig(
            train=fast_train,
            min_calib_events=20,
            auto_bucket_a_min=5.0,
            auto_bucket_a_max=100.0,
            auto_bucket_b_min=0.0,
            auto_bucket_b_max=95.0,
            min_bets_ab=1,
        )
        report = ConfidenceBacktest(cfg).run(feature_df)

        assert report.tuning["calibration_events"] == 36
        assert report.tuning["used_fallback_manual"] is False
        chosen = report.tuning["chosen"]
        assert (chosen["bucketA"], chosen["bucketB"]) == (report.bucket_a, report.bucket_b)
        assert report.bucket_a > report.bucket_b
        assert chosen["target"]["n_bets"] >= 1

    def test_strict_calibration(self, feature_df, fast_train):
        cfg = ConfidenceConfig(train=fast_train, strict_calibration=True)
        with pytest.raises(InsufficientDataError):
            ConfidenceBacktest(cfg).run(feature_df)

    def test_report_exposes_active_thresholds(self, feature_df, fast_train):
        cfg = ConfidenceConfig(train=fast_train, threshold_mode="manual")
        doc = ConfidenceBacktest(cfg).run(feature_df).to_dict()

        assert doc["config"]["confidence"]["bucket_a_active"] == 75.0
        assert {p["policy"] for p in doc["policy_results"]} == {"A_only", "A_B", "all"}
        assert all(p["bucket"] in ("A", "B", "C") for p in doc["picks"])

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            ConfidenceConfig(bucket_a=50.0, bucket_b=60.0)
        with pytest.raises(ValidationError):
            ConfidenceConfig(threshold_mode="auto")
