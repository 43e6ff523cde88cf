"""Tests for the governance orchestrator."""

import hashlib
import json
from datetime import datetime, timezone

import pytest

from edgeguard.errors import InsufficientDataError, PipelineFailure
from edgeguard.models.walk_forward import WalkForwardConfig
from edgeguard.pipeline.artifacts import read_json, write_json
from edgeguard.pipeline.governance import (
    GovernanceConfig,
    GovernanceRunner,
    GovernanceThresholds,
    evaluate_gates,
    is_governance_report,
    latest_governance_report,
)

LENIENT = GovernanceThresholds(
    min_walk_forward_roi_mean=-10.0,
    min_walk_forward_beat_coin_mean=0.0,
    min_confidence_ab_roi=-10.0,
    min_confidence_ab_bets=0,
)


def _config(input_path, out_dir, **kwargs):
    return GovernanceConfig.for_track(
        "a",
        iters=200,
        coin_seeds=5,
        bootstrap_samples=20,
        input_path=str(input_path),
        out_dir=str(out_dir),
        **kwargs,
    )


def _at(day: int) -> datetime:
    return datetime(2026, 1, day, 12, 0, tzinfo=timezone.utc)


class TestGovernanceRun:

    def test_non_paired_event_needs_attention(self, make_feature_csv, feature_rows, tmp_path):
        csv = make_feature_csv(feature_rows[:-1])
        report = GovernanceRunner(_config(csv, tmp_path / "gov")).run()

        assert report.metrics["integrity"]["total_issue_count"] >= 1
        assert report.status == "attention"
        assert any(a.startswith("dataset_integrity_issues=") for a in report.alerts)
        assert report.decision == "hold_provisional_policy"
        assert [s.status for s in report.stages] == ["ok"] * 4

    def test_clean_data_lenient_gates_is_healthy(self, feature_csv, tmp_path):
        report = GovernanceRunner(_config(feature_csv, tmp_path / "gov", thresholds=LENIENT)).run()

        assert report.status == "healthy"
        assert report.alerts == []
        assert report.drift["previous_report"] is None

    def test_artifacts_written_and_hashed(self, feature_csv, tmp_path):
        report = GovernanceRunner(_config(feature_csv, tmp_path / "gov", thresholds=LENIENT)).run()
        doc = read_json(report.path)

        expected = hashlib.sha256(feature_csv.read_bytes()).hexdigest()
        assert doc["artifact_hashes"]["input"]["sha256"] == expected
        for key in ("integrity_report", "walk_forward_report", "confidence_report", "monte_carlo_report"):
            entry = doc["artifact_hashes"][key]
            with open(entry["file"], "rb") as f:
                assert entry["sha256"] == hashlib.sha256(f.read()).hexdigest()
        assert doc["metrics"]["confidence_policy"]["a_b_policy"]["policy"] == "A_B"
        assert doc["artifacts"]["governance"] == report.path
        assert latest_governance_report(tmp_path / "gov").name == f"{report.run_id}.json"

    def test_stage_failure_writes_failed_report(self, feature_csv, tmp_path):
        cfg = _config(feature_csv, tmp_path / "gov")
        cfg = GovernanceConfig(
            input_path=cfg.input_path,
            out_dir=cfg.out_dir,
            walk_forward=WalkForwardConfig(train=cfg.walk_forward.train, min_train_seasons=4),
            confidence=cfg.confidence,
            monte_carlo=cfg.monte_carlo,
        )
        with pytest.raises(PipelineFailure) as excinfo:
            GovernanceRunner(cfg).run()

        failure = excinfo.value
        assert failure.failures[0]["stage"] == "walk_forward"
        assert failure.failures[0]["error_type"] == InsufficientDataError.__name__
        doc = read_json(failure.report_path)
        assert doc["status"] == "failed"
        assert [s["status"] for s in doc["stages"]] == ["ok", "failed", "skipped", "skipped"]

    def test_missing_input_fails_first_stage(self, tmp_path):
        with pytest.raises(PipelineFailure) as excinfo:
            GovernanceRunner(_config(tmp_path / "absent.csv", tmp_path / "gov")).run()
        assert excinfo.value.failures[0]["stage"] == "integrity"
        assert excinfo.value.failures[0]["error_type"] == "ValidationError"


class TestDrift:

    def _prior(self, gov_dir, stamp, status, roi):
        path = gov_dir / f"governance_{stamp}.json"
        write_json(path, {"status": status, "metrics": {"walk_forward": {"summary": {"model_roi_mean": roi}}}})
        return path

    def test_drop_beyond_margin_alerts(self, feature_csv, tmp_path):
        gov = tmp_path / "gov"
        prior = self._prior(gov, "2025-12-01T00-00-00-000000Z", "attention", 5.0)
        self._prior(gov, "2025-12-02T00-00-00-000000Z", "failed", None)

        report = GovernanceRunner(_config(feature_csv, gov, thresholds=LENIENT)).run(now=_at(1))

        assert report.drift["previous_report"] == str(prior)
        assert report.drift["delta_roi_mean"] < -0.02
        assert "roi_mean_drift_down_gt_0.02" in report.alerts
        assert report.status == "attention"

    def test_repeat_run_has_no_drift(self, feature_csv, tmp_path):
        gov = tmp_path / "gov"
        first = GovernanceRunner(_config(feature_csv, gov, thresholds=LENIENT)).run(now=_at(1))
        second = GovernanceRunner(_config(feature_csv, gov, thresholds=LENIENT)).run(now=_at(2))

        assert second.drift["previous_report"] == first.path
        assert second.drift["delta_roi_mean"] == pytest.approx(0.0)
        assert second.status == "healthy"


class TestGates:

    def _metrics(self, issues=0, roi=0.1, beat=0.95, ab_roi=0.05, ab_bets=30):
        return {
            "integrity": {"total_issue_count": issues},
            "walk_forward": {"summary": {"model_roi_mean": roi, "model_beats_coin_rate_mean": beat}},
            "confidence_policy": {"a_b_policy": {"roi_on_staked": ab_roi, "n_bets": ab_bets}},
        }

    def test_all_pass(self):
        assert evaluate_gates(self._metrics(), GovernanceThresholds()) == []

    def test_each_gate(self):
        alerts = evaluate_gates(self._metrics(issues=2, roi=0.0, beat=0.5, ab_roi=0.0, ab_bets=5), GovernanceThresholds())
        assert alerts == [
            "dataset_integrity_issues=2",
            "walk_forward_roi_mean_below_threshold",
            "walk_forward_beat_coin_mean_below_threshold",
            "confidence_ab_roi_below_threshold",
            "confidence_ab_bets_below_threshold",
        ]

    def test_missing_metrics_fail_closed(self):
        metrics = {
            "integrity": {"total_issue_count": 0},
            "walk_forward": {"summary": None},
            "confidence_policy": {"a_b_policy": None},
        }
        assert len(evaluate_gates(metrics, GovernanceThresholds())) == 4


def test_report_names_exclude_stage_artifacts(tmp_path):
    names = [
        "governance_2026-01-01T12-00-00-000000Z.json",
        "governance_2026-01-01T12-00-00-000000Z_integrity.json",
        "governance_2026-01-01T12-00-00-000000Z_coin_mc.json",
        "notes.json",
    ]
    assert [n for n in names if is_governance_report(tmp_path / n)] == names[:1]


def test_write_json_nulls_non_finite(tmp_path):
    path = write_json(tmp_path / "x" / "doc.json", {"a": float("nan"), "b": [1.0, float("inf")]})
    assert json.loads(path.read_text()) == {"a": None, "b": [1.0, None]}
