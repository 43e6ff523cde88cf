"""Tests for provisional publishing and runtime enforcement."""

from datetime import datetime, timedelta, timezone

import pytest

from edgeguard.errors import ValidationError
from edgeguard.pipeline.artifacts import write_json
from edgeguard.policy.lifecycle import (
    NO_POLICY,
    RUNTIME_FALLBACK,
    RUNTIME_KEEP,
    RUNTIME_NO_BET,
    GovernanceContract,
    PolicyThresholds,
    ProvisionalPolicy,
    RuntimeConfig,
    evaluate_runtime,
    publish_provisional,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _write_governance(gov_dir, status="healthy", alerts=(), ab_bets=40, ab_roi=0.04,
                      stamp="2026-02-28T00-00-00-000000Z"):
    confidence_path = gov_dir / f"governance_{stamp}_confidence.json"
    write_json(confidence_path, {
        "config": {"confidence": {"threshold_mode": "hybrid", "bucket_a_active": 70.0, "bucket_b_active": 55.0}},
        "policy_results": [
            {"policy": "A_only", "n_bets": 12, "roi_on_staked": 0.06},
            {"policy": "A_B", "n_bets": ab_bets, "roi_on_staked": ab_roi},
        ],
    })
    report_path = gov_dir / f"governance_{stamp}.json"
    write_json(report_path, {
        "status": status,
        "alerts": list(alerts),
        "metrics": {"confidence_policy": {"a_b_policy": {"policy": "A_B", "n_bets": ab_bets, "roi_on_staked": ab_roi}}},
        "artifacts": {"confidence": str(confidence_path)},
    })
    return report_path


def _provisional(valid_until, policy="A_B"):
    return ProvisionalPolicy(
        policy=policy,
        threshold_mode="hybrid",
        thresholds=PolicyThresholds(bucket_a_active=70.0, bucket_b_active=55.0),
        created_at=valid_until - timedelta(days=30),
        valid_until=valid_until,
        governance_report="governance.json",
    )


def _contract(status="healthy", alerts=(), ab_bets=40):
    return GovernanceContract(report_path="governance.json", status=status, alerts=list(alerts), ab_bets=ab_bets)


class TestGovernanceContract:

    def test_reads_only_contract_fields(self, tmp_path):
        path = _write_governance(tmp_path, ab_bets=33, ab_roi=0.02)
        contract = GovernanceContract.load(path)

        assert contract.status == "healthy"
        assert contract.ab_bets == 33
        assert contract.ab_roi == 0.02
        assert contract.confidence_artifact.endswith("_confidence.json")

    def test_latest_ignores_stage_artifacts(self, tmp_path):
        _write_governance(tmp_path, stamp="2026-02-01T00-00-00-000000Z")
        newest = _write_governance(tmp_path, status="attention", stamp="2026-02-02T00-00-00-000000Z")
        assert GovernanceContract.latest(tmp_path).report_path == str(newest)

    def test_no_report(self, tmp_path):
        with pytest.raises(ValidationError):
            GovernanceContract.latest(tmp_path)


class TestPublish:

    def test_publish_from_healthy(self, tmp_path):
        _write_governance(tmp_path)
        provisional = publish_provisional(tmp_path, policy="A_B", valid_days=30, now=NOW)

        assert provisional.state == "provisional_active"
        assert provisional.thresholds.bucket_a_active == 70.0
        assert provisional.performance_snapshot["n_bets"] == 40
        assert provisional.valid_until == NOW + timedelta(days=30)

    def test_refuses_unhealthy(self, tmp_path):
        _write_governance(tmp_path, status="attention", alerts=["confidence_ab_bets_below_threshold"])
        with pytest.raises(ValidationError):
            publish_provisional(tmp_path, now=NOW)

    def test_unknown_policy(self, tmp_path):
        _write_governance(tmp_path)
        with pytest.raises(ValidationError):
            publish_provisional(tmp_path, policy="all", now=NOW)

    def test_save_load_round_trip(self, tmp_path):
        _write_governance(tmp_path)
        provisional = publish_provisional(tmp_path, now=NOW)
        path = provisional.save(tmp_path / "state" / "provisional.json")

        assert ProvisionalPolicy.load(path) == provisional
        assert ProvisionalPolicy.load(tmp_path / "missing.json") is None


class TestEvaluateRuntime:

    def test_keep(self):
        runtime = evaluate_runtime(_provisional(NOW + timedelta(days=5)), _contract(), now=NOW)
        assert runtime.action == "keep"
        assert runtime.state == RUNTIME_KEEP
        assert runtime.active_policy == "A_B"
        assert runtime.reasons == []

    def test_expired_forces_no_bet_even_when_healthy(self):
        runtime = evaluate_runtime(_provisional(NOW - timedelta(seconds=1)), _contract(), now=NOW)
        assert runtime.action == "no_bet"
        assert runtime.state == RUNTIME_NO_BET
        assert runtime.active_policy == "NO_BET"
        assert runtime.reasons == ["provisional_policy_expired"]

    def test_expired_outranks_unhealthy_and_records_all_reasons(self):
        governance = _contract(status="attention", alerts=["walk_forward_roi_mean_below_threshold"], ab_bets=5)
        runtime = evaluate_runtime(_provisional(NOW - timedelta(days=1)), governance, now=NOW)

        assert runtime.action == "no_bet"
        assert runtime.reasons == [
            "provisional_policy_expired",
            "governance_not_healthy",
            "governance_alerts:walk_forward_roi_mean_below_threshold",
            "ab_bets_below_min:5<20",
        ]

    def test_unhealthy_falls_back(self):
        governance = _contract(status="attention", alerts=["dataset_integrity_issues=1"])
        runtime = evaluate_runtime(_provisional(NOW + timedelta(days=1)), governance, now=NOW)

        assert runtime.action == "fallback"
        assert runtime.state == RUNTIME_FALLBACK
        assert runtime.active_policy == "A_only"

    def test_low_sample_falls_back(self):
        config = RuntimeConfig(fallback_policy="A_only", min_confidence_ab_bets=50)
        runtime = evaluate_runtime(_provisional(NOW + timedelta(days=1)), _contract(ab_bets=40), config, now=NOW)

        assert runtime.action == "fallback"
        assert runtime.reasons == ["ab_bets_below_min:40<50"]

    def test_no_provisional(self):
        runtime = evaluate_runtime(None, _contract(), now=NOW)
        assert runtime.state == NO_POLICY
        assert runtime.action == "no_bet"

    def test_invalid_fallback_policy(self):
        with pytest.raises(ValidationError):
            RuntimeConfig(fallback_policy="everything")
