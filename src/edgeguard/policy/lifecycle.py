"""Two-stage policy lifecycle: provisional publish, then runtime enforcement.

States:
    no_policy          - Nothing published yet
    provisional_active - Published from a healthy governance report
    runtime_keep       - Provisional policy used as published
    runtime_fallback   - Conservative fallback policy in force
    runtime_no_bet     - Betting suspended

Runtime precedence (every triggered reason is recorded):
    1. Provisional record expired          -> no_bet
    2. Governance not healthy / any alerts -> fallback
    3. A_B bets below minimum              -> fallback
    4. Otherwise                           -> keep

The lifecycle reads governance through GovernanceContract only: status,
alerts, the A_B bet count and ROI, and the confidence artifact path.

Usage:
    from edgeguard.policy.lifecycle import publish_provisional, evaluate_runtime

    provisional = publish_provisional(GOVERNANCE_DIR, policy="A_B")
    runtime = evaluate_runtime(provisional, GovernanceContract.latest(GOVERNANCE_DIR))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from edgeguard.config import POLICY_MULTIPLIERS
from edgeguard.errors import ValidationError
from edgeguard.pipeline.artifacts import read_json, write_json
from edgeguard.pipeline.governance import find_policy, latest_governance_report

logger = logging.getLogger(__name__)

NO_POLICY = "no_policy"
PROVISIONAL_ACTIVE = "provisional_active"
RUNTIME_KEEP = "runtime_keep"
RUNTIME_FALLBACK = "runtime_fallback"
RUNTIME_NO_BET = "runtime_no_bet"

NO_BET_POLICY = "NO_BET"

Action = Literal["keep", "fallback", "no_bet"]

ACTION_STATES = {"keep": RUNTIME_KEEP, "fallback": RUNTIME_FALLBACK, "no_bet": RUNTIME_NO_BET}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class GovernanceContract(BaseModel):
    """The governance fields the lifecycle is allowed to read."""

    model_config = ConfigDict(frozen=True)

    report_path: str
    status: str
    alerts: List[str] = Field(default_factory=list)
    ab_bets: int = 0
    ab_roi: Optional[float] = None
    confidence_artifact: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    @classmethod
    def from_report(cls, doc: Dict[str, Any], report_path: str = "") -> "GovernanceContract":
        ab = ((doc.get("metrics") or {}).get("confidence_policy") or {}).get("a_b_policy") or {}
        try:
            return cls(
                report_path=report_path,
                status=doc.get("status", ""),
                alerts=doc.get("alerts") or [],
                ab_bets=ab.get("n_bets") or 0,
                ab_roi=ab.get("roi_on_staked"),
                confidence_artifact=(doc.get("artifacts") or {}).get("confidence"),
            )
        except SchemaError as e:
            raise ValidationError(f"Malformed governance report {report_path}: {e}") from e

    @classmethod
    def load(cls, path) -> "GovernanceContract":
        return cls.from_report(read_json(path), str(path))

    @classmethod
    def latest(cls, governance_dir) -> "GovernanceContract":
        """Contract for the newest governance report in a directory.

        Raises:
            ValidationError: If the directory holds no governance report.
        """
        path = latest_governance_report(governance_dir)
        if path is None:
            raise ValidationError(f"No governance report found in {governance_dir}")
        return cls.load(path)


class PolicyThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket_a_active: float
    bucket_b_active: float


class ProvisionalPolicy(BaseModel):
    """A time-boxed policy published from a healthy governance report."""

    model_config = ConfigDict(frozen=True)

    state: Literal["provisional_active"] = PROVISIONAL_ACTIVE
    policy: str
    threshold_mode: Optional[str] = None
    thresholds: PolicyThresholds
    performance_snapshot: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    valid_until: datetime
    governance_report: str
    confidence_report: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return _aware(now or _utcnow()) > _aware(self.valid_until)

    def save(self, path) -> Path:
        return write_json(path, self.model_dump(mode="json"))

    @classmethod
    def load(cls, path) -> Optional["ProvisionalPolicy"]:
        """Read a published record; None when nothing has been published."""
        if not Path(path).exists():
            return None
        try:
            return cls.model_validate(read_json(path))
        except SchemaError as e:
            raise ValidationError(f"Malformed provisional policy {path}: {e}") from e


class RuntimePolicy(BaseModel):
    """Result of one runtime evaluation."""

    model_config = ConfigDict(frozen=True)

    state: str
    action: Action
    active_policy: str
    reasons: List[str] = Field(default_factory=list)
    thresholds: Optional[PolicyThresholds] = None
    provisional_policy: Optional[str] = None
    governance_report: Optional[str] = None
    created_at: datetime

    def save(self, path) -> Path:
        return write_json(path, self.model_dump(mode="json"))

    def print_summary(self) -> None:
        print("\n" + "=" * 50)
        print("RUNTIME POLICY ENFORCEMENT")
        print("=" * 50)
        print(f"Action: {self.action}")
        print(f"Active policy: {self.active_policy}")
        print(f"Reasons: {', '.join(self.reasons) if self.reasons else 'none'}")


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime enforcement settings."""
    fallback_policy: str = "A_only"
    min_confidence_ab_bets: int = 20

    def __post_init__(self):
        if self.fallback_policy not in POLICY_MULTIPLIERS:
            raise ValidationError(
                f"Unknown fallback policy: {self.fallback_policy}. Must be one of: {list(POLICY_MULTIPLIERS)}"
            )
        if self.min_confidence_ab_bets < 0:
            raise ValidationError("min_confidence_ab_bets must be >= 0")


def publish_provisional(
    governance_dir,
    policy: str = "A_B",
    valid_days: int = 30,
    now: Optional[datetime] = None,
) -> ProvisionalPolicy:
    """Snapshot a policy from the latest governance report.

    Raises:
        ValidationError: If there is no report, it is not healthy, or the
            confidence artifact or the requested policy cannot be found.
    """
    if valid_days <= 0:
        raise ValidationError(f"valid_days must be > 0, got {valid_days}")
    governance = GovernanceContract.latest(governance_dir)
    if not governance.is_healthy:
        raise ValidationError(
            f"Cannot publish policy from non-healthy governance status: {governance.status}"
        )

    conf_path = governance.confidence_artifact
    if not conf_path or not Path(conf_path).exists():
        raise ValidationError("Confidence artifact missing from governance report.")
    confidence = read_json(conf_path)
    active = (confidence.get("config") or {}).get("confidence")
    if not active:
        raise ValidationError("Missing confidence thresholds in confidence artifact.")
    snapshot = find_policy(confidence, policy)
    if snapshot is None:
        raise ValidationError(f"Policy {policy} not found in confidence report.")

    now = _aware(now or _utcnow())
    provisional = ProvisionalPolicy(
        policy=policy,
        threshold_mode=active.get("threshold_mode"),
        thresholds=PolicyThresholds(
            bucket_a_active=active["bucket_a_active"],
            bucket_b_active=active["bucket_b_active"],
        ),
        performance_snapshot=snapshot,
        created_at=now,
        valid_until=now + timedelta(days=valid_days),
        governance_report=governance.report_path,
        confidence_report=conf_path,
    )
    logger.info(
        "Published %s (A>=%g B>=%g) valid until %s",
        policy, provisional.thresholds.bucket_a_active, provisional.thresholds.bucket_b_active,
        provisional.valid_until.isoformat(),
    )
    return provisional


def evaluate_runtime(
    provisional: Optional[ProvisionalPolicy],
    governance: GovernanceContract,
    config: Optional[RuntimeConfig] = None,
    now: Optional[datetime] = None,
) -> RuntimePolicy:
    """Decide keep / fallback / no_bet for the current moment."""
    config = config or RuntimeConfig()
    now = _aware(now or _utcnow())

    if provisional is None:
        return RuntimePolicy(
            state=NO_POLICY,
            action="no_bet",
            active_policy=NO_BET_POLICY,
            reasons=["no_provisional_policy"],
            governance_report=governance.report_path,
            created_at=now,
        )

    reasons: List[str] = []
    expired = provisional.is_expired(now)
    if expired:
        reasons.append("provisional_policy_expired")
    if not governance.is_healthy:
        reasons.append("governance_not_healthy")
    if governance.alerts:
        reasons.append(f"governance_alerts:{'|'.join(governance.alerts)}")
    if governance.ab_bets < config.min_confidence_ab_bets:
        reasons.append(f"ab_bets_below_min:{governance.ab_bets}<{config.min_confidence_ab_bets}")

    if expired:
        action, active = "no_bet", NO_BET_POLICY
    elif reasons:
        action, active = "fallback", config.fallback_policy
    else:
        action, active = "keep", provisional.policy

    if action != "keep":
        logger.warning("Runtime policy %s: %s", action, reasons)
    return RuntimePolicy(
        state=ACTION_STATES[action],
        action=action,
        active_policy=active,
        reasons=reasons,
        thresholds=provisional.thresholds,
        provisional_policy=provisional.policy,
        governance_report=governance.report_path,
        created_at=now,
    )


__all__ = [
    "NO_POLICY",
    "PROVISIONAL_ACTIVE",
    "RUNTIME_KEEP",
    "RUNTIME_FALLBACK",
    "RUNTIME_NO_BET",
    "GovernanceContract",
    "PolicyThresholds",
    "ProvisionalPolicy",
    "RuntimePolicy",
    "RuntimeConfig",
    "publish_provisional",
    "evaluate_runtime",
]
