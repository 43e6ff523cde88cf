"""Governance pipeline: staged evaluation, artifact hashing, and health gates."""

from edgeguard.pipeline.governance import (
    GovernanceConfig,
    GovernanceReport,
    GovernanceRunner,
    GovernanceThresholds,
    latest_governance_report,
)

__all__ = [
    "GovernanceConfig",
    "GovernanceReport",
    "GovernanceRunner",
    "GovernanceThresholds",
    "latest_governance_report",
]
