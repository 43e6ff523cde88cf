"""Provisional policy publishing and runtime enforcement."""

from edgeguard.policy.lifecycle import (
    GovernanceContract,
    ProvisionalPolicy,
    RuntimeConfig,
    RuntimePolicy,
    evaluate_runtime,
    publish_provisional,
)

__all__ = [
    "GovernanceContract",
    "ProvisionalPolicy",
    "RuntimeConfig",
    "RuntimePolicy",
    "evaluate_runtime",
    "publish_provisional",
]
