"""Governance + policy refresh runner.

Runs the scheduled policy cycle end to end:
1. Full governance run (integrity, walk-forward, confidence, coin Monte-Carlo)
2. Publish a provisional policy when the new report is healthy
3. Evaluate the runtime action against the latest report

An unhealthy report skips step 2; the previously published policy is then
enforced against the new report, which drives fallback or no_bet.

Usage:
    python scripts/ops/refresh_policy.py --track b --valid-days 14
"""

import argparse
import logging

from edgeguard.config import DEFAULT_INPUT_PATH, DEFAULT_PROVISIONAL_PATH, DEFAULT_RUNTIME_PATH, GOVERNANCE_DIR
from edgeguard.errors import EdgeGuardError
from edgeguard.pipeline.governance import GovernanceConfig, GovernanceRunner
from edgeguard.policy.lifecycle import (
    GovernanceContract,
    ProvisionalPolicy,
    RuntimeConfig,
    evaluate_runtime,
    publish_provisional,
)


def main():
    """Run governance, publish and enforce in sequence."""
    parser = argparse.ArgumentParser(description="Refresh the betting policy from a new governance run")
    parser.add_argument("--input", default=DEFAULT_INPUT_PATH, help="Feature table CSV")
    parser.add_argument("--track", default="b", help="Model track preset")
    parser.add_argument("--governance-dir", default=str(GOVERNANCE_DIR))
    parser.add_argument("--provisional-state", default=str(DEFAULT_PROVISIONAL_PATH))
    parser.add_argument("--runtime-state", default=str(DEFAULT_RUNTIME_PATH))
    parser.add_argument("--policy", default="A_B", help="Policy to publish when healthy")
    parser.add_argument("--valid-days", type=int, default=30)
    parser.add_argument("--fallback-policy", default="A_only")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("\n" + "=" * 70)
    print("EDGEGUARD POLICY REFRESH")
    print("=" * 70)

    try:
        print("\n[1/3] GOVERNANCE")
        print("-" * 70)
        cfg = GovernanceConfig.for_track(args.track, input_path=args.input, out_dir=args.governance_dir)
        report = GovernanceRunner(cfg).run()
        report.print_summary()

        print("\n[2/3] PUBLISH")
        print("-" * 70)
        if report.is_healthy:
            provisional = publish_provisional(args.governance_dir, policy=args.policy, valid_days=args.valid_days)
            provisional.save(args.provisional_state)
            print(f"Published {provisional.policy} valid until {provisional.valid_until.isoformat()}")
        else:
            print(f"Skipped: governance status is {report.status} ({', '.join(report.alerts)})")

        print("\n[3/3] ENFORCE")
        print("-" * 70)
        runtime = evaluate_runtime(
            ProvisionalPolicy.load(args.provisional_state),
            GovernanceContract.latest(args.governance_dir),
            RuntimeConfig(fallback_policy=args.fallback_policy),
        )
        runtime.save(args.runtime_state)
        runtime.print_summary()
    except EdgeGuardError as e:
        print(f"\nPolicy refresh failed: {type(e).__name__}: {e}")
        return 2

    print("\n" + "=" * 70)
    print("REFRESH COMPLETE")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    exit(main())
