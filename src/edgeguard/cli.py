"""EdgeGuard command-line interface.

Commands:
    validate      Dataset integrity check
    walk-forward  Season-by-season walk-forward evaluation
    confidence    Confidence-bucket policy backtest
    coin-mc       Model vs coin Monte-Carlo comparison
    coin-compare  Single-seed head-to-head with an event ledger
    paper         Paper PnL backtest with predictions CSV
    govern        Full governance run (integrity, walk-forward, confidence, coin-mc)
    publish       Publish a provisional policy from the latest healthy report
    enforce       Evaluate the runtime policy action

Every command writes a JSON report. Exit code is 0 on success and 2 on any
EdgeGuardError.

Usage:
    edgeguard validate --input storage/event_training_features.csv --strict
    edgeguard walk-forward --track b --coin-seeds 50
    edgeguard govern --governance-dir storage/reports/governance
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from edgeguard.config import (
    DEFAULT_INPUT_PATH,
    DEFAULT_PROVISIONAL_PATH,
    DEFAULT_RUNTIME_PATH,
    DEFAULT_TRACK,
    GOVERNANCE_DIR,
    LOG_LEVEL,
    MODEL_TRACKS,
    REPORTS_DIR,
)
from edgeguard.data.integrity import validate_integrity
from edgeguard.data.reader import FeatureTableReader
from edgeguard.errors import EdgeGuardError
from edgeguard.models.backtest import PaperBacktest, PaperBacktestConfig
from edgeguard.models.confidence import ConfidenceBacktest, ConfidenceConfig
from edgeguard.models.logistic import TrainParams
from edgeguard.models.monte_carlo import (
    HeadToHeadComparator,
    HeadToHeadConfig,
    MonteCarloComparator,
    MonteCarloConfig,
)
from edgeguard.models.splits import DateWindow
from edgeguard.models.walk_forward import WalkForwardConfig, WalkForwardRunner
from edgeguard.pipeline.artifacts import run_stamp, write_json
from edgeguard.pipeline.governance import GovernanceConfig, GovernanceRunner, GovernanceThresholds
from edgeguard.policy.lifecycle import (
    GovernanceContract,
    ProvisionalPolicy,
    RuntimeConfig,
    evaluate_runtime,
    publish_provisional,
)

logger = logging.getLogger("edgeguard")


def _out_path(args, name: str) -> Path:
    return Path(args.out) if args.out else REPORTS_DIR / f"{name}_{run_stamp()}.json"


def _train_params(args) -> TrainParams:
    return TrainParams.from_track(args.track, iters=args.iters, lr=args.lr, l2=args.l2)


def _window(args) -> DateWindow:
    return DateWindow(args.train_start, args.train_end, args.test_start, args.test_end)


def _load(args, train: TrainParams):
    reader = FeatureTableReader(args.input)
    return reader, reader.load(train.features)


def _written(path: Path) -> None:
    print(f"\nOutput: {path}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_validate(args) -> int:
    reader = FeatureTableReader(args.input)
    report = validate_integrity(reader.rows(), input_path=str(reader.path), strict=args.strict)
    out = write_json(_out_path(args, "dataset_integrity"), report.to_dict())
    report.print_summary()
    _written(out)
    return 0


def cmd_walk_forward(args) -> int:
    cfg = WalkForwardConfig(
        train=_train_params(args),
        edge_min=args.edge_min,
        bankroll=args.bankroll,
        flat_stake=args.flat_stake,
        max_stake_pct=args.max_stake_pct,
        slippage_bps=args.slippage_bps,
        min_train_seasons=args.min_train_seasons,
        coin_seeds=args.coin_seeds,
        bootstrap_samples=args.bootstrap_samples,
        bootstrap_seed=args.bootstrap_seed,
    )
    reader, df = _load(args, cfg.train)
    report = WalkForwardRunner(cfg).run(df, str(reader.path), reader.rejected_rows)
    out = write_json(_out_path(args, "walk_forward"), report.to_dict())
    if args.csv_out:
        report.to_dataframe().to_csv(args.csv_out, index=False)
    report.print_summary()
    _written(out)
    return 0


def cmd_confidence(args) -> int:
    cfg = ConfidenceConfig(
        window=_window(args),
        train=_train_params(args),
        bankroll=args.bankroll,
        flat_stake=args.flat_stake,
        slippage_bps=args.slippage_bps,
        edge_floor=args.edge_floor,
        edge_ceil=args.edge_ceil,
        bucket_a=args.bucket_a,
        bucket_b=args.bucket_b,
        threshold_mode=args.threshold_mode,
        calibration_ratio=args.calibration_ratio,
        min_calib_events=args.min_calib_events,
        auto_bucket_a_min=args.auto_bucket_a_min,
        auto_bucket_a_max=args.auto_bucket_a_max,
        auto_bucket_b_min=args.auto_bucket_b_min,
        auto_bucket_b_max=args.auto_bucket_b_max,
        auto_step=args.auto_step,
        min_bets_a=args.min_bets_a,
        min_bets_ab=args.min_bets_ab,
        target_policy=args.target_policy,
        strict_calibration=args.strict_calibration,
    )
    reader, df = _load(args, cfg.train)
    report = ConfidenceBacktest(cfg).run(df, str(reader.path))
    out = write_json(_out_path(args, "confidence_policy"), report.to_dict())
    report.print_summary()
    _written(out)
    return 0


def cmd_coin_mc(args) -> int:
    cfg = MonteCarloConfig(
        window=_window(args),
        train=_train_params(args),
        bankroll=args.bankroll,
        flat_stake=args.flat_stake,
        model_edge_min=args.edge_min,
        coin_bet_prob=args.coin_bet_prob,
        coin_follows_model=not args.coin_independent,
        seeds=args.seeds,
        start_seed=args.start_seed,
        rng=args.rng,
    )
    reader, df = _load(args, cfg.train)
    report = MonteCarloComparator(cfg).run(df, str(reader.path))
    out = write_json(_out_path(args, "model_vs_coin_mc"), report.to_dict())
    report.print_summary()
    _written(out)
    return 0


def cmd_coin_compare(args) -> int:
    cfg = HeadToHeadConfig(
        window=_window(args),
        train=_train_params(args),
        bankroll=args.bankroll,
        flat_stake=args.flat_stake,
        seed=args.seed,
        model_edge_min=args.edge_min,
        coin_bet_prob=args.coin_bet_prob,
        coin_follows_model=not args.coin_independent,
        strict_event_shape=args.strict_event_shape,
        rng=args.rng,
    )
    reader, df = _load(args, cfg.train)
    report = HeadToHeadComparator(cfg).run(df, str(reader.path))
    out = write_json(_out_path(args, "model_vs_coin"), report.to_dict())
    report.print_summary()
    _written(out)
    return 0


def cmd_paper(args) -> int:
    cfg = PaperBacktestConfig(
        window=_window(args),
        train=_train_params(args),
        selection_mode=args.selection_mode,
        edge_min=args.edge_min,
        max_bets_per_event=args.max_bets_per_event,
        bankroll=args.bankroll,
        flat_stake=args.flat_stake,
        kelly_fraction=args.kelly_fraction,
        kelly_cap=args.kelly_cap,
    )
    reader, df = _load(args, cfg.train)
    result = PaperBacktest(cfg).run(df, str(reader.path))
    out = write_json(_out_path(args, "paper_backtest"), result.to_dict())
    if args.predictions_out:
        Path(args.predictions_out).parent.mkdir(parents=True, exist_ok=True)
        result.write_predictions(args.predictions_out)
    if args.save_model and result.model is not None:
        result.model.save(Path(args.save_model))
    result.print_summary()
    _written(out)
    return 0


def cmd_govern(args) -> int:
    thresholds = GovernanceThresholds(
        min_walk_forward_roi_mean=args.min_wf_roi_mean,
        min_walk_forward_beat_coin_mean=args.min_wf_beat_coin_mean,
        min_confidence_ab_roi=args.min_conf_ab_roi,
        min_confidence_ab_bets=args.min_conf_ab_bets,
    )
    cfg = GovernanceConfig.for_track(
        args.track,
        window=_window(args),
        iters=args.iters,
        coin_seeds=args.coin_seeds,
        bootstrap_samples=args.bootstrap_samples,
        input_path=args.input,
        out_dir=args.governance_dir,
        thresholds=thresholds,
        strict_integrity=args.strict_integrity,
    )
    report = GovernanceRunner(cfg).run()
    report.print_summary()
    return 0


def cmd_publish(args) -> int:
    provisional = publish_provisional(args.governance_dir, policy=args.policy, valid_days=args.valid_days)
    out = provisional.save(args.out)
    print("Provisional Policy Published")
    print("-" * 30)
    print(f"Policy: {provisional.policy}")
    print(f"Thresholds: A>={provisional.thresholds.bucket_a_active:g} B>={provisional.thresholds.bucket_b_active:g}")
    print(f"Valid until: {provisional.valid_until.isoformat()}")
    _written(out)
    return 0


def cmd_enforce(args) -> int:
    config = RuntimeConfig(fallback_policy=args.fallback_policy, min_confidence_ab_bets=args.min_conf_ab_bets)
    provisional = ProvisionalPolicy.load(args.provisional_state)
    runtime = evaluate_runtime(provisional, GovernanceContract.latest(args.governance_dir), config)
    out = runtime.save(args.out)
    runtime.print_summary()
    _written(out)
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _common_parser(with_out: bool = True) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--input", default=DEFAULT_INPUT_PATH, help="Feature table CSV")
    if with_out:
        p.add_argument("--out", default=None, help="Report path (default: timestamped file in reports dir)")
    p.add_argument("--log-level", default=LOG_LEVEL, help="Logging level (default: %(default)s)")
    return p


def _model_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--track", choices=sorted(MODEL_TRACKS), default=DEFAULT_TRACK, help="Model track preset")
    p.add_argument("--iters", type=int, default=None, help="Override gradient-descent iterations")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--l2", type=float, default=None, help="Override L2 penalty")
    return p


def _window_parser() -> argparse.ArgumentParser:
    d = DateWindow()
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--train-start", default=d.train_start)
    p.add_argument("--train-end", default=d.train_end)
    p.add_argument("--test-start", default=d.test_start)
    p.add_argument("--test-end", default=d.test_end)
    return p


def _bankroll_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--bankroll", type=float, default=10000.0)
    p.add_argument("--flat-stake", type=float, default=100.0)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="edgeguard", description="Model validation and governance pipeline")
    sub = parser.add_subparsers(dest="command", required=True)
    common, model, window, bankroll = _common_parser(), _model_parser(), _window_parser(), _bankroll_parser()

    p = sub.add_parser("validate", parents=[common], help="Dataset integrity check")
    p.add_argument("--strict", action="store_true", help="Exit non-zero on any issue")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("walk-forward", parents=[common, model, bankroll], help="Walk-forward evaluation")
    p.add_argument("--edge-min", type=float, default=-0.02)
    p.add_argument("--max-stake-pct", type=float, default=0.03)
    p.add_argument("--slippage-bps", type=float, default=0.0)
    p.add_argument("--min-train-seasons", type=int, default=2)
    p.add_argument("--coin-seeds", type=int, default=200)
    p.add_argument("--bootstrap-samples", type=int, default=1000)
    p.add_argument("--bootstrap-seed", type=int, default=0)
    p.add_argument("--csv-out", default=None, help="Optional per-window CSV")
    p.set_defaults(func=cmd_walk_forward)

    p = sub.add_parser("confidence", parents=[common, model, window, bankroll], help="Confidence policy backtest")
    p.add_argument("--slippage-bps", type=float, default=25.0)
    p.add_argument("--edge-floor", type=float, default=-0.03)
    p.add_argument("--edge-ceil", type=float, default=0.03)
    p.add_argument("--bucket-a", type=float, default=75.0)
    p.add_argument("--bucket-b", type=float, default=60.0)
    p.add_argument("--threshold-mode", choices=["manual", "hybrid"], default="hybrid")
    p.add_argument("--calibration-ratio", type=float, default=0.2)
    p.add_argument("--min-calib-events", type=int, default=40)
    p.add_argument("--auto-bucket-a-min", type=float, default=20.0)
    p.add_argument("--auto-bucket-a-max", type=float, default=90.0)
    p.add_argument("--auto-bucket-b-min", type=float, default=10.0)
    p.add_argument("--auto-bucket-b-max", type=float, default=80.0)
    p.add_argument("--auto-step", type=float, default=5.0)
    p.add_argument("--min-bets-a", type=int, default=5)
    p.add_argument("--min-bets-ab", type=int, default=10)
    p.add_argument("--target-policy", choices=["A_only", "A_B"], default="A_B")
    p.add_argument("--strict-calibration", action="store_true",
                   help="Fail instead of falling back to manual thresholds")
    p.set_defaults(func=cmd_confidence)

    p = sub.add_parser("coin-mc", parents=[common, model, window, bankroll], help="Model vs coin Monte-Carlo")
    p.add_argument("--edge-min", type=float, default=-0.02)
    p.add_argument("--coin-bet-prob", type=float, default=1.0)
    p.add_argument("--coin-independent", action="store_true", help="Coin may bet events the model skips")
    p.add_argument("--seeds", type=int, default=200)
    p.add_argument("--start-seed", type=int, default=1)
    p.add_argument("--rng", choices=["mulberry32", "philox"], default="mulberry32")
    p.set_defaults(func=cmd_coin_mc)

    p = sub.add_parser("coin-compare", parents=[common, model, window, bankroll], help="Single-seed head-to-head")
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--edge-min", type=float, default=0.0)
    p.add_argument("--coin-bet-prob", type=float, default=1.0)
    p.add_argument("--coin-independent", action="store_true")
    p.add_argument("--strict-event-shape", action="store_true")
    p.add_argument("--rng", choices=["mulberry32", "philox"], default="mulberry32")
    p.set_defaults(func=cmd_coin_compare)

    p = sub.add_parser("paper", parents=[common, model, window, bankroll], help="Paper PnL backtest")
    p.add_argument("--selection-mode", choices=["edge", "top_pick"], default="edge")
    p.add_argument("--edge-min", type=float, default=0.015)
    p.add_argument("--max-bets-per-event", type=int, default=1)
    p.add_argument("--kelly-fraction", type=float, default=0.25)
    p.add_argument("--kelly-cap", type=float, default=0.03)
    p.add_argument("--predictions-out", default=None, help="Per-record predictions CSV")
    p.add_argument("--save-model", default=None, help="Persist the trained model (joblib)")
    p.set_defaults(func=cmd_paper)

    # Governance names its own report and artifacts under --governance-dir.
    p = sub.add_parser("govern", parents=[_common_parser(with_out=False), model, window], help="Full governance run")
    p.add_argument("--governance-dir", default=str(GOVERNANCE_DIR))
    p.add_argument("--coin-seeds", type=int, default=200)
    p.add_argument("--bootstrap-samples", type=int, default=1000)
    p.add_argument("--strict-integrity", action="store_true")
    p.add_argument("--min-wf-roi-mean", type=float, default=0.0)
    p.add_argument("--min-wf-beat-coin-mean", type=float, default=0.9)
    p.add_argument("--min-conf-ab-roi", type=float, default=0.0)
    p.add_argument("--min-conf-ab-bets", type=int, default=20)
    p.set_defaults(func=cmd_govern)

    p = sub.add_parser("publish", help="Publish provisional policy")
    p.add_argument("--governance-dir", default=str(GOVERNANCE_DIR))
    p.add_argument("--out", default=str(DEFAULT_PROVISIONAL_PATH))
    p.add_argument("--policy", choices=["A_only", "A_B", "all"], default="A_B")
    p.add_argument("--valid-days", type=int, default=30)
    p.add_argument("--log-level", default=LOG_LEVEL)
    p.set_defaults(func=cmd_publish)

    p = sub.add_parser("enforce", help="Evaluate runtime policy")
    p.add_argument("--provisional-state", default=str(DEFAULT_PROVISIONAL_PATH))
    p.add_argument("--governance-dir", default=str(GOVERNANCE_DIR))
    p.add_argument("--out", default=str(DEFAULT_RUNTIME_PATH))
    p.add_argument("--fallback-policy", choices=["A_only", "A_B", "all"], default="A_only")
    p.add_argument("--min-conf-ab-bets", type=int, default=20)
    p.add_argument("--log-level", default=LOG_LEVEL)
    p.set_defaults(func=cmd_enforce)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except EdgeGuardError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
