# leadsync/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from leadsync import __version__
from leadsync.config import (
    LOG_LEVEL,
    AppConfig,
    load_config,
    load_mautic_settings,
    load_neverbounce_settings,
)
from leadsync.exceptions import ConfigurationError, StageAlreadyRunningError
from leadsync.export import run_export
from leadsync.export.mautic import MauticClient
from leadsync.ingest import run_import, sources_from_config
from leadsync.lock import stage_lock
from leadsync.logs import BatchLogger, configure_logging, new_batch_id
from leadsync.store import STATUS_VALID, ContactStore, StoreStatistics
from leadsync.verify import VerificationOrchestrator, run_verify
from leadsync.verify.neverbounce import NeverBounceClient

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_ALREADY_RUNNING = 3


# ---- stages ---------------------------------------------------------------------


def _stage_import(cfg: AppConfig, store: ContactStore, batch_id: str) -> None:
    run_import(store, sources_from_config(cfg.sources), batch_id=batch_id)


def _stage_verify(cfg: AppConfig, store: ContactStore, batch_id: str) -> None:
    settings = load_neverbounce_settings()
    with NeverBounceClient(settings) as client:
        orchestrator = VerificationOrchestrator(
            client,
            poll_interval_s=settings.poll_interval_s,
            poll_timeout_s=settings.poll_timeout_s,
        )
        run_verify(store, orchestrator, cfg.verify, batch_id=batch_id)


def _stage_export(cfg: AppConfig, store: ContactStore, batch_id: str) -> None:
    with MauticClient(load_mautic_settings()) as client:
        run_export(store, client, cfg.export, batch_id=batch_id)


StageFn = Callable[[AppConfig, ContactStore, str], None]

STAGES: dict[str, StageFn] = {
    "import": _stage_import,
    "verify": _stage_verify,
    "export": _stage_export,
}

# Checked before the lock is taken so a misconfigured run never touches state.
_CREDENTIAL_CHECKS: dict[str, Callable[[], object]] = {
    "verify": load_neverbounce_settings,
    "export": load_mautic_settings,
}


def _run_stage(stage: str, cfg: AppConfig) -> int:
    check = _CREDENTIAL_CHECKS.get(stage)
    if check is not None:
        check()

    configure_logging(cfg.log_file, LOG_LEVEL)
    batch_id = new_batch_id(stage)
    blog = BatchLogger(log, batch_id)

    with stage_lock(stage, cfg.lock_dir):
        try:
            with ContactStore(cfg.state_db) as store:
                STAGES[stage](cfg, store, batch_id)
        except ConfigurationError as exc:
            blog.error(f"{stage} misconfigured", context={"stage": stage, "error": str(exc)})
            raise
        except Exception as exc:  # noqa: BLE001 - last line before exit code
            blog.error(
                f"{stage} failed",
                context={"stage": stage, "error": f"{type(exc).__name__}: {exc}"},
                exc_info=True,
            )
            return EXIT_FATAL
    return EXIT_OK


def _cmd_stage(args: argparse.Namespace) -> int:
    return _run_stage(args.command, load_config(args.config))


# ---- stats ----------------------------------------------------------------------


def _section(title: str) -> None:
    print(f"=== {title} ===")


def _pct(part: int, whole: int) -> str:
    if whole <= 0:
        return "   n/a"
    return f"{part * 100 / whole:5.1f}%"


def _print_totals(stats: StoreStatistics) -> None:
    _section("Contacts")
    print(f"  Total    : {stats.total}")
    print(f"  Verified : {stats.verified} ({_pct(stats.verified, stats.total).strip()})")
    print(f"  Pending  : {stats.pending} ({_pct(stats.pending, stats.total).strip()})")
    print()


def _print_verification(stats: StoreStatistics) -> None:
    _section("Verification")

    if not stats.by_status:
        print("  (no contacts verified yet)")
        print()
        return

    header = f"{'status':20} {'count':>8} {'share':>7}"
    print("  " + header)
    print("  " + "-" * len(header))
    for status, count in stats.by_status.items():
        print(f"  {status:20} {count:8d} {_pct(count, stats.verified):>7}")
    print()


def _print_export(stats: StoreStatistics) -> None:
    _section("Export")
    valid = stats.by_status.get(STATUS_VALID, 0)
    print(f"  Valid contacts : {valid}")
    print(f"  Exported       : {stats.exported} ({_pct(stats.exported, valid).strip()} of valid)")
    print(f"  Awaiting export: {stats.exportable} ({_pct(stats.exportable, valid).strip()} of valid)")
    print()


def _cmd_stats(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    with ContactStore(cfg.state_db, read_only=True) as store:
        stats = store.statistics()

    if args.format == "json":
        print(json.dumps(stats.as_dict(), indent=2, sort_keys=True))
        return EXIT_OK

    print("leadsync - contact store")
    print("========================")
    _print_totals(stats)
    _print_verification(stats)
    _print_export(stats)
    return EXIT_OK


# ---- entry point ----------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leadsync",
        description="Import, verify and export contacts kept in a local state database.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML config (default: $LEADSYNC_CONFIG or ./config.yaml).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "import", help="Pull configured sources into the state database."
    ).set_defaults(func=_cmd_stage)
    subparsers.add_parser(
        "verify", help="Verify one batch of contacts awaiting verification."
    ).set_defaults(func=_cmd_stage)
    subparsers.add_parser(
        "export", help="Publish one batch of verified, changed contacts to the CRM."
    ).set_defaults(func=_cmd_stage)

    stats_parser = subparsers.add_parser("stats", help="Print aggregate counters.")
    stats_parser.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    stats_parser.set_defaults(func=_cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except StageAlreadyRunningError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_ALREADY_RUNNING


if __name__ == "__main__":
    raise SystemExit(main())
