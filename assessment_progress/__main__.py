from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Iterable, Optional

from .app.progress import ProgressClient
from .config import load_config
from .domain.progress import ProgressChanged, ProgressError, derive_stats

LOG = logging.getLogger("assessment_progress.cli")


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _abort(message: str) -> int:
    print(message, file=sys.stderr)
    return 1


def _build_client(args: argparse.Namespace) -> ProgressClient:
    config = load_config(args.config)
    return ProgressClient.default(config)


def _handle_snapshot(client: ProgressClient, args: argparse.Namespace) -> int:
    progress = client.fetcher.fetch_snapshot(args.assessment_id)
    _emit(progress.to_serialisable())
    return 0


def _handle_stats(client: ProgressClient, args: argparse.Namespace) -> int:
    progress = client.fetcher.fetch_snapshot(args.assessment_id)
    _emit(derive_stats(progress).to_serialisable())
    return 0


def _handle_history(client: ProgressClient, args: argparse.Namespace) -> int:
    history = client.fetcher.fetch_history(
        args.user_id,
        limit=args.limit,
        offset=args.offset,
        date_from=args.date_from,
        date_to=args.date_to,
    )
    _emit([item.to_serialisable() for item in history])
    return 0


def _handle_watch(client: ProgressClient, args: argparse.Namespace) -> int:
    store = client.store
    assessment_id = args.assessment_id
    finished = threading.Event()

    def on_change(event: ProgressChanged) -> None:
        _emit(
            {
                "domain": event.update.domain_id,
                "overallStatus": event.progress.overall_status.value,
                "stats": store.get_stats(assessment_id).to_serialisable(),
            }
        )
        if event.progress.is_complete:
            finished.set()

    def on_degraded(error: ProgressError) -> None:
        finished.set()

    store.on_change(assessment_id, on_change)
    store.on_degraded(assessment_id, on_degraded)
    store.track(assessment_id)
    current = store.get_current(assessment_id)
    _emit(
        {
            "overallStatus": current.overall_status.value,
            "stats": store.get_stats(assessment_id).to_serialisable(),
        }
    )
    if current.is_complete:
        return 0
    finished.wait(timeout=args.max_seconds)
    if store.is_degraded(assessment_id):
        return _abort(f"progress updates for {assessment_id} are degraded")
    return 0


def run_cli(argv: Optional[Iterable[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="assessment_progress", description="Assessment progress client")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot_parser = subparsers.add_parser("snapshot", help="Print the current progress snapshot")
    snapshot_parser.add_argument("assessment_id")

    stats_parser = subparsers.add_parser("stats", help="Print derived progress statistics")
    stats_parser.add_argument("assessment_id")

    watch_parser = subparsers.add_parser("watch", help="Stream progress changes as JSON lines")
    watch_parser.add_argument("assessment_id")
    watch_parser.add_argument("--max-seconds", type=float, default=None, help="Stop watching after this many seconds")

    history_parser = subparsers.add_parser("history", help="Print a user's progress history")
    history_parser.add_argument("user_id")
    history_parser.add_argument("--limit", type=int, default=None)
    history_parser.add_argument("--offset", type=int, default=None)
    history_parser.add_argument("--date-from", default=None)
    history_parser.add_argument("--date-to", default=None)

    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    handlers = {
        "snapshot": _handle_snapshot,
        "stats": _handle_stats,
        "watch": _handle_watch,
        "history": _handle_history,
    }
    try:
        client = _build_client(args)
    except (OSError, ValueError) as exc:
        return _abort(f"invalid configuration: {exc}")
    with client:
        try:
            return handlers[args.command](client, args)
        except ProgressError as exc:
            LOG.debug("command %s failed", args.command, exc_info=True)
            return _abort(f"{exc.code}: {exc}")


if __name__ == "__main__":
    sys.exit(run_cli())
