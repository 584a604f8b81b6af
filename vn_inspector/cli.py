import argparse
import json
import signal
import sys
import threading
from typing import List, Optional

from .config import InspectorConfig
from .errors import InspectorError
from .facade import InspectorSession


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_status(session: InspectorSession, args: argparse.Namespace) -> int:
    snapshot = session.sync_once()
    _print_json(snapshot.to_dict())
    return 1 if snapshot.error else 0


def cmd_watch(session: InspectorSession, args: argparse.Namespace) -> int:
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    session.start()
    while not stop.wait(args.report_every):
        _print_json(session.status())
    return 0


def cmd_tx(session: InspectorSession, args: argparse.Namespace) -> int:
    view = session.load_transaction_view(args.transaction_id, allow_partial=args.partial or None)
    _print_json(view.to_dict())
    return 2 if view.partial else 0


def cmd_recent(session: InspectorSession, args: argparse.Namespace) -> int:
    _print_json(session.recent_transactions())
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect a validator node.")
    parser.add_argument("config", help="Path to JSON inspector configuration.")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Sync once and print epoch, identity and shard key.")
    status.set_defaults(func=cmd_status)

    watch = sub.add_parser("watch", help="Run the epoch sync loop until interrupted.")
    watch.add_argument("--report-every", type=float, default=30.0, help="Seconds between status reports.")
    watch.set_defaults(func=cmd_watch)

    tx = sub.add_parser("tx", help="Print the per-shard pipeline timeline of a transaction.")
    tx.add_argument("transaction_id", help="Transaction (payload) id, hex encoded.")
    tx.add_argument("--partial", action="store_true", help="Return shards that loaded even if others failed.")
    tx.set_defaults(func=cmd_tx)

    recent = sub.add_parser("recent", help="List recent transactions known to the node.")
    recent.set_defaults(func=cmd_recent)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = InspectorConfig(args.config)
    with InspectorSession(config) as session:
        try:
            return args.func(session, args)
        except InspectorError as exc:
            print(f"[Inspector] {exc}", file=sys.stderr, flush=True)
            return 1


if __name__ == "__main__":
    sys.exit(main())
