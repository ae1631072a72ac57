"""Command-line entry point for scheduled reconciliation (cron, every few hours)."""
import argparse
import json
import re
import sys
from datetime import datetime, timedelta, timezone

from inventory_sync.core.observability import setup_observability
from inventory_sync.db.session import SessionLocal
from inventory_sync.services.reconciliation_service import RUN_COMPLETED, default_window, reconcile

_SINCE_PATTERN = re.compile(r"^(\d+)\s*([hd])$", re.IGNORECASE)


def parse_since(value: str) -> timedelta:
    match = _SINCE_PATTERN.match(value.strip())
    if not match:
        raise argparse.ArgumentTypeError("--since must look like 12h or 7d")
    amount, unit = int(match.group(1)), match.group(2).lower()
    return timedelta(hours=amount) if unit == "h" else timedelta(days=amount)


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 timestamp: {value}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inventory-sync-reconcile",
        description="Apply completed point-of-sale orders the webhooks missed.",
    )
    parser.add_argument("--start", type=parse_timestamp, help="Window start (ISO-8601)")
    parser.add_argument("--end", type=parse_timestamp, help="Window end (ISO-8601), defaults to now")
    parser.add_argument("--since", type=parse_since, help="Window length ending now, e.g. 24h or 7d")
    parser.add_argument("--seller", help="Only reconcile pieces of this seller code")
    return parser


def resolve_window(args: argparse.Namespace, now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    if args.since is not None and args.start is not None:
        raise ValueError("--since and --start are mutually exclusive")
    end = args.end or now
    if args.since is not None:
        return end - args.since, end
    if args.start is not None:
        return args.start, end
    return default_window(end)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        window_start, window_end = resolve_window(args)
    except ValueError as exc:
        parser.error(str(exc))

    setup_observability()
    db = SessionLocal()
    try:
        summary = reconcile(
            db,
            window_start=window_start,
            window_end=window_end,
            seller_code=args.seller,
        )
    except ValueError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}), file=sys.stderr)
        return 1
    finally:
        db.close()

    print(json.dumps(summary.as_dict()))
    return 0 if summary.status == RUN_COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
