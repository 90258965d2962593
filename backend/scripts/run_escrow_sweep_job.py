#!/usr/bin/env python3
"""
Escrow sweep job runner

Expires stale payment links, auto-releases shipped orders, sends delivery
reminders, processes pending refunds and reports overdue disputes.
Designed to be run by cron (hourly). It can also be executed manually to
replay a past instant.

Usage:
    # Regular run (now, UTC)
    python -m scripts.run_escrow_sweep_job

    # Dry-run (simulation, nothing committed or notified)
    python -m scripts.run_escrow_sweep_job --dry-run

    # Replay a specific instant
    python -m scripts.run_escrow_sweep_job --as-of 2026-10-01T12:00:00

    # Cap items per sweep
    python -m scripts.run_escrow_sweep_job --max-items 500
"""

import argparse
import json
import sys
from datetime import date, datetime, timezone
from typing import Optional

# Add backend to path
sys.path.insert(0, '.')

from payloom.infrastructure.database import SessionLocal
from payloom.infrastructure.logging_config import setup_logging, trace_id_context
from payloom.infrastructure.settings import get_settings
from payloom.services.notifications import get_notifier
from payloom.services.sweep_service import run_escrow_sweep, SweepError


def generate_trace_id(as_of: datetime) -> str:
    """
    Generate a unique trace_id for the job run.

    Format: job-escrow-sweep-YYYYMMDDHHMM-<shortuuid>
    """
    from uuid import uuid4
    stamp = as_of.strftime('%Y%m%d%H%M')
    short_uuid = str(uuid4())[:8]
    return f"job-escrow-sweep-{stamp}-{short_uuid}"


def parse_as_of(as_of_str: Optional[str]) -> datetime:
    """
    Parse --as-of argument or default to now UTC.

    Accepts an ISO datetime or a bare YYYY-MM-DD date (midnight UTC).
    Naive values are taken as UTC.
    """
    if not as_of_str:
        return datetime.now(timezone.utc)
    try:
        if len(as_of_str) == 10:
            parsed = datetime.combine(date.fromisoformat(as_of_str), datetime.min.time())
        else:
            parsed = datetime.fromisoformat(as_of_str)
    except ValueError:
        raise ValueError(f"Invalid --as-of: {as_of_str}. Expected YYYY-MM-DD or ISO datetime")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def main():
    """Main entry point for the job runner"""
    parser = argparse.ArgumentParser(
        description='Run escrow sweep job',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--as-of',
        type=str,
        default=None,
        help='Instant used for expiry and release checks (default: now UTC)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Simulate without committing or notifying (default: false)'
    )

    parser.add_argument(
        '--max-items',
        type=int,
        default=200,
        help='Maximum items per sweep in one run (default: 200)'
    )

    args = parser.parse_args()

    setup_logging(get_settings().LOG_LEVEL)

    try:
        as_of = parse_as_of(args.as_of)
    except ValueError as e:
        print(json.dumps({
            "job": "escrow_sweep",
            "error": str(e),
            "exit_code": 1
        }), file=sys.stderr)
        sys.exit(1)

    trace_id = generate_trace_id(as_of)
    token = trace_id_context.set(trace_id)

    db = SessionLocal()

    try:
        summary = run_escrow_sweep(
            db=db,
            now=as_of,
            notifier=get_notifier(),
            dry_run=args.dry_run,
            max_items=args.max_items,
        )

        output = {
            "job": "escrow_sweep",
            "trace_id": trace_id,
            "as_of": as_of.isoformat(),
            "dry_run": args.dry_run,
            "summary": summary,
            "exit_code": 0 if summary['errors_count'] == 0 else 1
        }

        print(json.dumps(output))
        sys.exit(output["exit_code"])

    except SweepError as e:
        print(json.dumps({
            "job": "escrow_sweep",
            "trace_id": trace_id,
            "as_of": as_of.isoformat(),
            "dry_run": args.dry_run,
            "error": str(e),
            "exit_code": 1
        }), file=sys.stderr)
        sys.exit(1)

    except Exception as e:
        print(json.dumps({
            "job": "escrow_sweep",
            "trace_id": trace_id,
            "as_of": as_of.isoformat(),
            "dry_run": args.dry_run,
            "error": f"Unexpected error: {type(e).__name__}: {str(e)}",
            "exit_code": 1
        }), file=sys.stderr)
        sys.exit(1)

    finally:
        db.close()
        trace_id_context.reset(token)


if __name__ == "__main__":
    main()
