"""Audit (and optionally repair) a month's overtime summaries.

Usage:
    python scripts/recompute_summaries.py MONTH YEAR           # report drift only
    python scripts/recompute_summaries.py MONTH YEAR --apply   # rewrite drifting rows
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.overtime_ledger.overtime_ledger.container import build_container
from src.overtime_ledger.overtime_ledger.core.exceptions import DomainError, StorageFailure


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("month", type=int)
    parser.add_argument("year", type=int)
    parser.add_argument("--apply", action="store_true", help="rewrite drifting summaries from their entries")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(level=getattr(logging, str(getattr(settings, "LOG_LEVEL", "INFO")).upper(), logging.INFO))

    service = build_container(db_config=dict(settings.DB_CONFIG)).ledger_service
    try:
        drifts = service.recompute_month(args.month, args.year) if args.apply else service.audit_month(args.month, args.year)
    except (DomainError, StorageFailure) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for d in drifts:
        stored = "missing" if d.stored is None else f"{d.stored.overtime_minutes}/{d.stored.paid_minutes}/{d.stored.unpaid_minutes}"
        fresh = f"{d.recomputed.overtime_minutes}/{d.recomputed.paid_minutes}/{d.recomputed.unpaid_minutes}"
        print(f"worker={d.key.worker_id} {d.key.month}/{d.key.year} stored={stored} entries={fresh} ({d.entry_count} entries)")

    verb = "Repaired" if args.apply else "Found"
    print(f"{verb} {len(drifts)} drifting summary row(s) for {args.month}/{args.year}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
