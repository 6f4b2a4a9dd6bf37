from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from tracker_core.config import get_settings
from tracker_core.quality import HistoryQualityChecker
from tracker_core.parsers import TimestampParser
from tracker_core.reconciliation import ReconciliationEngine
from tracker_core.sync import compute_status_sync
from tracker_clients.sheet_client import SheetExportLoader, apply_changes, save_equipment

log = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def default_output_path(equipment_path: str) -> Path:
    path = Path(equipment_path)
    return path.with_name(f"{path.stem}.synced{path.suffix}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Reconcile the check-out history and sync equipment status."
    )
    p.add_argument("--history", required=True, help="Form responses export (.csv or .xlsx).")
    p.add_argument("--equipment", required=True, help="Equipment table export (.csv or .xlsx).")
    p.add_argument("--output", help="Where to write the updated equipment table (defaults to <equipment>.synced.<ext>).")
    p.add_argument("--dry-run", action="store_true", help="Report changes without writing.")
    p.add_argument("--force-update-all", action="store_true", help="Rewrite every eligible row.")
    p.add_argument("--log-level", default=None, help="Overrides ALAT_LOG_LEVEL.")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    loader = SheetExportLoader(args.history, args.equipment)
    try:
        sheets = loader.load_all()
    except (FileNotFoundError, ValueError) as exc:
        log.error("Cannot read exports: %s", exc)
        return 2

    engine = ReconciliationEngine(timestamp_parser=TimestampParser(settings.sheet_timezone))
    reconciliation = engine.reconcile(sheets.history)
    quality = HistoryQualityChecker().run(reconciliation)
    result = compute_status_sync(
        sheets.equipment,
        reconciliation,
        history_record_count=len(sheets.history),
        force_update_all=args.force_update_all,
        dry_run=args.dry_run,
    )

    if not args.dry_run and result.changes:
        updated = apply_changes(sheets.equipment_frame, result.changes)
        save_equipment(updated, args.output or default_output_path(args.equipment))

    report = result.to_dict()
    report["reconciliation"] = reconciliation.summary()
    report["quality"] = {
        "summary": quality.summary(),
        "issues": [
            {"type": i.issue_type, "severity": i.severity, "count": i.count, "description": i.description}
            for i in quality.issues
        ],
    }
    json.dump(report, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
