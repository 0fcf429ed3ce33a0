#!/usr/bin/env python3
"""CLI tool to run chain checks and the passbook on a stored land record.

Usage:
    python run_checks.py <record_id_or_file>             # Run checks
    python run_checks.py <record_id_or_file> --trace     # Run with LANDRECORD_TRACE
    python run_checks.py <record_id_or_file> --passbook  # Also print the passbook
    python run_checks.py --list                          # List stored records
    python run_checks.py <record_id> --json              # Output raw JSON

Examples:
    python run_checks.py village-45
    python run_checks.py data/records/village-45.json --trace
    python run_checks.py --list
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Ensure the backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

from landrecord.config import NONDH_TYPE_LABELS, RECORDS_DIR, STATUS_LABELS


def list_records():
    """List all stored record files with summary info."""
    files = sorted(RECORDS_DIR.glob("*.json"))
    if not files:
        print("No record files found.")
        return

    print(f"\n{'Record ID':<24} {'Nondhs':>6} {'Details':>7} {'Slabs':>5}")
    print("─" * 48)
    for f in files:
        try:
            data = json.loads(f.read_text(encoding="utf-8"))
            print(
                f"{f.stem:<24} {len(data.get('nondhs') or []):>6} "
                f"{len(data.get('details') or []):>7} {len(data.get('year_slabs') or []):>5}"
            )
        except (OSError, json.JSONDecodeError) as e:
            print(f"{f.stem:<24}  ERROR: {e}")
    print()


def resolve_record_path(record_ref: str) -> Path:
    """Find a record by file path, exact id or id prefix."""
    path = Path(record_ref)
    if path.exists():
        return path

    matches = list(RECORDS_DIR.glob(f"{record_ref}*.json"))
    exact = [m for m in matches if m.stem == record_ref]
    if exact:
        return exact[0]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        print(f"Ambiguous ID '{record_ref}' — matches: {[m.stem for m in matches]}")
        sys.exit(1)
    print(f"Record '{record_ref}' not found.")
    sys.exit(1)


def run_checks(record_path: Path, trace: bool = False, output_json: bool = False, passbook: bool = False):
    """Resolve the chain of a record file and print its check results."""
    if trace:
        os.environ["LANDRECORD_TRACE"] = "1"
        import importlib
        import landrecord.config
        importlib.reload(landrecord.config)

    import logging
    if trace:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    from landrecord.chain import (
        ChainError,
        ChainResolver,
        RecordStore,
        build_passbook,
        ordered_nondhs,
        run_chain_checks,
        summarize_passbook,
    )

    store = RecordStore(records_dir=record_path.parent)
    try:
        snapshot = ChainResolver().resolve(store.load_snapshot(record_path.stem))
    except ChainError as e:
        print(f"Cannot resolve chain: [{e.code}] {e.message}")
        sys.exit(2)

    checks = run_chain_checks(snapshot)
    rows = build_passbook(snapshot) if passbook else []

    if output_json:
        output = {"checks": checks}
        if passbook:
            output["passbook"] = [r.to_dict() for r in rows]
            output["passbook_summary"] = summarize_passbook(rows)
        print(json.dumps(output, indent=2, default=str, ensure_ascii=False))
        return

    # ── Pretty print results ──
    print(f"\n{'═' * 70}")
    print(f"  Chain Check Runner — {record_path.stem}: {len(snapshot.nondhs)} nondh(s)")
    print(f"{'═' * 70}\n")

    print("  CHAIN ORDER")
    print(f"  {'─' * 60}")
    for nondh in ordered_nondhs(snapshot):
        detail = snapshot.detail_for(nondh.id)
        if detail is None:
            print(f"  #{nondh.number:<5} (no detail)")
            continue
        valid = "valid" if detail.relations_valid else "suppressed"
        when = detail.effective_date.isoformat() if detail.effective_date else "—"
        type_label = f"{detail.type.value} ({NONDH_TYPE_LABELS.get(detail.type.value, detail.type.value)})"
        status_label = STATUS_LABELS.get(detail.status.value, detail.status.value)
        print(f"  #{nondh.number:<5} {type_label:<36} {status_label:<11} {when:<12} {valid}")
    print()

    if checks:
        print(f"  CHAIN CHECKS ({len(checks)} results)")
        print(f"  {'─' * 60}")
        for c in checks:
            status_icon = {"FAIL": "✗", "WARNING": "⚠", "INFO": "ℹ", "PASS": "✓"}.get(c["status"], "?")
            sev_color = {"CRITICAL": "🔴", "HIGH": "🟠", "MEDIUM": "🟡", "LOW": "🟢"}.get(c["severity"], "⚪")
            print(f"  {status_icon} {sev_color} [{c['rule_code']}] {c['rule_name']}")
            print(f"    {c['explanation'][:120]}")
            if c.get("evidence"):
                print(f"    Evidence: {c['evidence'][:100]}")
            print()
    else:
        print("  No chain check issues found.\n")

    if passbook:
        print(f"  PASSBOOK ({len(rows)} rows)")
        print(f"  {'─' * 60}")
        for r in rows:
            acres, gunthas = r.acre_guntha
            print(
                f"  {r.year}  {r.owner_name:<30} {r.area:>12.2f} m² ({acres} acre {gunthas} guntha)  "
                f"S.No {r.survey_number or '—'}  #{r.nondh_number}"
            )
        print()

    fail_count = sum(1 for c in checks if c["status"] == "FAIL")
    warn_count = sum(1 for c in checks if c["status"] == "WARNING")
    print(f"{'═' * 70}")
    print(f"  Summary: {fail_count} FAIL, {warn_count} WARNING")
    print(f"{'═' * 70}\n")


def main():
    parser = argparse.ArgumentParser(
        description="Land record CLI — Run chain checks on stored records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("record", nargs="?", help="Record ID (prefix) or JSON file path")
    parser.add_argument("--list", action="store_true", help="List stored records")
    parser.add_argument("--trace", action="store_true", help="Enable LANDRECORD_TRACE debug output")
    parser.add_argument("--json", action="store_true", help="Output raw JSON instead of pretty print")
    parser.add_argument("--passbook", action="store_true", help="Also print the passbook")

    args = parser.parse_args()

    if args.list:
        list_records()
        return

    if not args.record:
        parser.print_help()
        return

    run_checks(resolve_record_path(args.record), trace=args.trace, output_json=args.json, passbook=args.passbook)


if __name__ == "__main__":
    main()
