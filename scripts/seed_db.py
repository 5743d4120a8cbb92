"""
Seed script for the Crime Alert Hub mock DB or Firestore.

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured DB: python scripts/seed_db.py --apply
  - Force mock DB even if FIREBASE configured: python scripts/seed_db.py --apply --force-mock
  - Custom seed file: python scripts/seed_db.py --seed ./my_seed.json --apply

Behavior:
  - Loads a JSON list of reports (default: built-in sample reports).
  - Each entry is {"reporter_id": ..., "report": {ReportCreate fields}, "confirmed_by": [...]}.
  - Reports go through ReportService so severity, trust score and verification
    level are derived exactly as for API submissions; confirmations go through
    the vote ledger.

NOTE: When applying to real Firestore, ensure `FIREBASE_CREDENTIALS_PATH` and `USE_MOCK_DB=false` are set in `.env`.
Attachments in seed data must be hosted URLs (no uploads are performed).
"""

import argparse
import json
import os
from typing import Any, Dict, List

SAMPLE_REPORTS: List[Dict[str, Any]] = [
    {
        "reporter_id": "seed_user_1",
        "report": {
            "title": "Phone snatched outside the market",
            "description": "Two men on a motorbike grabbed a phone near the east gate.",
            "category": "robbery",
            "latitude": 21.0285,
            "longitude": 105.8542,
            "address": "12 Hang Bac, Hoan Kiem",
            "province": "Hanoi",
            "district": "Hoan Kiem",
            "attachments": ["https://example.com/evidence/robbery-1.jpg"],
        },
        "confirmed_by": ["seed_user_2", "seed_user_3"],
    },
    {
        "reporter_id": "seed_user_2",
        "report": {
            "title": "Man following children after school",
            "category": "suspicious_activity",
            "latitude": 21.0301,
            "longitude": 105.8490,
            "province": "Hanoi",
            "district": "Hoan Kiem",
        },
        "confirmed_by": [],
    },
    {
        "reporter_id": "seed_user_3",
        "report": {
            "description": "Bicycle stolen from the parking lot overnight.",
            "category": "theft",
            "address": "45 Kim Ma, Ba Dinh",
            "province": "Hanoi",
            "district": "Ba Dinh",
        },
        "confirmed_by": ["seed_user_1"],
    },
]


def load_seed(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_to_db(entries: List[Dict[str, Any]], apply: bool = False):
    from app.models.report import ReportCreate
    from app.services.report_service import get_report_service
    from app.services.vote_service import get_vote_service

    for entry in entries:
        report = ReportCreate.model_validate(entry["report"])
        print(f"Preparing: {entry['reporter_id']} -> {report.title or report.description}")
        if not apply:
            continue
        try:
            created = get_report_service().create(entry["reporter_id"], report)
            for voter_id in entry.get("confirmed_by", []):
                get_vote_service().confirm(created.id, voter_id)
            refreshed = get_report_service().get(created.id)
            print(f"Wrote: crime_reports/{created.id} (score={refreshed.trust_score}, level={refreshed.verification_level})")
        except Exception as e:
            print(f"Failed to write report by {entry['reporter_id']}: {e}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to the DB instead of dry-run")
    parser.add_argument("--force-mock", action="store_true", help="Force use of mock DB even if FIREBASE configured")
    parser.add_argument("--seed", default=None, help="Path to a JSON list of seed reports")
    args = parser.parse_args()

    # Must be set before app.core.settings is imported
    if args.force_mock:
        os.environ["USE_MOCK_DB"] = "true"

    if args.seed:
        if not os.path.exists(args.seed):
            print(f"Seed file not found: {args.seed}")
            return
        entries = load_seed(args.seed)
    else:
        entries = SAMPLE_REPORTS

    from app.config.firebase import get_db
    from app.core.settings import settings

    if args.apply:
        get_db()
        target = "mock DB" if settings.USE_MOCK_DB else "Firestore"
        print(f"Seeding {len(entries)} report(s) into {target}")

    write_to_db(entries, apply=args.apply)
    if not args.apply:
        print("Dry run complete. Re-run with --apply to write.")


if __name__ == "__main__":
    main()
