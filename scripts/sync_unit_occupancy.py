"""
Reconcile unit occupancy with lease statuses.

Sets units with an ACTIVE lease to OCCUPIED and units without one to VACANT.
Safe to run repeatedly; a second run with no lease changes reports 0/0.

Usage:
    python scripts/sync_unit_occupancy.py [--dry-run]
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from leasekeeper.db import SessionLocal
from leasekeeper.logging import setup_logging
from leasekeeper.services.occupancy import reconcile_unit_occupancy, sync_lease_and_unit_statuses


def sync_unit_occupancy(dry_run: bool = False) -> dict:
    db = SessionLocal()
    try:
        if dry_run:
            result = reconcile_unit_occupancy(db)
            db.rollback()
            print("[DRY RUN] No changes were written")
        else:
            result = sync_lease_and_unit_statuses(db)
        print(f"Units set OCCUPIED: {result['occupied_count']}")
        print(f"Units set VACANT:   {result['vacant_count']}")
        return result
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reconcile unit occupancy with lease statuses")
    parser.add_argument("--dry-run", action="store_true", help="Dry run mode - don't make changes")
    args = parser.parse_args()

    setup_logging()
    sync_unit_occupancy(dry_run=args.dry_run)
