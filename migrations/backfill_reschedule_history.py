"""
Backfill reschedule history from existing waypoints

Creates a reschedule_history row for every waypoint that carries a rescheduled_date
but has no ledger entry yet. Waypoints already in the ledger are skipped, so running
this twice is a no-op the second time.

Run with: python migrations/backfill_reschedule_history.py [--user-id N]
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fieldroutes import models, models_billing, models_reschedule, models_route  # noqa: F401,E402
from fieldroutes.database import Base, SessionLocal, engine  # noqa: E402
from fieldroutes.domain.reschedule.service import RescheduleLedger  # noqa: E402


def upgrade(user_id=None):
    """Insert missing ledger entries"""
    Base.metadata.create_all(bind=engine, checkfirst=True)

    db = SessionLocal()
    try:
        result = RescheduleLedger(db).backfill(user_id)
        print(f"✅ Inserted {result['inserted']} entries")
        print(f"ℹ️  Skipped {result['skipped']} waypoints already in the ledger")
        return result
    finally:
        db.close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description='Backfill the reschedule history ledger')
    parser.add_argument('--user-id', type=int, default=None, help='Only backfill this owner')
    args = parser.parse_args()

    print("Running backfill...")
    upgrade(args.user_id)
    print("\n✅ Migration completed successfully!")
