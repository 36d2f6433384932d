#!/usr/bin/env python3
# scripts/check_db.py - Check database connection and ledger consistency
import sys
import os
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import inspect, select

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from academy_ledger.core.config import settings
from academy_ledger.core.db import db_manager
from academy_ledger.models import Base, PaymentAllocation, PaymentPlanRow, PaymentTransaction, WalletBalance


def check_database_connection() -> bool:
    """Check if database connection is working and list the ledger tables"""
    print("Database Connection Check")
    print("=" * 40)
    print(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else settings.DATABASE_URL}")
    print("-" * 40)

    health = db_manager.health_check()
    if health["status"] != "healthy":
        print(f"Connection failed: {health.get('error')}")
        print("\nTroubleshooting:")
        print("1. Check that the database server is running")
        print("2. Verify DATABASE_URL in the .env file")
        print("3. Apply migrations: alembic upgrade head")
        return False

    print(f"Connection successful ({health['database']}, {health['response_time_ms']} ms)")

    existing = set(inspect(db_manager.engine).get_table_names())
    expected = set(Base.metadata.tables)
    missing = sorted(expected - existing)
    print(f"Tables in database: {len(existing)}")
    if missing:
        print("Missing ledger tables (run 'alembic upgrade head'):")
        for table in missing:
            print(f"  - {table}")
        return False
    return True


def check_ledger_consistency() -> bool:
    """
    Verify the stored running totals against the allocation and wallet journals.

    paid_total of each plan row must equal the confirmed allocations funding
    it, and every wallet balance must equal the sum of its entries.
    """
    problems = 0
    with db_manager.transaction() as session:
        allocated = defaultdict(lambda: Decimal("0.00"))
        rows = session.execute(
            select(PaymentAllocation.plan_id, PaymentAllocation.amount_allocated)
            .join(PaymentTransaction, PaymentAllocation.payment_id == PaymentTransaction.id)
            .where(PaymentTransaction.status == "confirmed")
        ).all()
        for plan_id, amount in rows:
            allocated[plan_id] += amount

        plans = session.execute(select(PaymentPlanRow)).scalars().all()
        for plan in plans:
            if plan.paid_total != allocated[plan.id]:
                problems += 1
                print(
                    f"  Plan {plan.student_id}/{plan.course_id} {plan.month_reference}: "
                    f"paid_total={plan.paid_total} allocations={allocated[plan.id]}"
                )

        wallets = session.execute(select(WalletBalance)).scalars().all()
        for wallet in wallets:
            journal = sum((entry.amount for entry in wallet.entries), Decimal("0.00"))
            if wallet.balance != journal:
                problems += 1
                print(f"  Wallet {wallet.student_id}/{wallet.course_id}: balance={wallet.balance} entries={journal}")

        print(f"Checked {len(plans)} plan rows and {len(wallets)} wallets")

    if problems:
        print(f"{problems} inconsistencies found")
        return False
    print("Ledger is consistent")
    return True


if __name__ == "__main__":
    ok = check_database_connection() and check_ledger_consistency()
    sys.exit(0 if ok else 1)
