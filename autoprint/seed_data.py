"""
Database seeding script for local development.

Creates two students with a document each, tops up their balances with
verified payments (so the balances flow through the ledger), and prints a
student token for each.
Run this script after the database is set up.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from autoprint.app.core.config import settings
from autoprint.app.core.jwt import create_access_token
from autoprint.app.db.session import AsyncSessionLocal, engine, Base
from autoprint.app.domain.billing.payment_verifier import PaymentVerifier
from autoprint.app.models.account import Account
from autoprint.app.models.document import Document
from autoprint.app.models.enums import AccountRole
from autoprint.app.models.billing_enums import PaymentMethod
from autoprint.app.models.print_job_enums import ColorMode

# Imported so every table is registered before create_all
from autoprint.app.models import payment, print_job, ledger_entry, pricing_rule, audit_log  # noqa: F401

STUDENTS = [
    {"username": "student1", "email": "student1@campus.edu", "full_name": "Student One",
     "student_id": "S-0001", "top_up": Decimal("100.00"), "color_mode": ColorMode.BLACK_AND_WHITE},
    {"username": "student2", "email": "student2@campus.edu", "full_name": "Student Two",
     "student_id": "S-0002", "top_up": Decimal("50.00"), "color_mode": ColorMode.COLOR},
]


async def seed_data():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(select(Account).where(Account.username == STUDENTS[0]["username"]))
        if result.scalar_one_or_none():
            print("ℹ️  Students already exist, skipping seeding")
            return

        for profile in STUDENTS:
            account = Account(
                email=profile["email"],
                username=profile["username"],
                full_name=profile["full_name"],
                student_id=profile["student_id"],
                role=AccountRole.STUDENT,
                is_active=True
            )
            db.add(account)
            await db.flush()

            db.add(Document(
                account_id=account.id,
                original_name=f"{profile['username']}-notes.pdf",
                file_name=f"{profile['username']}-notes-0001.pdf",
                mime_type="application/pdf",
                file_size=204800,
                page_count=10,
                color_mode=profile["color_mode"]
            ))
            await db.commit()

            payment_record = await PaymentVerifier.create_payment(
                db, account.id, profile["top_up"], PaymentMethod.MOBILE_WALLET
            )
            await PaymentVerifier.verify(db, payment_record.id, settings.admin_username, notes="Seed top-up")

            token = create_access_token(
                data={"sub": account.username, "account_id": account.id, "role": AccountRole.STUDENT.value}
            )
            print(f"✅ Created {account.username} with balance {profile['top_up']} {settings.currency}")
            print(f"   token: {token}")

        print(f"\nOperator login: {settings.admin_username} / {settings.admin_password}")


if __name__ == "__main__":
    asyncio.run(seed_data())
