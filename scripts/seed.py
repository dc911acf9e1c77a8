#!/usr/bin/env python3
"""
Seed script: creates a demo enterprise account with two branches and prints its API key.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eams.database import async_session_maker, engine
from eams.models import SubscriptionPlan
from eams.storage.directory import TenantDirectory
from eams.storage.repositories import create_account, create_branch

DEMO_USER_ID = "demo-user"

BRANCHES = [
    {"name": "Downtown", "code": "DT-01", "city": "Austin", "state": "TX", "zip_code": "78701"},
    {"name": "Riverside", "code": "RS-01", "city": "Austin", "state": "TX", "zip_code": "78741"},
]


async def seed():
    async with async_session_maker() as session:
        directory = TenantDirectory(session)
        existing = await directory.resolve_by_user_id(DEMO_USER_ID)
        if existing:
            # Keys are stored hashed, so the only way to print one is to rotate it.
            api_key = await directory.regenerate_key(existing.id)
            print("Account already exists, rotated its API key.")
            account = existing
        else:
            account, api_key = await create_account(
                session,
                {
                    "user_id": DEMO_USER_ID,
                    "name": "Demo Dry Cleaning Co",
                    "subscription_plan": SubscriptionPlan.GROWTH,
                    "billing_email": "billing@demo.example",
                    "monthly_quota": 10000,
                },
            )
            for fields in BRANCHES:
                await create_branch(session, account.id, fields)
            await session.commit()

    await engine.dispose()

    print("Seed complete.")
    print(f"Account ID: {account.id}")
    print(f"Tenant ID: {account.tenant_id}")
    print(f"API key (use as x-api-key header): {api_key}")


if __name__ == "__main__":
    asyncio.run(seed())
