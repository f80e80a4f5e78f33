#!/usr/bin/env python3
"""Seed the database with the sample ProjectHub catalog and a demo customer.

Usage:
    python scripts/seed_catalog.py
    # then:
    planwise check demo-customer projecthub
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from planwise_engine.catalog.service import CatalogService
from planwise_engine.catalog.templates import seed_sample_catalog
from planwise_engine.common.config import get_settings
from planwise_engine.common.database import DatabaseManager
from planwise_engine.subscriptions.service import SubscriptionService

DEMO_CUSTOMER = "demo-customer"
DEMO_SUBSCRIPTION = "demo-customer-pro"


async def seed_catalog() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    catalog = CatalogService()
    subscriptions = SubscriptionService(settings)

    async with db.get_session() as session:
        created = await seed_sample_catalog(session, catalog)
        print(f"  [plans] {created} created")

        if await catalog.get_customer_by_key(session, DEMO_CUSTOMER) is None:
            await catalog.create_customer(session, DEMO_CUSTOMER, display_name="Demo Customer")
            print(f"  [created] customer {DEMO_CUSTOMER}")

        if await subscriptions.get_subscription(session, DEMO_SUBSCRIPTION) is None:
            await subscriptions.create_subscription(
                session, DEMO_SUBSCRIPTION, DEMO_CUSTOMER, "projecthub-pro-monthly"
            )
            await subscriptions.add_feature_override(
                session, DEMO_SUBSCRIPTION, "projecthub.api-access", "true", "temporary"
            )
            print(f"  [created] subscription {DEMO_SUBSCRIPTION} with temporary API access")
        else:
            print(f"  [skip] subscription {DEMO_SUBSCRIPTION} already exists")

    await db.close()
    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
