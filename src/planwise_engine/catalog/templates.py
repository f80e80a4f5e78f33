"""Sample catalog used by ``planwise seed`` and the demo script.

One product with three plans. Feature keys follow the convention
``{product}.{capability}``; every plan value is a raw string validated
against the feature's value type when it is written.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from planwise_engine.catalog.service import CatalogService

logger = logging.getLogger(__name__)

SAMPLE_PRODUCT = {
    "key": "projecthub",
    "display_name": "ProjectHub",
    "description": "Project management suite",
}

SAMPLE_FEATURES = [
    {
        "key": "projecthub.max-projects",
        "display_name": "Maximum projects",
        "value_type": "numeric",
        "default_value": "3",
    },
    {
        "key": "projecthub.gantt-charts",
        "display_name": "Gantt charts",
        "value_type": "toggle",
        "default_value": "false",
    },
    {
        "key": "projecthub.api-access",
        "display_name": "API access",
        "value_type": "toggle",
        "default_value": "false",
    },
    {
        "key": "projecthub.support-tier",
        "display_name": "Support tier",
        "value_type": "text",
        "default_value": "community",
    },
]

# plan key -> feature key -> value; features not listed fall back to their default
SAMPLE_PLANS = {
    "projecthub-free": {
        "display_name": "Free",
        "values": {},
        "cycles": [("projecthub-free-forever", "Forever", 1, "forever")],
    },
    "projecthub-pro": {
        "display_name": "Pro",
        "values": {
            "projecthub.max-projects": "50",
            "projecthub.gantt-charts": "true",
            "projecthub.support-tier": "email",
        },
        "cycles": [
            ("projecthub-pro-monthly", "Monthly", 1, "months"),
            ("projecthub-pro-annual", "Annual", 1, "years"),
        ],
    },
    "projecthub-enterprise": {
        "display_name": "Enterprise",
        "values": {
            "projecthub.max-projects": "1000",
            "projecthub.gantt-charts": "true",
            "projecthub.api-access": "true",
            "projecthub.support-tier": "dedicated",
        },
        "cycles": [("projecthub-enterprise-annual", "Annual", 1, "years")],
    },
}


async def seed_sample_catalog(session: AsyncSession, svc: CatalogService | None = None) -> int:
    """Create the sample catalog, skipping entities that already exist.

    Returns the number of plans created.
    """
    svc = svc or CatalogService()
    product_key = SAMPLE_PRODUCT["key"]

    if await svc.get_product_by_key(session, product_key) is None:
        await svc.create_product(
            session,
            key=product_key,
            display_name=SAMPLE_PRODUCT["display_name"],
            description=SAMPLE_PRODUCT["description"],
        )

    for feature_def in SAMPLE_FEATURES:
        if await svc.get_feature_by_key(session, feature_def["key"]) is None:
            await svc.create_feature(session, **feature_def)
        await svc.add_feature_to_product(session, product_key, feature_def["key"])

    created = 0
    for plan_key, plan_def in SAMPLE_PLANS.items():
        if await svc.get_plan_by_key(session, plan_key) is not None:
            logger.info("Plan %s already exists; skipped", plan_key)
            continue
        await svc.create_plan(session, product_key, plan_key, plan_def["display_name"])
        for feature_key, value in plan_def["values"].items():
            await svc.set_plan_feature_value(session, plan_key, feature_key, value)
        for cycle_key, name, duration_value, duration_unit in plan_def["cycles"]:
            await svc.create_billing_cycle(
                session, plan_key, cycle_key, name,
                duration_value=duration_value, duration_unit=duration_unit,
            )
        created += 1
    return created
