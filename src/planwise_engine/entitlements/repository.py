"""Read-side loaders feeding the entitlement engine.

Each method is a single query. Relationships the engine needs (plan
feature values, subscription overrides) are joined eagerly so that a
customer-wide check costs a fixed number of round trips regardless of
how many features or subscriptions are involved.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from planwise_engine.catalog.entities import BillingCycle, Customer, Feature, Plan, Product
from planwise_engine.catalog.mappers import (
    to_billing_cycle,
    to_customer,
    to_feature,
    to_plan,
    to_product,
)
from planwise_engine.catalog.models import (
    BillingCycleModel,
    CustomerModel,
    FeatureModel,
    PlanModel,
    ProductFeatureModel,
    ProductModel,
)
from planwise_engine.subscriptions.entities import Subscription
from planwise_engine.subscriptions.mappers import to_subscription
from planwise_engine.subscriptions.models import SubscriptionModel


class EntitlementRepository:
    """Loads catalog and subscription state as engine entities."""

    async def get_customer_by_key(self, session: AsyncSession, key: str) -> Customer | None:
        result = await session.execute(select(CustomerModel).where(CustomerModel.key == key))
        row = result.scalar_one_or_none()
        return to_customer(row) if row else None

    async def get_product_by_key(self, session: AsyncSession, key: str) -> Product | None:
        result = await session.execute(select(ProductModel).where(ProductModel.key == key))
        row = result.scalar_one_or_none()
        return to_product(row) if row else None

    async def get_feature_by_key(self, session: AsyncSession, key: str) -> Feature | None:
        result = await session.execute(select(FeatureModel).where(FeatureModel.key == key))
        row = result.scalar_one_or_none()
        return to_feature(row) if row else None

    async def get_billing_cycle_by_key(
        self, session: AsyncSession, key: str
    ) -> BillingCycle | None:
        result = await session.execute(
            select(BillingCycleModel).where(BillingCycleModel.key == key)
        )
        row = result.scalar_one_or_none()
        return to_billing_cycle(row) if row else None

    async def get_plan_by_id(self, session: AsyncSession, plan_id: str) -> Plan | None:
        plans = await self.get_plans_by_ids(session, [plan_id])
        return plans.get(plan_id)

    async def get_plan_by_key(self, session: AsyncSession, key: str) -> Plan | None:
        result = await session.execute(
            select(PlanModel)
            .options(joinedload(PlanModel.feature_values))
            .where(PlanModel.key == key)
        )
        row = result.unique().scalar_one_or_none()
        return to_plan(row) if row else None

    async def get_plans_by_ids(
        self, session: AsyncSession, plan_ids: Iterable[str]
    ) -> dict[str, Plan]:
        """Load many plans with their feature values in one query, keyed by id."""
        ids = set(plan_ids)
        if not ids:
            return {}
        result = await session.execute(
            select(PlanModel)
            .options(joinedload(PlanModel.feature_values))
            .where(PlanModel.id.in_(ids))
        )
        return {row.id: to_plan(row) for row in result.unique().scalars().all()}

    async def get_subscription_by_key(
        self, session: AsyncSession, key: str
    ) -> Subscription | None:
        result = await session.execute(
            select(SubscriptionModel)
            .options(joinedload(SubscriptionModel.overrides))
            .where(SubscriptionModel.key == key)
        )
        row = result.unique().scalar_one_or_none()
        return to_subscription(row) if row else None

    async def get_subscriptions_for_customer(
        self, session: AsyncSession, customer_id: str
    ) -> list[Subscription]:
        """All of a customer's subscriptions with overrides, oldest first."""
        result = await session.execute(
            select(SubscriptionModel)
            .options(joinedload(SubscriptionModel.overrides))
            .where(SubscriptionModel.customer_id == customer_id)
            .order_by(SubscriptionModel.created_at, SubscriptionModel.key)
        )
        return [to_subscription(row) for row in result.unique().scalars().all()]

    async def get_features_for_product(
        self, session: AsyncSession, product_id: str
    ) -> list[Feature]:
        result = await session.execute(
            select(FeatureModel)
            .join(ProductFeatureModel, ProductFeatureModel.feature_id == FeatureModel.id)
            .where(ProductFeatureModel.product_id == product_id)
            .order_by(FeatureModel.key)
        )
        return [to_feature(row) for row in result.scalars().all()]
