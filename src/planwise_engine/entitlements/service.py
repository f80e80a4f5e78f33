"""Feature checker service: entitlement checks addressed by keys."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from planwise_engine.catalog.validation import parse_numeric, parse_toggle
from planwise_engine.common.clock import utcnow
from planwise_engine.common.config import PlanwiseSettings
from planwise_engine.common.exceptions import NotFoundError
from planwise_engine.entitlements.composition import CustomerEntitlementResolver
from planwise_engine.entitlements.repository import EntitlementRepository
from planwise_engine.entitlements.resolver import FeatureValueResolver
from planwise_engine.entitlements.schemas import FeatureUsageSummary, ResolvedFeatureResponse

logger = logging.getLogger(__name__)


class FeatureCheckerService:
    """Loads state through the repository and hands it to the pure engine.

    The clock is read at most once per call so every feature in a batch is
    resolved against the same instant. Pass ``now`` to pin it.
    """

    def __init__(
        self,
        settings: PlanwiseSettings,
        repository: EntitlementRepository | None = None,
    ):
        self.settings = settings
        self.repository = repository or EntitlementRepository()
        self.resolver = FeatureValueResolver()
        self.composer = CustomerEntitlementResolver(
            self.resolver, qualifying_statuses=settings.qualifying_statuses
        )

    # ── Single subscription ──

    async def get_value_for_subscription(
        self,
        session: AsyncSession,
        subscription_key: str,
        feature_key: str,
        default: Optional[str] = None,
    ) -> Optional[str]:
        subscription = await self.repository.get_subscription_by_key(session, subscription_key)
        if subscription is None:
            return default
        feature = await self.repository.get_feature_by_key(session, feature_key)
        if feature is None:
            return default
        plan = await self.repository.get_plan_by_id(session, subscription.plan_id)
        if plan is None:
            logger.warning(
                "Subscription %s references missing plan %s; using feature default",
                subscription.key, subscription.plan_id,
            )
        return self.resolver.resolve(feature, plan, subscription)

    async def is_enabled_for_subscription(
        self, session: AsyncSession, subscription_key: str, feature_key: str
    ) -> bool:
        value = await self.get_value_for_subscription(session, subscription_key, feature_key)
        return parse_toggle(value)

    async def get_all_features_for_subscription(
        self, session: AsyncSession, subscription_key: str
    ) -> dict[str, str]:
        """Every feature of the subscription's product, resolved against it alone.

        No status filtering: an expired or cancelled subscription can still
        be inspected. A dangling plan or product yields an empty map.
        """
        subscription = await self.repository.get_subscription_by_key(session, subscription_key)
        if subscription is None:
            raise NotFoundError(f"Subscription with key '{subscription_key}' not found")

        plan = await self.repository.get_plan_by_id(session, subscription.plan_id)
        if plan is None:
            logger.warning(
                "Subscription %s references missing plan %s", subscription.key, subscription.plan_id
            )
            return {}

        product = await self.repository.get_product_by_key(session, plan.product_key)
        if product is None:
            logger.warning("Plan %s references missing product %s", plan.key, plan.product_key)
            return {}

        features = await self.repository.get_features_for_product(session, product.id)
        return self.composer.all_features_for_subscription(subscription, plan, features)

    # ── Customer level ──

    async def explain_value_for_customer(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        feature_key: str,
        now: datetime | None = None,
    ) -> Optional[ResolvedFeatureResponse]:
        """Resolve one feature and report which level of the hierarchy supplied it.

        Returns None when the customer, product or feature is unknown.
        """
        now = now or utcnow()
        customer = await self.repository.get_customer_by_key(session, customer_key)
        product = await self.repository.get_product_by_key(session, product_key)
        feature = await self.repository.get_feature_by_key(session, feature_key)
        if customer is None or product is None or feature is None:
            return None

        subscriptions = await self.repository.get_subscriptions_for_customer(session, customer.id)
        plans = await self.repository.get_plans_by_ids(session, {s.plan_id for s in subscriptions})
        resolved = self.composer.explain_value_for_customer(
            customer, subscriptions, plans, product, feature, now
        )
        return ResolvedFeatureResponse(
            feature_key=feature.key,
            value=resolved.value,
            source=resolved.source,
            subscription_key=resolved.subscription_key,
        )

    async def get_value_for_customer(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        feature_key: str,
        default: Optional[str] = None,
        now: datetime | None = None,
    ) -> Optional[str]:
        resolved = await self.explain_value_for_customer(
            session, customer_key, product_key, feature_key, now=now
        )
        return resolved.value if resolved is not None else default

    async def is_enabled_for_customer(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        feature_key: str,
        now: datetime | None = None,
    ) -> bool:
        value = await self.get_value_for_customer(
            session, customer_key, product_key, feature_key, now=now
        )
        return parse_toggle(value)

    async def get_all_features_for_customer(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """Resolve every feature of a product for a customer.

        Five queries regardless of feature or subscription count: customer,
        product, features, subscriptions, and one batch for all referenced plans.
        """
        now = now or utcnow()
        customer = await self.repository.get_customer_by_key(session, customer_key)
        if customer is None:
            return {}
        product = await self.repository.get_product_by_key(session, product_key)
        if product is None:
            return {}

        features = await self.repository.get_features_for_product(session, product.id)
        subscriptions = await self.repository.get_subscriptions_for_customer(session, customer.id)
        plans = await self.repository.get_plans_by_ids(session, {s.plan_id for s in subscriptions})
        return self.composer.all_features_for_customer(
            customer, subscriptions, plans, product, features, now
        )

    async def has_plan_access(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        plan_key: str,
        now: datetime | None = None,
    ) -> bool:
        """Whether the customer holds a qualifying subscription on the plan."""
        now = now or utcnow()
        customer = await self.repository.get_customer_by_key(session, customer_key)
        product = await self.repository.get_product_by_key(session, product_key)
        if customer is None or product is None:
            return False
        plan = await self.repository.get_plan_by_key(session, plan_key)
        if plan is None or plan.product_key != product.key:
            return False

        subscriptions = [
            s
            for s in await self.repository.get_subscriptions_for_customer(session, customer.id)
            if s.plan_id == plan.id
        ]
        qualifying = self.composer.qualifying_subscriptions(
            customer, subscriptions, {plan.id: plan}, product, now
        )
        return bool(qualifying)

    async def get_active_plans(
        self,
        session: AsyncSession,
        customer_key: str,
        now: datetime | None = None,
    ) -> list[str]:
        """Plan keys of the customer's qualifying subscriptions, across products."""
        now = now or utcnow()
        customer = await self.repository.get_customer_by_key(session, customer_key)
        if customer is None:
            return []

        subscriptions = await self.repository.get_subscriptions_for_customer(session, customer.id)
        plans = await self.repository.get_plans_by_ids(session, {s.plan_id for s in subscriptions})
        plan_keys = []
        for sub in subscriptions:
            plan = plans.get(sub.plan_id)
            if plan is None or sub.status_at(now) not in self.composer.qualifying_statuses:
                continue
            plan_keys.append(plan.key)
        return plan_keys

    async def get_feature_usage_summary(
        self,
        session: AsyncSession,
        customer_key: str,
        product_key: str,
        now: datetime | None = None,
    ) -> FeatureUsageSummary:
        now = now or utcnow()
        summary = FeatureUsageSummary()
        customer = await self.repository.get_customer_by_key(session, customer_key)
        product = await self.repository.get_product_by_key(session, product_key)
        if customer is None or product is None:
            return summary

        features = await self.repository.get_features_for_product(session, product.id)
        subscriptions = await self.repository.get_subscriptions_for_customer(session, customer.id)
        plans = await self.repository.get_plans_by_ids(session, {s.plan_id for s in subscriptions})

        qualifying = self.composer.qualifying_subscriptions(
            customer, subscriptions, plans, product, now
        )
        summary.active_subscriptions = len(qualifying)
        resolved = self.composer.all_features_for_customer(
            customer, subscriptions, plans, product, features, now
        )

        for feature in features:
            value = resolved[feature.key]
            if feature.value_type == "toggle":
                if parse_toggle(value):
                    summary.enabled_features.append(feature.key)
                else:
                    summary.disabled_features.append(feature.key)
            elif feature.value_type == "numeric":
                num = parse_numeric(value)
                if num is not None:
                    summary.numeric_features[feature.key] = num
            elif feature.value_type == "text":
                summary.text_features[feature.key] = value
        return summary
