"""Customer-level entitlement composition across subscriptions."""

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping

from planwise_engine.catalog.entities import Customer, Feature, Plan, Product
from planwise_engine.common.clock import ensure_utc
from planwise_engine.entitlements.resolver import (
    SOURCE_DEFAULT,
    SOURCE_OVERRIDE,
    FeatureValueResolver,
    ResolvedValue,
)
from planwise_engine.subscriptions.entities import Subscription
from planwise_engine.subscriptions.status import QUALIFYING_STATUSES, SubscriptionStatus

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _creation_order(indexed: tuple[int, Subscription]) -> tuple:
    index, sub = indexed
    # Undated subscriptions sort last; ties keep input order
    return (sub.created_at is None, ensure_utc(sub.created_at) or _EPOCH, index)


class CustomerEntitlementResolver:
    """
    Resolve feature values for a customer holding several subscriptions
    to the same product.

    Only subscriptions whose plan belongs to the product and whose computed
    status is qualifying (active or trial by default) take part. They are
    considered in creation order, oldest first:

    - the first subscription carrying an override for the feature wins,
      even if an earlier subscription resolves a plan value;
    - otherwise the first subscription's resolved value (plan or default);
    - with no qualifying subscription, the feature default.

    Plans are passed in as an id-keyed mapping loaded in one batch by the
    caller. A subscription whose plan is missing cannot be attributed to a
    product and never qualifies.
    """

    def __init__(
        self,
        resolver: FeatureValueResolver | None = None,
        qualifying_statuses: Iterable[SubscriptionStatus] = QUALIFYING_STATUSES,
    ):
        self.resolver = resolver or FeatureValueResolver()
        self.qualifying_statuses = frozenset(SubscriptionStatus(s) for s in qualifying_statuses)

    def qualifying_subscriptions(
        self,
        customer: Customer,
        subscriptions: Iterable[Subscription],
        plans: Mapping[str, Plan],
        product: Product,
        now: datetime,
    ) -> list[Subscription]:
        """The customer's entitling subscriptions for ``product``, oldest first."""
        qualifying = []
        for _, sub in sorted(enumerate(subscriptions), key=_creation_order):
            if sub.customer_id != customer.id:
                continue
            plan = plans.get(sub.plan_id)
            if plan is None:
                logger.debug("Subscription %s references missing plan; skipped", sub.key)
                continue
            if plan.product_key != product.key:
                continue
            if sub.status_at(now) not in self.qualifying_statuses:
                continue
            qualifying.append(sub)
        return qualifying

    def _pick(
        self,
        feature: Feature,
        qualifying: list[Subscription],
        plans: Mapping[str, Plan],
    ) -> ResolvedValue:
        first: ResolvedValue | None = None
        for sub in qualifying:
            resolved = self.resolver.resolve_with_source(feature, plans.get(sub.plan_id), sub)
            if resolved.source == SOURCE_OVERRIDE:
                return resolved
            if first is None:
                first = resolved
        if first is None:
            return ResolvedValue(feature.default_value, SOURCE_DEFAULT)
        return first

    def explain_value_for_customer(
        self,
        customer: Customer,
        subscriptions: Iterable[Subscription],
        plans: Mapping[str, Plan],
        product: Product,
        feature: Feature,
        now: datetime,
    ) -> ResolvedValue:
        """Like ``value_for_customer`` but also reports where the value came from."""
        qualifying = self.qualifying_subscriptions(customer, subscriptions, plans, product, now)
        return self._pick(feature, qualifying, plans)

    def value_for_customer(
        self,
        customer: Customer,
        subscriptions: Iterable[Subscription],
        plans: Mapping[str, Plan],
        product: Product,
        feature: Feature,
        now: datetime,
    ) -> str:
        return self.explain_value_for_customer(
            customer, subscriptions, plans, product, feature, now
        ).value

    def all_features_for_customer(
        self,
        customer: Customer,
        subscriptions: Iterable[Subscription],
        plans: Mapping[str, Plan],
        product: Product,
        features: Iterable[Feature],
        now: datetime,
    ) -> dict[str, str]:
        """Resolve every feature of the product, keyed by feature key."""
        qualifying = self.qualifying_subscriptions(customer, subscriptions, plans, product, now)
        return {f.key: self._pick(f, qualifying, plans).value for f in features}

    def all_features_for_subscription(
        self,
        subscription: Subscription,
        plan: Plan | None,
        features: Iterable[Feature],
    ) -> dict[str, str]:
        """Resolve features against one subscription; no status filtering."""
        return self.resolver.resolve_all(list(features), plan, subscription)
