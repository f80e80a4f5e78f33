"""Feature value resolution for a single subscription."""

from dataclasses import dataclass
from typing import Optional

from planwise_engine.catalog.entities import Feature, Plan
from planwise_engine.subscriptions.entities import Subscription

SOURCE_OVERRIDE = "override"
SOURCE_PLAN = "plan"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedValue:
    """A resolved raw value and the level of the hierarchy it came from."""
    value: str
    source: str
    subscription_key: Optional[str] = None


class FeatureValueResolver:
    """
    Resolve a feature's value using the hierarchy:

    1. Subscription override (highest priority)
    2. Plan value
    3. Feature default (fallback)

    ``plan`` may be None when the subscription points at a plan that no
    longer exists; resolution then falls through to the default. Values are
    returned exactly as stored, never parsed or re-validated.
    """

    def resolve(
        self,
        feature: Feature,
        plan: Plan | None,
        subscription: Subscription | None,
    ) -> str:
        return self.resolve_with_source(feature, plan, subscription).value

    def resolve_with_source(
        self,
        feature: Feature,
        plan: Plan | None,
        subscription: Subscription | None,
    ) -> ResolvedValue:
        sub_key = subscription.key if subscription is not None else None

        if subscription is not None:
            override = subscription.get_override(feature.id)
            if override is not None:
                return ResolvedValue(override.value, SOURCE_OVERRIDE, sub_key)

        if plan is not None:
            plan_value = plan.get_feature_value(feature.id)
            if plan_value is not None:
                return ResolvedValue(plan_value, SOURCE_PLAN, sub_key)

        return ResolvedValue(feature.default_value, SOURCE_DEFAULT, sub_key)

    def resolve_all(
        self,
        features: list[Feature],
        plan: Plan | None,
        subscription: Subscription | None,
    ) -> dict[str, str]:
        """Resolve every feature against one subscription, keyed by feature key."""
        return {f.key: self.resolve(f, plan, subscription) for f in features}
