"""Planwise-Engine: Subscription entitlement resolution engine."""

from planwise_engine.entitlements.composition import CustomerEntitlementResolver
from planwise_engine.entitlements.resolver import FeatureValueResolver, ResolvedValue
from planwise_engine.subscriptions.entities import Subscription
from planwise_engine.subscriptions.overrides import FeatureOverride, OverrideStore, OverrideType
from planwise_engine.subscriptions.status import SubscriptionStatus, compute_status

__all__ = [
    "CustomerEntitlementResolver",
    "FeatureValueResolver",
    "ResolvedValue",
    "Subscription",
    "FeatureOverride",
    "OverrideStore",
    "OverrideType",
    "SubscriptionStatus",
    "compute_status",
]
__version__ = "0.1.0"
