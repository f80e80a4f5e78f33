"""Pydantic schemas for entitlement check results."""

from typing import Optional

from pydantic import BaseModel, Field


class ResolvedFeatureResponse(BaseModel):
    feature_key: str
    value: str
    source: str
    subscription_key: Optional[str] = None


class FeatureUsageSummary(BaseModel):
    """A customer's resolved features for one product, split by value type."""
    active_subscriptions: int = 0
    enabled_features: list[str] = Field(default_factory=list)
    disabled_features: list[str] = Field(default_factory=list)
    numeric_features: dict[str, float] = Field(default_factory=dict)
    text_features: dict[str, str] = Field(default_factory=dict)
