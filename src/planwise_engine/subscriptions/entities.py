"""Subscription entity and its lifecycle operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from planwise_engine.catalog.entities import BillingCycle
from planwise_engine.common.exceptions import DomainError
from planwise_engine.subscriptions.overrides import FeatureOverride, OverrideStore, OverrideType
from planwise_engine.subscriptions.status import SubscriptionStatus, compute_status


@dataclass
class Subscription:
    """A customer's binding to a plan and billing cycle.

    Every mutator takes ``now`` explicitly and stamps ``updated_at`` with it.
    """
    id: str
    key: str
    customer_id: str
    plan_id: str
    billing_cycle_id: str
    activation_date: datetime | None = None
    expiration_date: datetime | None = None
    cancellation_date: datetime | None = None
    trial_end_date: datetime | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    is_archived: bool = False
    overrides: OverrideStore = field(default_factory=OverrideStore)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def status_at(self, now: datetime) -> SubscriptionStatus:
        return compute_status(
            now,
            activation_date=self.activation_date,
            expiration_date=self.expiration_date,
            cancellation_date=self.cancellation_date,
            trial_end_date=self.trial_end_date,
        )

    def get_override(self, feature_id: str) -> FeatureOverride | None:
        return self.overrides.get(feature_id)

    def _ensure_mutable(self, action: str) -> None:
        if self.is_archived:
            raise DomainError(
                f"Cannot {action} archived subscription '{self.key}'. "
                "Unarchive the subscription first."
            )

    # ── Lifecycle ──

    def activate(self, now: datetime) -> None:
        self._ensure_mutable("activate")
        if self.activation_date is None:
            self.activation_date = now
        self.trial_end_date = None
        self.updated_at = now

    def cancel(self, now: datetime) -> None:
        self._ensure_mutable("cancel")
        status = self.status_at(now)
        if status == SubscriptionStatus.CANCELLED:
            raise DomainError(
                f"Subscription '{self.key}' is already cancelled. Current status: {status.value}"
            )
        self.cancellation_date = now
        self.updated_at = now

    def renew(self, now: datetime, billing_cycle: BillingCycle | None = None) -> list[FeatureOverride]:
        """Start a new period. Temporary overrides do not survive renewal."""
        self._ensure_mutable("renew")
        removed = self.overrides.clear_temporary_overrides()
        if billing_cycle is not None:
            self.current_period_start = now
            self.current_period_end = billing_cycle.calculate_next_period_end(now)
        self.updated_at = now
        return removed

    def expire(self, now: datetime) -> None:
        self._ensure_mutable("expire")
        self.expiration_date = now
        self.updated_at = now

    def archive(self, now: datetime) -> None:
        self.is_archived = True
        self.updated_at = now

    def unarchive(self, now: datetime) -> None:
        self.is_archived = False
        self.updated_at = now

    def can_delete(self, now: datetime) -> bool:
        return self.status_at(now) == SubscriptionStatus.EXPIRED

    def transition_to(self, target_cycle: BillingCycle, now: datetime) -> None:
        """Move onto another plan's billing cycle after the current period ended.

        Starts a fresh period; overrides and end dates do not carry over.
        """
        self.plan_id = target_cycle.plan_id
        self.billing_cycle_id = target_cycle.id
        self.activation_date = now
        self.current_period_start = now
        self.current_period_end = target_cycle.calculate_next_period_end(now)
        self.expiration_date = None
        self.cancellation_date = None
        self.trial_end_date = None
        self.overrides = OverrideStore()
        self.updated_at = now

    # ── Overrides ──

    def set_override(
        self,
        feature_id: str,
        value: str,
        override_type: OverrideType,
        now: datetime,
    ) -> FeatureOverride:
        self._ensure_mutable("add feature override to")
        override = self.overrides.set_override(feature_id, value, override_type, now)
        self.updated_at = now
        return override

    def remove_override(self, feature_id: str, now: datetime) -> None:
        self._ensure_mutable("remove feature override from")
        self.overrides.remove_override(feature_id)
        self.updated_at = now

    def clear_temporary_overrides(self, now: datetime) -> list[FeatureOverride]:
        self._ensure_mutable("clear temporary overrides for")
        removed = self.overrides.clear_temporary_overrides()
        self.updated_at = now
        return removed
