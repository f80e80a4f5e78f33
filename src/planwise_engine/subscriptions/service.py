"""Subscription service: create, lifecycle transitions, feature overrides."""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from planwise_engine.catalog.mappers import to_billing_cycle
from planwise_engine.catalog.models import (
    BillingCycleModel,
    CustomerModel,
    FeatureModel,
    PlanModel,
)
from planwise_engine.catalog.validation import validate_feature_value
from planwise_engine.common.clock import utcnow
from planwise_engine.common.config import PlanwiseSettings
from planwise_engine.common.exceptions import ConflictError, DomainError, NotFoundError
from planwise_engine.subscriptions.entities import Subscription
from planwise_engine.subscriptions.mappers import apply_to_row, to_subscription
from planwise_engine.subscriptions.models import SubscriptionModel
from planwise_engine.subscriptions.overrides import OverrideType, parse_override_type
from planwise_engine.subscriptions.status import SubscriptionStatus

logger = logging.getLogger(__name__)

_UPDATABLE_DATES = (
    "expiration_date",
    "cancellation_date",
    "trial_end_date",
    "current_period_start",
    "current_period_end",
)


class SubscriptionService:
    """Subscription lifecycle operations.

    Each operation loads the row, applies the change to the Subscription
    entity and writes it back, so lifecycle rules live in one place.
    """

    def __init__(self, settings: PlanwiseSettings):
        self.settings = settings

    # ── Loading ──

    async def _get_row(self, session: AsyncSession, key: str) -> SubscriptionModel | None:
        result = await session.execute(
            select(SubscriptionModel)
            .options(joinedload(SubscriptionModel.overrides))
            .where(SubscriptionModel.key == key)
        )
        return result.unique().scalar_one_or_none()

    async def _require_row(self, session: AsyncSession, key: str) -> SubscriptionModel:
        row = await self._get_row(session, key)
        if row is None:
            raise NotFoundError(f"Subscription with key '{key}' not found")
        return row

    async def _save(
        self, session: AsyncSession, sub: Subscription, row: SubscriptionModel
    ) -> Subscription:
        apply_to_row(sub, row)
        await session.flush()
        return sub

    async def _require_cycle(self, session: AsyncSession, key: str) -> BillingCycleModel:
        result = await session.execute(
            select(BillingCycleModel).where(BillingCycleModel.key == key)
        )
        cycle = result.scalar_one_or_none()
        if cycle is None:
            raise NotFoundError(f"Billing cycle with key '{key}' not found")
        return cycle

    # ── Create / read ──

    async def create_subscription(
        self,
        session: AsyncSession,
        key: str,
        customer_key: str,
        billing_cycle_key: str,
        activation_date: datetime | None = None,
        expiration_date: datetime | None = None,
        cancellation_date: datetime | None = None,
        trial_end_date: datetime | None = None,
        current_period_start: datetime | None = None,
        current_period_end: datetime | None = None,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """Create a subscription on the plan owning ``billing_cycle_key``.

        The period end defaults to one billing cycle after the period start;
        ``None`` for forever cycles.
        """
        now = now or utcnow()
        customer = (await session.execute(
            select(CustomerModel).where(CustomerModel.key == customer_key)
        )).scalar_one_or_none()
        if customer is None:
            raise NotFoundError(f"Customer with key '{customer_key}' not found")

        cycle_row = await self._require_cycle(session, billing_cycle_key)
        plan = await session.get(PlanModel, cycle_row.plan_id)
        if plan is None:
            raise NotFoundError(f"Plan not found for billing cycle '{billing_cycle_key}'")

        if await self._get_row(session, key) is not None:
            raise ConflictError(f"Subscription with key '{key}' already exists")

        period_start = current_period_start or now
        if current_period_end is None:
            current_period_end = to_billing_cycle(cycle_row).calculate_next_period_end(period_start)

        row = SubscriptionModel(
            key=key,
            customer_id=customer.id,
            plan_id=plan.id,
            billing_cycle_id=cycle_row.id,
            activation_date=activation_date or now,
            expiration_date=expiration_date,
            cancellation_date=cancellation_date,
            trial_end_date=trial_end_date,
            current_period_start=period_start,
            current_period_end=current_period_end,
            metadata_=metadata or {},
            created_at=now,
            updated_at=now,
            overrides=[],
        )
        session.add(row)
        await session.flush()
        logger.info("Created subscription %s for customer %s on plan %s", key, customer_key, plan.key)
        return to_subscription(row)

    async def get_subscription(self, session: AsyncSession, key: str) -> Subscription | None:
        row = await self._get_row(session, key)
        return to_subscription(row) if row else None

    async def list_for_customer(
        self,
        session: AsyncSession,
        customer_key: str,
        status: Optional[str] = None,
        has_overrides: Optional[bool] = None,
        now: datetime | None = None,
    ) -> list[Subscription]:
        """A customer's subscriptions, oldest first.

        ``status`` filters on the computed status, so it is applied after
        loading rather than in SQL.
        """
        now = now or utcnow()
        customer = (await session.execute(
            select(CustomerModel).where(CustomerModel.key == customer_key)
        )).scalar_one_or_none()
        if customer is None:
            raise NotFoundError(f"Customer with key '{customer_key}' not found")

        result = await session.execute(
            select(SubscriptionModel)
            .options(joinedload(SubscriptionModel.overrides))
            .where(SubscriptionModel.customer_id == customer.id)
            .order_by(SubscriptionModel.created_at, SubscriptionModel.key)
        )
        subs = [to_subscription(row) for row in result.unique().scalars().all()]
        if status is not None:
            wanted = SubscriptionStatus(status)
            subs = [s for s in subs if s.status_at(now) == wanted]
        if has_overrides is not None:
            subs = [s for s in subs if (len(s.overrides) > 0) == has_overrides]
        return subs

    async def update_subscription(
        self,
        session: AsyncSession,
        key: str,
        now: datetime | None = None,
        **updates: Any,
    ) -> Subscription:
        """Update dates, metadata or billing cycle. ``activation_date`` is immutable.

        Passing a date as None clears it.
        """
        now = now or utcnow()
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        if sub.is_archived:
            raise DomainError(
                f"Cannot update archived subscription '{key}'. Unarchive the subscription first."
            )

        for field in _UPDATABLE_DATES:
            if field in updates:
                setattr(sub, field, updates[field])
        if updates.get("metadata") is not None:
            sub.metadata = dict(updates["metadata"])
        if updates.get("billing_cycle_key") is not None:
            cycle = await self._require_cycle(session, updates["billing_cycle_key"])
            sub.billing_cycle_id = cycle.id
            sub.plan_id = cycle.plan_id
        sub.updated_at = now
        return await self._save(session, sub, row)

    async def delete_subscription(self, session: AsyncSession, key: str) -> None:
        row = await self._require_row(session, key)
        await session.delete(row)
        await session.flush()
        logger.info("Deleted subscription %s", key)

    # ── Lifecycle ──

    async def activate(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.activate(now or utcnow())
        logger.info("Activated subscription %s", key)
        return await self._save(session, sub, row)

    async def cancel(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.cancel(now or utcnow())
        logger.info("Cancelled subscription %s", key)
        return await self._save(session, sub, row)

    async def renew(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        """Roll the period forward one billing cycle and drop temporary overrides."""
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        cycle_row = await session.get(BillingCycleModel, sub.billing_cycle_id)
        cycle = to_billing_cycle(cycle_row) if cycle_row is not None else None
        removed = sub.renew(now or utcnow(), cycle)
        logger.info("Renewed subscription %s; cleared %d temporary overrides", key, len(removed))
        return await self._save(session, sub, row)

    async def expire(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.expire(now or utcnow())
        logger.info("Expired subscription %s", key)
        return await self._save(session, sub, row)

    async def archive(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.archive(now or utcnow())
        return await self._save(session, sub, row)

    async def unarchive(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.unarchive(now or utcnow())
        return await self._save(session, sub, row)

    # ── Overrides ──

    async def _require_feature(self, session: AsyncSession, key: str) -> FeatureModel:
        feature = (await session.execute(
            select(FeatureModel).where(FeatureModel.key == key)
        )).scalar_one_or_none()
        if feature is None:
            raise NotFoundError(f"Feature with key '{key}' not found")
        return feature

    async def add_feature_override(
        self,
        session: AsyncSession,
        key: str,
        feature_key: str,
        value: str,
        override_type: str | OverrideType | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """Set an override, replacing any existing one for the same feature."""
        otype = parse_override_type(override_type or self.settings.default_override_type)
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        if sub.is_archived:
            raise DomainError(
                f"Cannot add feature override to archived subscription '{key}'. "
                "Unarchive the subscription first."
            )
        feature = await self._require_feature(session, feature_key)
        validate_feature_value(value, feature.value_type)

        sub.set_override(feature.id, value, otype, now or utcnow())
        logger.info("Set %s override on %s for feature %s", otype.value, key, feature_key)
        return await self._save(session, sub, row)

    async def remove_feature_override(
        self,
        session: AsyncSession,
        key: str,
        feature_key: str,
        now: datetime | None = None,
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        if sub.is_archived:
            raise DomainError(
                f"Cannot remove feature override from archived subscription '{key}'. "
                "Unarchive the subscription first."
            )
        feature = await self._require_feature(session, feature_key)
        sub.remove_override(feature.id, now or utcnow())
        return await self._save(session, sub, row)

    async def clear_temporary_overrides(
        self, session: AsyncSession, key: str, now: datetime | None = None
    ) -> Subscription:
        row = await self._require_row(session, key)
        sub = to_subscription(row)
        sub.clear_temporary_overrides(now or utcnow())
        return await self._save(session, sub, row)

    # ── Transitions ──

    async def process_automatic_transitions(
        self, session: AsyncSession, now: datetime | None = None
    ) -> int:
        """Move subscriptions whose period ended onto their plan's transition cycle.

        Only plans with ``on_expire_transition_to_billing_cycle_key`` take
        part. Returns the number of subscriptions moved.
        """
        now = now or utcnow()
        result = await session.execute(
            select(SubscriptionModel)
            .options(joinedload(SubscriptionModel.overrides))
            .where(
                SubscriptionModel.current_period_end.is_not(None),
                SubscriptionModel.current_period_end < now,
                SubscriptionModel.is_archived.is_(False),
            )
            .order_by(SubscriptionModel.created_at)
        )
        rows = list(result.unique().scalars().all())
        if not rows:
            return 0

        plan_result = await session.execute(
            select(PlanModel).where(PlanModel.id.in_({r.plan_id for r in rows}))
        )
        plans = {p.id: p for p in plan_result.scalars().all()}

        moved = 0
        for row in rows:
            plan = plans.get(row.plan_id)
            if plan is None:
                logger.error("Plan not found for subscription %s; skipping transition", row.key)
                continue
            if not plan.on_expire_transition_to_billing_cycle_key:
                continue
            target = await self._require_cycle(session, plan.on_expire_transition_to_billing_cycle_key)
            sub = to_subscription(row)
            sub.transition_to(to_billing_cycle(target), now)
            await self._save(session, sub, row)
            logger.info("Transitioned subscription %s from plan %s", row.key, plan.key)
            moved += 1
        return moved
