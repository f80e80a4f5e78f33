"""Catalog service: products, features, plans, billing cycles, customers."""

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from planwise_engine.catalog.entities import DURATION_UNITS, FEATURE_VALUE_TYPES
from planwise_engine.catalog.models import (
    BillingCycleModel,
    CustomerModel,
    FeatureModel,
    PlanFeatureValueModel,
    PlanModel,
    ProductFeatureModel,
    ProductModel,
)
from planwise_engine.catalog.validation import validate_feature_value
from planwise_engine.common.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ACTIVE = "active"
ARCHIVED = "archived"


class CatalogService:
    """Write path for catalog entities. All feature values are validated here."""

    # ── Products ──

    async def create_product(
        self, session: AsyncSession, key: str, display_name: str, **kwargs: Any
    ) -> ProductModel:
        if await self.get_product_by_key(session, key) is not None:
            raise ConflictError(f"Product with key '{key}' already exists")
        product = ProductModel(
            key=key,
            display_name=display_name,
            description=kwargs.get("description", ""),
            metadata_=kwargs.get("metadata", {}),
        )
        session.add(product)
        await session.flush()
        return product

    async def get_product_by_key(self, session: AsyncSession, key: str) -> ProductModel | None:
        result = await session.execute(select(ProductModel).where(ProductModel.key == key))
        return result.scalar_one_or_none()

    async def _require_product(self, session: AsyncSession, key: str) -> ProductModel:
        product = await self.get_product_by_key(session, key)
        if product is None:
            raise NotFoundError(f"Product with key '{key}' not found")
        return product

    async def archive_product(self, session: AsyncSession, key: str) -> ProductModel:
        product = await self._require_product(session, key)
        product.status = ARCHIVED
        await session.flush()
        return product

    async def unarchive_product(self, session: AsyncSession, key: str) -> ProductModel:
        product = await self._require_product(session, key)
        product.status = ACTIVE
        await session.flush()
        return product

    async def delete_product(self, session: AsyncSession, key: str) -> None:
        """Delete an archived product and its feature memberships.

        Features themselves survive. Plans are not removed with the product,
        so deletion is refused while any plan still belongs to it.
        """
        product = await self._require_product(session, key)
        if product.status != ARCHIVED:
            raise DomainError(
                f"Cannot delete product with status '{product.status}'. "
                "Product must be archived before deletion."
            )
        result = await session.execute(
            select(PlanModel.key).where(PlanModel.product_key == key).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            raise DomainError(f"Cannot delete product '{key}' while plans still belong to it")

        await session.execute(
            delete(ProductFeatureModel).where(ProductFeatureModel.product_id == product.id)
        )
        await session.delete(product)
        await session.flush()
        logger.info("Deleted product %s", key)

    # ── Features ──

    async def create_feature(
        self,
        session: AsyncSession,
        key: str,
        display_name: str,
        value_type: str,
        default_value: str,
        **kwargs: Any,
    ) -> FeatureModel:
        if value_type not in FEATURE_VALUE_TYPES:
            raise ValidationError(f"Unknown feature value type: {value_type}")
        validate_feature_value(default_value, value_type)
        if await self.get_feature_by_key(session, key) is not None:
            raise ConflictError(f"Feature with key '{key}' already exists")

        feature = FeatureModel(
            key=key,
            display_name=display_name,
            value_type=value_type,
            default_value=default_value,
            description=kwargs.get("description", ""),
            group_name=kwargs.get("group_name"),
            metadata_=kwargs.get("metadata", {}),
        )
        session.add(feature)
        await session.flush()
        return feature

    async def get_feature_by_key(self, session: AsyncSession, key: str) -> FeatureModel | None:
        result = await session.execute(select(FeatureModel).where(FeatureModel.key == key))
        return result.scalar_one_or_none()

    async def _require_feature(self, session: AsyncSession, key: str) -> FeatureModel:
        feature = await self.get_feature_by_key(session, key)
        if feature is None:
            raise NotFoundError(f"Feature with key '{key}' not found")
        return feature

    async def update_feature_default(
        self, session: AsyncSession, key: str, default_value: str
    ) -> FeatureModel:
        feature = await self._require_feature(session, key)
        validate_feature_value(default_value, feature.value_type)
        feature.default_value = default_value
        await session.flush()
        return feature

    async def archive_feature(self, session: AsyncSession, key: str) -> FeatureModel:
        feature = await self._require_feature(session, key)
        feature.status = ARCHIVED
        await session.flush()
        return feature

    async def add_feature_to_product(
        self, session: AsyncSession, product_key: str, feature_key: str
    ) -> None:
        """Associate a feature with a product. Idempotent."""
        product = await self._require_product(session, product_key)
        feature = await self._require_feature(session, feature_key)
        result = await session.execute(
            select(ProductFeatureModel).where(
                ProductFeatureModel.product_id == product.id,
                ProductFeatureModel.feature_id == feature.id,
            )
        )
        if result.scalar_one_or_none() is None:
            session.add(ProductFeatureModel(product_id=product.id, feature_id=feature.id))
            await session.flush()

    async def remove_feature_from_product(
        self, session: AsyncSession, product_key: str, feature_key: str
    ) -> None:
        product = await self._require_product(session, product_key)
        feature = await self._require_feature(session, feature_key)
        result = await session.execute(
            select(ProductFeatureModel).where(
                ProductFeatureModel.product_id == product.id,
                ProductFeatureModel.feature_id == feature.id,
            )
        )
        link = result.scalar_one_or_none()
        if link is not None:
            await session.delete(link)
            await session.flush()

    # ── Plans ──

    async def create_plan(
        self,
        session: AsyncSession,
        product_key: str,
        key: str,
        display_name: str,
        **kwargs: Any,
    ) -> PlanModel:
        await self._require_product(session, product_key)
        if await self.get_plan_by_key(session, key) is not None:
            raise ConflictError(f"Plan with key '{key}' already exists")
        plan = PlanModel(
            key=key,
            product_key=product_key,
            display_name=display_name,
            description=kwargs.get("description", ""),
            on_expire_transition_to_billing_cycle_key=kwargs.get(
                "on_expire_transition_to_billing_cycle_key"
            ),
            metadata_=kwargs.get("metadata", {}),
        )
        session.add(plan)
        await session.flush()
        return plan

    async def get_plan_by_key(self, session: AsyncSession, key: str) -> PlanModel | None:
        result = await session.execute(
            select(PlanModel)
            .options(joinedload(PlanModel.feature_values))
            .where(PlanModel.key == key)
        )
        return result.unique().scalar_one_or_none()

    async def _require_plan(self, session: AsyncSession, key: str) -> PlanModel:
        plan = await self.get_plan_by_key(session, key)
        if plan is None:
            raise NotFoundError(f"Plan with key '{key}' not found")
        return plan

    async def update_plan(self, session: AsyncSession, key: str, **kwargs: Any) -> PlanModel:
        """Update a plan's descriptive fields and its expiry transition.

        Passing ``on_expire_transition_to_billing_cycle_key=None`` (or an empty
        string) clears the transition; any other value must name an existing
        billing cycle.
        """
        plan = await self._require_plan(session, key)
        if "display_name" in kwargs:
            plan.display_name = kwargs["display_name"]
        if "description" in kwargs:
            plan.description = kwargs["description"]
        if "metadata" in kwargs:
            plan.metadata_ = kwargs["metadata"]
        if "on_expire_transition_to_billing_cycle_key" in kwargs:
            target = kwargs["on_expire_transition_to_billing_cycle_key"] or None
            if target is not None and await self.get_billing_cycle_by_key(session, target) is None:
                raise NotFoundError(f"Billing cycle with key '{target}' not found")
            plan.on_expire_transition_to_billing_cycle_key = target
        await session.flush()
        return plan

    async def archive_plan(self, session: AsyncSession, key: str) -> PlanModel:
        plan = await self._require_plan(session, key)
        plan.status = ARCHIVED
        await session.flush()
        return plan

    async def unarchive_plan(self, session: AsyncSession, key: str) -> PlanModel:
        plan = await self._require_plan(session, key)
        plan.status = ACTIVE
        await session.flush()
        return plan

    async def delete_plan(self, session: AsyncSession, key: str) -> None:
        """Delete an archived plan together with its values and billing cycles.

        Subscriptions pointing at it keep their dangling reference.
        """
        result = await session.execute(
            select(PlanModel)
            .options(joinedload(PlanModel.feature_values), selectinload(PlanModel.billing_cycles))
            .where(PlanModel.key == key)
            .execution_options(populate_existing=True)
        )
        plan = result.unique().scalar_one_or_none()
        if plan is None:
            raise NotFoundError(f"Plan with key '{key}' not found")
        if plan.status != ARCHIVED:
            raise DomainError(
                f"Cannot delete plan with status '{plan.status}'. "
                "Plan must be archived before deletion."
            )
        await session.delete(plan)
        await session.flush()
        logger.info("Deleted plan %s", key)

    async def set_plan_feature_value(
        self, session: AsyncSession, plan_key: str, feature_key: str, value: str
    ) -> PlanFeatureValueModel:
        """Set a plan's value for a feature, replacing any existing one."""
        plan = await self._require_plan(session, plan_key)
        feature = await self._require_feature(session, feature_key)
        validate_feature_value(value, feature.value_type)

        for entry in plan.feature_values:
            if entry.feature_id == feature.id:
                entry.value = value
                await session.flush()
                return entry

        entry = PlanFeatureValueModel(feature_id=feature.id, value=value)
        plan.feature_values.append(entry)
        await session.flush()
        return entry

    async def remove_plan_feature_value(
        self, session: AsyncSession, plan_key: str, feature_key: str
    ) -> None:
        plan = await self._require_plan(session, plan_key)
        feature = await self._require_feature(session, feature_key)
        for entry in list(plan.feature_values):
            if entry.feature_id == feature.id:
                plan.feature_values.remove(entry)
        await session.flush()

    # ── Billing cycles ──

    async def create_billing_cycle(
        self,
        session: AsyncSession,
        plan_key: str,
        key: str,
        display_name: str,
        duration_value: int = 1,
        duration_unit: str = "months",
    ) -> BillingCycleModel:
        if duration_unit not in DURATION_UNITS:
            raise ValidationError(f"Unknown duration unit: {duration_unit}")
        if duration_unit != "forever" and duration_value < 1:
            raise ValidationError("Billing cycle duration must be at least 1")
        plan = await self._require_plan(session, plan_key)
        if await self.get_billing_cycle_by_key(session, key) is not None:
            raise ConflictError(f"Billing cycle with key '{key}' already exists")

        cycle = BillingCycleModel(
            key=key,
            plan_id=plan.id,
            display_name=display_name,
            duration_value=duration_value,
            duration_unit=duration_unit,
        )
        session.add(cycle)
        await session.flush()
        return cycle

    async def get_billing_cycle_by_key(
        self, session: AsyncSession, key: str
    ) -> BillingCycleModel | None:
        result = await session.execute(
            select(BillingCycleModel).where(BillingCycleModel.key == key)
        )
        return result.scalar_one_or_none()

    async def _require_billing_cycle(self, session: AsyncSession, key: str) -> BillingCycleModel:
        cycle = await self.get_billing_cycle_by_key(session, key)
        if cycle is None:
            raise NotFoundError(f"Billing cycle with key '{key}' not found")
        return cycle

    async def archive_billing_cycle(self, session: AsyncSession, key: str) -> BillingCycleModel:
        cycle = await self._require_billing_cycle(session, key)
        cycle.status = ARCHIVED
        await session.flush()
        return cycle

    async def unarchive_billing_cycle(self, session: AsyncSession, key: str) -> BillingCycleModel:
        cycle = await self._require_billing_cycle(session, key)
        cycle.status = ACTIVE
        await session.flush()
        return cycle

    async def delete_billing_cycle(self, session: AsyncSession, key: str) -> None:
        """Delete a billing cycle. Subscriptions on it keep their dangling reference."""
        cycle = await self._require_billing_cycle(session, key)
        await session.delete(cycle)
        await session.flush()
        logger.info("Deleted billing cycle %s", key)

    # ── Customers ──

    async def create_customer(
        self, session: AsyncSession, key: str, **kwargs: Any
    ) -> CustomerModel:
        if await self.get_customer_by_key(session, key) is not None:
            raise ConflictError(f"Customer with key '{key}' already exists")
        customer = CustomerModel(
            key=key,
            display_name=kwargs.get("display_name", ""),
            email=kwargs.get("email", ""),
            metadata_=kwargs.get("metadata", {}),
        )
        session.add(customer)
        await session.flush()
        return customer

    async def get_customer_by_key(self, session: AsyncSession, key: str) -> CustomerModel | None:
        result = await session.execute(select(CustomerModel).where(CustomerModel.key == key))
        return result.scalar_one_or_none()
