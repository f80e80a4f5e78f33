"""Row-to-entity mapping for catalog models."""

from planwise_engine.catalog.entities import (
    BillingCycle,
    Customer,
    Feature,
    Plan,
    PlanFeatureValue,
    Product,
)
from planwise_engine.catalog.models import (
    BillingCycleModel,
    CustomerModel,
    FeatureModel,
    PlanModel,
    ProductModel,
)
from planwise_engine.common.clock import ensure_utc


def to_product(row: ProductModel) -> Product:
    return Product(
        id=row.id,
        key=row.key,
        display_name=row.display_name,
        description=row.description or "",
        status=row.status,
    )


def to_customer(row: CustomerModel) -> Customer:
    return Customer(
        id=row.id,
        key=row.key,
        display_name=row.display_name or "",
        email=row.email or "",
        status=row.status,
    )


def to_feature(row: FeatureModel) -> Feature:
    return Feature(
        id=row.id,
        key=row.key,
        value_type=row.value_type,
        default_value=row.default_value,
        status=row.status,
        display_name=row.display_name,
        description=row.description or "",
        group_name=row.group_name,
        updated_at=ensure_utc(row.updated_at),
    )


def to_plan(row: PlanModel) -> Plan:
    """Map a plan row; ``feature_values`` must already be loaded."""
    return Plan(
        id=row.id,
        key=row.key,
        product_key=row.product_key,
        display_name=row.display_name,
        status=row.status,
        feature_values={
            fv.feature_id: PlanFeatureValue(
                feature_id=fv.feature_id,
                value=fv.value,
                created_at=ensure_utc(fv.created_at),
                updated_at=ensure_utc(fv.updated_at),
            )
            for fv in row.feature_values
        },
        on_expire_transition_to_billing_cycle_key=row.on_expire_transition_to_billing_cycle_key,
        updated_at=ensure_utc(row.updated_at),
    )


def to_billing_cycle(row: BillingCycleModel) -> BillingCycle:
    return BillingCycle(
        id=row.id,
        key=row.key,
        plan_id=row.plan_id,
        duration_value=row.duration_value,
        duration_unit=row.duration_unit,
        display_name=row.display_name,
        status=row.status,
    )
