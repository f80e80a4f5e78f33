"""Mapping between subscription rows and Subscription entities."""

from planwise_engine.common.clock import ensure_utc
from planwise_engine.subscriptions.entities import Subscription
from planwise_engine.subscriptions.models import SubscriptionModel, SubscriptionOverrideModel
from planwise_engine.subscriptions.overrides import FeatureOverride, OverrideStore, OverrideType

_DATE_FIELDS = (
    "activation_date",
    "expiration_date",
    "cancellation_date",
    "trial_end_date",
    "current_period_start",
    "current_period_end",
)


def to_subscription(row: SubscriptionModel) -> Subscription:
    """Map a subscription row; ``overrides`` must already be loaded."""
    store = OverrideStore(
        FeatureOverride(
            feature_id=o.feature_id,
            value=o.value,
            type=OverrideType(o.override_type),
            created_at=ensure_utc(o.created_at),
        )
        for o in row.overrides
    )
    return Subscription(
        id=row.id,
        key=row.key,
        customer_id=row.customer_id,
        plan_id=row.plan_id,
        billing_cycle_id=row.billing_cycle_id,
        is_archived=row.is_archived,
        overrides=store,
        metadata=dict(row.metadata_ or {}),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        **{name: ensure_utc(getattr(row, name)) for name in _DATE_FIELDS},
    )


def apply_to_row(sub: Subscription, row: SubscriptionModel) -> None:
    """Write entity state back onto its row, reconciling overrides in place.

    Existing override rows are updated rather than replaced so the
    (subscription, feature) unique constraint never sees a duplicate.
    """
    for name in _DATE_FIELDS:
        setattr(row, name, getattr(sub, name))
    row.plan_id = sub.plan_id
    row.billing_cycle_id = sub.billing_cycle_id
    row.is_archived = sub.is_archived
    row.metadata_ = dict(sub.metadata)
    if sub.updated_at is not None:
        row.updated_at = sub.updated_at

    existing = {o.feature_id: o for o in row.overrides}
    wanted = {o.feature_id: o for o in sub.overrides}

    for feature_id, o_row in existing.items():
        if feature_id not in wanted:
            row.overrides.remove(o_row)

    for feature_id, override in wanted.items():
        o_row = existing.get(feature_id)
        if o_row is None:
            row.overrides.append(SubscriptionOverrideModel(
                feature_id=feature_id,
                value=override.value,
                override_type=override.type.value,
                created_at=override.created_at,
            ))
        else:
            o_row.value = override.value
            o_row.override_type = override.type.value
            o_row.created_at = override.created_at
