"""Subscription status derived from lifecycle dates.

Status is never stored. It is recomputed from the date fields and an
explicit ``now`` every time it is read, so the same subscription can move
from trial to active to expired without any write happening.
"""

from datetime import datetime
from enum import Enum


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLATION_PENDING = "cancellation_pending"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Statuses that grant entitlements at the customer level
QUALIFYING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})


def compute_status(
    now: datetime,
    activation_date: datetime | None = None,
    expiration_date: datetime | None = None,
    cancellation_date: datetime | None = None,
    trial_end_date: datetime | None = None,
) -> SubscriptionStatus:
    """
    Map a subscription's dates to its status at ``now``.

    Evaluated top to bottom, first match wins:
    1. cancellation in the future  -> CANCELLATION_PENDING
    2. cancellation at/before now  -> CANCELLED
    3. expiration at/before now    -> EXPIRED
    4. activation in the future    -> PENDING
    5. trial end in the future     -> TRIAL
    6. otherwise                   -> ACTIVE

    All datetimes must share the same awareness (all UTC-aware in practice).
    """
    if cancellation_date is not None:
        if cancellation_date > now:
            return SubscriptionStatus.CANCELLATION_PENDING
        return SubscriptionStatus.CANCELLED

    if expiration_date is not None and expiration_date <= now:
        return SubscriptionStatus.EXPIRED

    if activation_date is not None and activation_date > now:
        return SubscriptionStatus.PENDING

    if trial_end_date is not None and trial_end_date > now:
        return SubscriptionStatus.TRIAL

    return SubscriptionStatus.ACTIVE
