"""In-memory catalog entities: products, features, plans, billing cycles, customers."""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from planwise_engine.common.clock import utcnow

FEATURE_VALUE_TYPES = ("toggle", "numeric", "text")
DURATION_UNITS = ("days", "weeks", "months", "years", "forever")


@dataclass
class Product:
    id: str
    key: str
    display_name: str = ""
    description: str = ""
    status: str = "active"


@dataclass
class Customer:
    id: str
    key: str
    display_name: str = ""
    email: str = ""
    status: str = "active"


@dataclass
class Feature:
    """A named capability or limit with a typed default value.

    ``default_value`` is validated against ``value_type`` when written,
    never when read.
    """
    id: str
    key: str
    value_type: str
    default_value: str
    status: str = "active"
    display_name: str = ""
    description: str = ""
    group_name: str | None = None
    updated_at: datetime = field(default_factory=utcnow)

    def archive(self) -> None:
        self.status = "archived"
        self.updated_at = utcnow()

    def unarchive(self) -> None:
        self.status = "active"
        self.updated_at = utcnow()


@dataclass
class PlanFeatureValue:
    feature_id: str
    value: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Plan:
    id: str
    key: str
    product_key: str
    display_name: str = ""
    status: str = "active"
    feature_values: dict[str, PlanFeatureValue] = field(default_factory=dict)
    on_expire_transition_to_billing_cycle_key: str | None = None
    updated_at: datetime = field(default_factory=utcnow)

    def get_feature_value(self, feature_id: str) -> str | None:
        entry = self.feature_values.get(feature_id)
        return entry.value if entry is not None else None

    def set_feature_value(self, feature_id: str, value: str) -> None:
        now = utcnow()
        entry = self.feature_values.get(feature_id)
        if entry is not None:
            entry.value = value
            entry.updated_at = now
        else:
            self.feature_values[feature_id] = PlanFeatureValue(
                feature_id=feature_id, value=value, created_at=now, updated_at=now,
            )
        self.updated_at = now

    def remove_feature_value(self, feature_id: str) -> None:
        self.feature_values.pop(feature_id, None)
        self.updated_at = utcnow()


def _add_months(start: datetime, months: int) -> datetime:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


@dataclass
class BillingCycle:
    id: str
    key: str
    plan_id: str
    duration_value: int = 1
    duration_unit: str = "months"
    display_name: str = ""
    status: str = "active"

    def calculate_next_period_end(self, start: datetime) -> datetime | None:
        """End of the period beginning at ``start``; ``None`` for forever cycles."""
        unit = self.duration_unit
        if unit == "forever":
            return None
        if unit == "days":
            return start + timedelta(days=self.duration_value)
        if unit == "weeks":
            return start + timedelta(weeks=self.duration_value)
        if unit == "months":
            return _add_months(start, self.duration_value)
        if unit == "years":
            return _add_months(start, 12 * self.duration_value)
        raise ValueError(f"Unknown duration unit: {unit}")
