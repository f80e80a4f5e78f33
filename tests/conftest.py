"""Shared test fixtures for Planwise-Engine."""

from datetime import datetime, timedelta, timezone

import pytest

from planwise_engine.catalog.entities import Customer, Feature, Plan, Product
from planwise_engine.common.config import PlanwiseSettings
from planwise_engine.subscriptions.entities import Subscription


NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_settings(**overrides) -> PlanwiseSettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return PlanwiseSettings(**defaults)


def make_subscription(key: str, plan_id: str = "plan-pro", customer_id: str = "cust-1", **kwargs) -> Subscription:
    kwargs.setdefault("created_at", NOW - timedelta(days=30))
    return Subscription(
        id=f"id-{key}",
        key=key,
        customer_id=customer_id,
        plan_id=plan_id,
        billing_cycle_id="cycle-monthly",
        **kwargs,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_sub():
    """Factory for in-memory subscriptions created 30 days before NOW."""
    return make_subscription


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def product():
    return Product(id="prod-1", key="projecthub")


@pytest.fixture
def customer():
    return Customer(id="cust-1", key="acme")


@pytest.fixture
def feature():
    return Feature(id="feat-projects", key="max-projects", value_type="numeric", default_value="3")


@pytest.fixture
def toggle_feature():
    return Feature(id="feat-gantt", key="gantt-charts", value_type="toggle", default_value="false")


@pytest.fixture
def pro_plan(feature, toggle_feature):
    plan = Plan(id="plan-pro", key="pro", product_key="projecthub")
    plan.set_feature_value(feature.id, "50")
    plan.set_feature_value(toggle_feature.id, "true")
    return plan


@pytest.fixture
def basic_plan(feature):
    plan = Plan(id="plan-basic", key="basic", product_key="projecthub")
    plan.set_feature_value(feature.id, "10")
    return plan


@pytest.fixture
async def db():
    """In-memory SQLite database for service tests."""
    from planwise_engine.common.database import DatabaseManager

    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()
