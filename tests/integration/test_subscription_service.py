"""Integration tests for subscription lifecycle persistence."""

from datetime import timedelta

import pytest

from planwise_engine.catalog.service import CatalogService
from planwise_engine.common.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from planwise_engine.subscriptions.overrides import OverrideType
from planwise_engine.subscriptions.service import SubscriptionService
from planwise_engine.subscriptions.status import SubscriptionStatus
from tests.conftest import NOW, make_settings


@pytest.fixture
async def env(db):
    catalog = CatalogService()
    async with db.get_session() as session:
        await catalog.create_product(session, "projecthub", "ProjectHub")
        await catalog.create_feature(session, "max-projects", "Max projects", "numeric", "3")
        await catalog.create_feature(session, "gantt-charts", "Gantt", "toggle", "false")
        await catalog.create_plan(session, "projecthub", "free", "Free")
        await catalog.create_billing_cycle(session, "free", "free-forever", "Forever", 1, "forever")
        await catalog.create_plan(
            session, "projecthub", "pro-trial", "Pro trial",
            on_expire_transition_to_billing_cycle_key="free-forever",
        )
        await catalog.create_billing_cycle(session, "pro-trial", "pro-trial-2w", "Two weeks", 2, "weeks")
        await catalog.create_plan(session, "projecthub", "pro", "Pro")
        await catalog.create_billing_cycle(session, "pro", "pro-monthly", "Monthly")
        await catalog.create_customer(session, "acme")
    return db, catalog, SubscriptionService(make_settings())


class TestCreate:
    async def test_create_derives_plan_and_period(self, env):
        db, catalog, svc = env
        async with db.get_session() as session:
            sub = await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            plan = await catalog.get_plan_by_key(session, "pro")
        assert sub.plan_id == plan.id
        assert sub.activation_date == NOW
        assert sub.current_period_start == NOW
        assert sub.current_period_end == NOW.replace(month=7)
        assert sub.status_at(NOW) == SubscriptionStatus.ACTIVE

    async def test_forever_cycle_has_open_period(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            sub = await svc.create_subscription(session, "acme-free", "acme", "free-forever", now=NOW)
        assert sub.current_period_end is None

    async def test_duplicate_key_conflicts(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            with pytest.raises(ConflictError):
                await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)

    async def test_unknown_references(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            with pytest.raises(NotFoundError, match="Customer"):
                await svc.create_subscription(session, "x", "nobody", "pro-monthly")
            with pytest.raises(NotFoundError, match="Billing cycle"):
                await svc.create_subscription(session, "x", "acme", "nope")

    async def test_dates_survive_round_trip_as_utc(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(
                session, "acme-pro", "acme", "pro-monthly",
                trial_end_date=NOW + timedelta(days=7), now=NOW,
            )
        async with db.get_session() as session:
            sub = await svc.get_subscription(session, "acme-pro")
        assert sub.trial_end_date == NOW + timedelta(days=7)
        assert sub.trial_end_date.tzinfo is not None
        assert sub.status_at(NOW) == SubscriptionStatus.TRIAL


class TestLifecycle:
    async def test_cancel_persists(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.cancel(session, "acme-pro", now=NOW + timedelta(days=1))
        async with db.get_session() as session:
            sub = await svc.get_subscription(session, "acme-pro")
        assert sub.status_at(NOW + timedelta(days=2)) == SubscriptionStatus.CANCELLED

    async def test_cancel_twice_rejected(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.cancel(session, "acme-pro", now=NOW)
            with pytest.raises(DomainError):
                await svc.cancel(session, "acme-pro", now=NOW + timedelta(hours=1))

    async def test_archived_blocks_updates(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.archive(session, "acme-pro", now=NOW)
            with pytest.raises(DomainError):
                await svc.update_subscription(session, "acme-pro", expiration_date=NOW)
            with pytest.raises(DomainError):
                await svc.add_feature_override(session, "acme-pro", "max-projects", "5")
            await svc.unarchive(session, "acme-pro", now=NOW)
            sub = await svc.update_subscription(
                session, "acme-pro", expiration_date=NOW + timedelta(days=3), now=NOW
            )
        assert sub.expiration_date == NOW + timedelta(days=3)

    async def test_update_billing_cycle_moves_plan(self, env):
        db, catalog, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme", "acme", "free-forever", now=NOW)
            sub = await svc.update_subscription(session, "acme", billing_cycle_key="pro-monthly", now=NOW)
            pro = await catalog.get_plan_by_key(session, "pro")
        assert sub.plan_id == pro.id

    async def test_delete(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.delete_subscription(session, "acme-pro")
            assert await svc.get_subscription(session, "acme-pro") is None
            with pytest.raises(NotFoundError):
                await svc.delete_subscription(session, "acme-pro")

    async def test_list_for_customer_filters(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "s1", "acme", "pro-monthly", now=NOW - timedelta(days=3))
            await svc.create_subscription(
                session, "s2", "acme", "free-forever",
                expiration_date=NOW - timedelta(days=1), now=NOW - timedelta(days=2),
            )
            await svc.add_feature_override(session, "s1", "max-projects", "9", now=NOW)

            all_subs = await svc.list_for_customer(session, "acme", now=NOW)
            expired = await svc.list_for_customer(session, "acme", status="expired", now=NOW)
            with_overrides = await svc.list_for_customer(session, "acme", has_overrides=True, now=NOW)
        assert [s.key for s in all_subs] == ["s1", "s2"]
        assert [s.key for s in expired] == ["s2"]
        assert [s.key for s in with_overrides] == ["s1"]


class TestOverrides:
    async def test_set_twice_replaces(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.add_feature_override(session, "acme-pro", "max-projects", "10", "permanent", now=NOW)
            await svc.add_feature_override(session, "acme-pro", "max-projects", "20", "temporary", now=NOW)
        async with db.get_session() as session:
            sub = await svc.get_subscription(session, "acme-pro")
        assert len(sub.overrides) == 1
        override = next(iter(sub.overrides))
        assert override.value == "20"
        assert override.type == OverrideType.TEMPORARY

    async def test_invalid_value_rejected(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            with pytest.raises(ValidationError):
                await svc.add_feature_override(session, "acme-pro", "gantt-charts", "maybe")
            with pytest.raises(ValidationError):
                await svc.add_feature_override(session, "acme-pro", "max-projects", "10", "forever")

    async def test_default_type_from_settings(self, env):
        db = env[0]
        svc = SubscriptionService(make_settings(default_override_type="temporary"))
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            sub = await svc.add_feature_override(session, "acme-pro", "max-projects", "10", now=NOW)
        assert next(iter(sub.overrides)).type == OverrideType.TEMPORARY

    async def test_renew_clears_temporary_and_rolls_period(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.add_feature_override(session, "acme-pro", "max-projects", "10", "permanent", now=NOW)
            await svc.add_feature_override(session, "acme-pro", "gantt-charts", "true", "temporary", now=NOW)
            renewal = NOW.replace(month=7)
            await svc.renew(session, "acme-pro", now=renewal)
        async with db.get_session() as session:
            sub = await svc.get_subscription(session, "acme-pro")
        assert [o.value for o in sub.overrides] == ["10"]
        assert sub.current_period_start == renewal
        assert sub.current_period_end == NOW.replace(month=8)

    async def test_remove_override(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=NOW)
            await svc.add_feature_override(session, "acme-pro", "max-projects", "10", now=NOW)
            sub = await svc.remove_feature_override(session, "acme-pro", "max-projects", now=NOW)
            assert len(sub.overrides) == 0
            # removing again is a no-op
            await svc.remove_feature_override(session, "acme-pro", "max-projects", now=NOW)


class TestAutomaticTransitions:
    async def test_ended_period_moves_to_target_cycle(self, env):
        db, catalog, svc = env
        start = NOW - timedelta(days=20)
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-trial", "acme", "pro-trial-2w", now=start)
            await svc.add_feature_override(session, "acme-trial", "max-projects", "99", now=start)
            await svc.create_subscription(session, "acme-pro", "acme", "pro-monthly", now=start)

        async with db.get_session() as session:
            moved = await svc.process_automatic_transitions(session, now=NOW)

        async with db.get_session() as session:
            trial = await svc.get_subscription(session, "acme-trial")
            pro = await svc.get_subscription(session, "acme-pro")
            free = await catalog.get_plan_by_key(session, "free")
        assert moved == 1
        assert trial.plan_id == free.id
        assert trial.activation_date == NOW
        assert trial.current_period_end is None
        assert len(trial.overrides) == 0
        assert pro.plan_id != free.id
        assert pro.current_period_start == start

    async def test_nothing_due(self, env):
        db, _, svc = env
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-trial", "acme", "pro-trial-2w", now=NOW)
            assert await svc.process_automatic_transitions(session, now=NOW + timedelta(days=1)) == 0

    async def test_archived_not_transitioned(self, env):
        db, _, svc = env
        start = NOW - timedelta(days=20)
        async with db.get_session() as session:
            await svc.create_subscription(session, "acme-trial", "acme", "pro-trial-2w", now=start)
            await svc.archive(session, "acme-trial", now=start)
            assert await svc.process_automatic_transitions(session, now=NOW) == 0
