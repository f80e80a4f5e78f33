"""Tests for the sample catalog seed."""

from datetime import timedelta

from planwise_engine.catalog.service import CatalogService
from planwise_engine.catalog.templates import SAMPLE_FEATURES, SAMPLE_PLANS, seed_sample_catalog
from planwise_engine.catalog.validation import validate_feature_value
from planwise_engine.entitlements.service import FeatureCheckerService
from planwise_engine.subscriptions.service import SubscriptionService
from tests.conftest import NOW, make_settings


class TestSampleDefinitions:
    def test_plan_values_are_valid(self):
        types = {f["key"]: f["value_type"] for f in SAMPLE_FEATURES}
        for plan_def in SAMPLE_PLANS.values():
            for feature_key, value in plan_def["values"].items():
                validate_feature_value(value, types[feature_key])

    def test_every_plan_has_a_cycle(self):
        for plan_key, plan_def in SAMPLE_PLANS.items():
            assert plan_def["cycles"], f"{plan_key} has no billing cycle"


class TestSeed:
    async def test_seed_twice(self, db):
        async with db.get_session() as session:
            assert await seed_sample_catalog(session) == len(SAMPLE_PLANS)
        async with db.get_session() as session:
            assert await seed_sample_catalog(session) == 0

    async def test_seeded_catalog_resolves(self, db):
        settings = make_settings()
        async with db.get_session() as session:
            await seed_sample_catalog(session)
            await CatalogService().create_customer(session, "acme")
            subs = SubscriptionService(settings)
            await subs.create_subscription(
                session, "acme-free", "acme", "projecthub-free-forever", now=NOW - timedelta(days=2)
            )
            await subs.create_subscription(
                session, "acme-ent", "acme", "projecthub-enterprise-annual", now=NOW - timedelta(days=1)
            )

        async with db.get_session() as session:
            result = await FeatureCheckerService(settings).get_all_features_for_customer(
                session, "acme", "projecthub", now=NOW
            )
        # the free plan is older and sets no values, so every feature resolves to its default
        assert result == {
            "projecthub.api-access": "false",
            "projecthub.gantt-charts": "false",
            "projecthub.max-projects": "3",
            "projecthub.support-tier": "community",
        }
