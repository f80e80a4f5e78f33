"""Tests for customer-level entitlement composition across subscriptions."""

from datetime import timedelta

import pytest

from planwise_engine.catalog.entities import Plan
from planwise_engine.entitlements.composition import CustomerEntitlementResolver
from planwise_engine.entitlements.resolver import SOURCE_DEFAULT, SOURCE_OVERRIDE, SOURCE_PLAN
from planwise_engine.subscriptions.overrides import OverrideType
from planwise_engine.subscriptions.status import SubscriptionStatus


@pytest.fixture
def composer():
    return CustomerEntitlementResolver()


@pytest.fixture
def plans(pro_plan, basic_plan):
    other = Plan(id="plan-other", key="other", product_key="otherproduct")
    other.set_feature_value("feat-projects", "999")
    return {p.id: p for p in (pro_plan, basic_plan, other)}


class TestQualifyingSet:
    def test_filters_by_product(self, composer, customer, product, plans, make_sub, now):
        subs = [make_sub("a", plan_id="plan-other"), make_sub("b", plan_id="plan-pro")]
        result = composer.qualifying_subscriptions(customer, subs, plans, product, now)
        assert [s.key for s in result] == ["b"]

    def test_filters_by_status(self, composer, customer, product, plans, make_sub, now):
        subs = [
            make_sub("expired", expiration_date=now - timedelta(days=1)),
            make_sub("cancelled", cancellation_date=now - timedelta(days=1)),
            make_sub("pending", activation_date=now + timedelta(days=1)),
            make_sub("ending", cancellation_date=now + timedelta(days=5)),
            make_sub("trial", trial_end_date=now + timedelta(days=5)),
            make_sub("active"),
        ]
        result = composer.qualifying_subscriptions(customer, subs, plans, product, now)
        assert [s.key for s in result] == ["trial", "active"]

    def test_orders_by_creation_time(self, composer, customer, product, plans, make_sub, now):
        subs = [
            make_sub("newer", created_at=now - timedelta(days=1)),
            make_sub("older", created_at=now - timedelta(days=10)),
        ]
        result = composer.qualifying_subscriptions(customer, subs, plans, product, now)
        assert [s.key for s in result] == ["older", "newer"]

    def test_missing_plan_never_qualifies(self, composer, customer, product, plans, make_sub, now):
        subs = [make_sub("dangling", plan_id="plan-deleted")]
        assert composer.qualifying_subscriptions(customer, subs, plans, product, now) == []

    def test_other_customers_ignored(self, composer, customer, product, plans, make_sub, now):
        subs = [make_sub("theirs", customer_id="cust-2")]
        assert composer.qualifying_subscriptions(customer, subs, plans, product, now) == []

    def test_custom_qualifying_statuses(self, customer, product, plans, make_sub, now):
        composer = CustomerEntitlementResolver(
            qualifying_statuses=["active", "cancellation_pending"]
        )
        subs = [
            make_sub("ending", cancellation_date=now + timedelta(days=5)),
            make_sub("trial", trial_end_date=now + timedelta(days=5)),
        ]
        result = composer.qualifying_subscriptions(customer, subs, plans, product, now)
        assert [s.key for s in result] == ["ending"]
        assert SubscriptionStatus.TRIAL not in composer.qualifying_statuses


class TestValueForCustomer:
    def test_no_subscriptions_returns_default(self, composer, customer, product, plans, feature, now):
        assert composer.value_for_customer(customer, [], plans, product, feature, now) == "3"

    def test_first_subscription_plan_value(self, composer, customer, product, plans, feature, make_sub, now):
        subs = [
            make_sub("first", plan_id="plan-basic", created_at=now - timedelta(days=10)),
            make_sub("second", plan_id="plan-pro", created_at=now - timedelta(days=5)),
        ]
        assert composer.value_for_customer(customer, subs, plans, product, feature, now) == "10"

    def test_later_override_wins_over_earlier_plan_value(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        first = make_sub("first", plan_id="plan-pro", created_at=now - timedelta(days=10))
        second = make_sub("second", plan_id="plan-basic", created_at=now - timedelta(days=5))
        second.set_override(feature.id, "250", OverrideType.PERMANENT, now)

        resolved = composer.explain_value_for_customer(
            customer, [first, second], plans, product, feature, now
        )
        assert resolved.value == "250"
        assert resolved.source == SOURCE_OVERRIDE
        assert resolved.subscription_key == "second"

    def test_first_override_wins_among_several(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        first = make_sub("first", created_at=now - timedelta(days=10))
        second = make_sub("second", created_at=now - timedelta(days=5))
        first.set_override(feature.id, "11", OverrideType.PERMANENT, now)
        second.set_override(feature.id, "22", OverrideType.PERMANENT, now)
        assert composer.value_for_customer(customer, [second, first], plans, product, feature, now) == "11"

    def test_override_on_non_qualifying_subscription_ignored(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        active = make_sub("active", plan_id="plan-basic")
        expired = make_sub("expired", expiration_date=now - timedelta(days=1))
        expired.set_override(feature.id, "9999", OverrideType.PERMANENT, now)
        assert composer.value_for_customer(customer, [active, expired], plans, product, feature, now) == "10"

    def test_only_non_qualifying_returns_default(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        subs = [make_sub("gone", cancellation_date=now - timedelta(days=1))]
        resolved = composer.explain_value_for_customer(customer, subs, plans, product, feature, now)
        assert resolved.value == "3"
        assert resolved.source == SOURCE_DEFAULT
        assert resolved.subscription_key is None

    def test_status_evaluated_at_given_now(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        subs = [make_sub("s", expiration_date=now + timedelta(days=1))]
        assert composer.value_for_customer(customer, subs, plans, product, feature, now) == "50"
        later = now + timedelta(days=2)
        assert composer.value_for_customer(customer, subs, plans, product, feature, later) == "3"


class TestAllFeaturesForCustomer:
    def test_zero_qualifying_returns_defaults(
        self, composer, customer, product, plans, feature, toggle_feature, now
    ):
        result = composer.all_features_for_customer(
            customer, [], plans, product, [feature, toggle_feature], now
        )
        assert result == {"max-projects": "3", "gantt-charts": "false"}

    def test_mixed_sources(
        self, composer, customer, product, plans, feature, toggle_feature, make_sub, now
    ):
        first = make_sub("first", plan_id="plan-basic", created_at=now - timedelta(days=10))
        second = make_sub("second", plan_id="plan-pro", created_at=now - timedelta(days=5))
        second.set_override(toggle_feature.id, "true", OverrideType.TEMPORARY, now)
        result = composer.all_features_for_customer(
            customer, [first, second], plans, product, [feature, toggle_feature], now
        )
        # max-projects: first subscription's plan value; gantt: second's override
        assert result == {"max-projects": "10", "gantt-charts": "true"}

    def test_plan_value_source_is_reported(
        self, composer, customer, product, plans, feature, make_sub, now
    ):
        subs = [make_sub("s", plan_id="plan-pro")]
        resolved = composer.explain_value_for_customer(customer, subs, plans, product, feature, now)
        assert resolved.source == SOURCE_PLAN


class TestAllFeaturesForSubscription:
    def test_no_status_filtering(self, composer, pro_plan, feature, toggle_feature, make_sub, now):
        sub = make_sub("expired", expiration_date=now - timedelta(days=30))
        result = composer.all_features_for_subscription(sub, pro_plan, [feature, toggle_feature])
        assert result == {"max-projects": "50", "gantt-charts": "true"}

    def test_missing_plan_uses_defaults(self, composer, feature, toggle_feature, make_sub):
        result = composer.all_features_for_subscription(make_sub("s"), None, [feature, toggle_feature])
        assert result == {"max-projects": "3", "gantt-charts": "false"}
