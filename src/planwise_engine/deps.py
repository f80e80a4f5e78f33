"""Dependency injection singletons for Planwise-Engine."""

from planwise_engine.catalog.service import CatalogService
from planwise_engine.common.config import get_settings
from planwise_engine.common.database import DatabaseManager
from planwise_engine.entitlements.service import FeatureCheckerService
from planwise_engine.subscriptions.service import SubscriptionService

_db: DatabaseManager | None = None
_catalog: CatalogService | None = None
_subscriptions: SubscriptionService | None = None
_feature_checker: FeatureCheckerService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_catalog_service() -> CatalogService:
    global _catalog
    if _catalog is None:
        _catalog = CatalogService()
    return _catalog


def get_subscription_service() -> SubscriptionService:
    global _subscriptions
    if _subscriptions is None:
        _subscriptions = SubscriptionService(get_settings())
    return _subscriptions


def get_feature_checker() -> FeatureCheckerService:
    global _feature_checker
    if _feature_checker is None:
        _feature_checker = FeatureCheckerService(get_settings())
    return _feature_checker


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _catalog, _subscriptions, _feature_checker
    _db = None
    _catalog = None
    _subscriptions = None
    _feature_checker = None
