# backend/conftest.py
import os

# Must be set before backend.core.config is imported
os.environ["ENV"] = "test"
os.environ["SKIP_ENV_VALIDATION"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ALLOW_HEADER_AUTH"] = "true"
os.environ.pop("CLERK_JWT_KEY", None)
os.environ.pop("STRIPE_SECRET_KEY", None)

import pytest

from backend.tests.mocks import FakeAvatarProvider, FakeBillingProvider, FakeRedis


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """Fresh in-memory schema for every test."""
    from backend.core.database import init_engine, reset_database

    init_engine("sqlite:///:memory:")
    reset_database()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    from backend.core.metrics import METRICS

    METRICS.reset()
    yield


@pytest.fixture
def fake_provider():
    return FakeAvatarProvider()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_billing():
    return FakeBillingProvider()


@pytest.fixture
def app(fake_provider, fake_redis, fake_billing):
    from backend.main import app as fastapi_app
    from backend.api.avatar import get_avatar_provider
    from backend.features.billing.service import get_billing_provider
    from backend.features.cache.service import ResponseCache, get_response_cache

    fastapi_app.dependency_overrides[get_avatar_provider] = lambda: fake_provider
    fastapi_app.dependency_overrides[get_response_cache] = lambda: ResponseCache(fake_redis, enabled=True)
    fastapi_app.dependency_overrides[get_billing_provider] = lambda: fake_billing
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
