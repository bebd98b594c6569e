"""Pytest configuration and fixtures."""

import os
from types import SimpleNamespace

# Cheap hashing and a stable encryption key for the whole test run
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('APP_KEY', 'test-app-key')
os.environ.setdefault('AUDIT_ENABLED', 'true')

import pytest

from tests.fakes import (
    FakeApiClients,
    FakeAuditSink,
    FakeBilling,
    FakeDatabase,
    FakePasswordResets,
    FakeProvider,
    FakeQueue,
    FakeRoleStore,
    FakeSocialAccounts,
    FakeTenantStore,
    FakeTokenIssuer,
    FakeUserStore,
    github_identity,
)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def users():
    return FakeUserStore()


@pytest.fixture
def password_resets():
    return FakePasswordResets()


@pytest.fixture
def github():
    return FakeProvider('github', identity=github_identity())


@pytest.fixture
def auth_service(fake_db, users, password_resets, github):
    from auth.service import AuthService

    return AuthService(
        fake_db,
        users=users,
        tokens=FakeTokenIssuer(),
        audit=FakeAuditSink(fake_db),
        password_resets=password_resets,
        social_accounts=FakeSocialAccounts(),
        providers={'github': github},
    )


@pytest.fixture
def queue(fake_db):
    return FakeQueue(fake_db)


@pytest.fixture
def events():
    from events import EventBus
    return EventBus()


@pytest.fixture
def onboarding_service(fake_db, users, queue, events):
    from billing.plans import PlanCatalog
    from onboarding.service import OnboardingService

    return OnboardingService(
        fake_db,
        tenants=FakeTenantStore(),
        api_clients=FakeApiClients(),
        plans=PlanCatalog(),
        billing=FakeBilling(),
        users=users,
        roles=FakeRoleStore(),
        queue=queue,
        events=events,
    )


@pytest.fixture
def services(fake_db, auth_service, onboarding_service, queue, events):
    return SimpleNamespace(db=fake_db, auth=auth_service, onboarding=onboarding_service,
                           queue=queue, events=events)


@pytest.fixture
def app(services):
    """Flask app wired to the in-memory services."""
    from app import create_app

    flask_app = create_app(services)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    from onboarding import routes
    routes._provision_rate.clear()
    routes._website_check_rate.clear()
    yield
    routes._provision_rate.clear()
    routes._website_check_rate.clear()


@pytest.fixture
def registered_user(auth_service):
    """An active user with a known password."""
    return auth_service.register('Ada Lovelace', 'ada@example.com', 'Secret123')


@pytest.fixture
def onboarding_form():
    """A valid, normalized onboarding form."""
    return {
        'name': 'Grand Hotel',
        'type': 'hotel',
        'language': 1,
        'currency': 2,
        'country': 3,
        'capacity': 12,
        'city': 'Lusaka',
        'website': 'https://grandhotel.example',
        'role': 'manager',
        'billing_cycle': 'monthly',
    }
