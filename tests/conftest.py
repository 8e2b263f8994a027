import pytest

from chatstore.config import Settings
from chatstore.database.memory_store import InMemoryStore
from chatstore.dependencies import build_services
from chatstore.schemas.user import Principal
from chatstore.services.identity_service import StaticIdentityProvider


@pytest.fixture
def settings():
    return Settings(store_timeout=1.0, retry_attempts=2, retry_base_delay=0.0, retry_max_delay=0.0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def alice():
    return Principal(uid="alice", email="alice@example.com", display_name="Alice Smith")


@pytest.fixture
def provider(alice):
    return StaticIdentityProvider(alice)


@pytest.fixture
def services(store, provider, settings):
    return build_services(store, provider, settings)
