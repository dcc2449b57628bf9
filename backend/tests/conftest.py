"""Shared test fixtures.

Every test gets its own in-memory DuckDB store and upload directory. Timers
default to 30s so they never fire in the middle of a socket exchange; tests
that exercise expiry build services with short timers via ``make_services``.
"""
import pytest
from fastapi.testclient import TestClient

from parley.config import (
    AppSettings,
    AuthSettings,
    ChatSettings,
    JWTSecrets,
    Secrets,
    StorageSettings,
)
from parley.main import create_app
from parley.services import build_services
from parley.store.service import ChatStore


def make_settings(tmp_path, **chat) -> AppSettings:
    chat_settings = {
        "typing_timeout_seconds": 30.0,
        "delivery_delay_seconds": 30.0,
        "send_timeout_seconds": 1.0,
    }
    chat_settings.update(chat)
    return AppSettings(
        auth=AuthSettings(moderators=["moderator"]),
        chat=ChatSettings(**chat_settings),
        storage=StorageSettings(
            db_path=":memory:",
            upload_dir=str(tmp_path / "uploads"),
            max_file_size_bytes=1024,
        ),
        secrets=Secrets(jwt=JWTSecrets(secret_key="test-secret-key")),
    )


@pytest.fixture
def store():
    store = ChatStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def make_services(tmp_path):
    """Factory: ``make_services(typing_timeout_seconds=0.1)``."""
    created = []

    def factory(**chat):
        services = build_services(make_settings(tmp_path, **chat))
        created.append(services)
        return services

    yield factory
    for services in created:
        services.store.close()


@pytest.fixture
def services(make_services):
    return make_services()


@pytest.fixture
def make_client(make_services):
    """Factory for a started TestClient; all its sockets share one event loop."""
    clients = []

    def factory(**chat):
        client = TestClient(create_app(make_services(**chat)))
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()
