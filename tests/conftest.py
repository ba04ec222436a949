import pytest
from fastapi.testclient import TestClient

from relaycdn.config import Settings
from relaycdn.main import create_app
from relaycdn.models import UploadRecord
from relaycdn.storage import MemoryObjectStore

ADMIN_PASSWORD = "test-admin-secret"
PUBLIC_BASE_URL = "http://testserver"
STORE_BASE_URL = "https://blob.example.com"
HOUR_MS = 60 * 60 * 1000
MIB = 1024 * 1024


class FakeClock:
    """Epoch-millisecond clock the tests advance by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryObjectStore(STORE_BASE_URL)


@pytest.fixture
def settings():
    return Settings(
        admin_password=ADMIN_PASSWORD,
        public_base_url=PUBLIC_BASE_URL,
        ticket_secret="test-ticket-secret",
    )


@pytest.fixture
def app(settings, store, clock):
    return create_app(settings=settings, store=store, clock=clock)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"X-Admin-Password": ADMIN_PASSWORD}


def make_record(n: int, url: str | None = None, **overrides) -> UploadRecord:
    data = {
        "url": url or f"{STORE_BASE_URL}/cdn/file-{n}.txt",
        "filename": f"file-{n}.txt",
        "size": n,
        "timestamp": 1_700_000_000_000 + n,
        "client_id": "1.2.3.4",
    }
    data.update(overrides)
    return UploadRecord(**data)
