import os
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
import pytest
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("PURGE_TRIGGER_SECRET", "test-purge-secret")
os.environ.setdefault("EMAIL_MODE", "console")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")


class FakeClock:
    """Settable clock for the account use cases."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_memory_stores():
    from src.infrastructure.database.repositories import (
        deletion_request_repository,
        identity_repository,
        preference_repository,
        profile_repository,
    )

    modules = (deletion_request_repository, identity_repository, preference_repository, profile_repository)
    for module in modules:
        module.reset_memory()
    yield
    for module in modules:
        module.reset_memory()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, tzinfo=UTC))


@pytest.fixture()
def stores():
    """In-memory repositories (SUPABASE_DISABLED=1)."""
    from types import SimpleNamespace

    from src.infrastructure.database.repositories.deletion_request_repository import DeletionRequestRepository
    from src.infrastructure.database.repositories.identity_repository import IdentityRepository
    from src.infrastructure.database.repositories.preference_repository import PreferenceRepository
    from src.infrastructure.database.repositories.profile_repository import ProfileRepository

    return SimpleNamespace(
        identity=IdentityRepository(None),
        profiles=ProfileRepository(None),
        preferences=PreferenceRepository(None),
        requests=DeletionRequestRepository(None),
    )


@pytest.fixture(scope="session")
def client() -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()
    return TestClient(app)


@pytest.fixture()
def auth_header() -> dict[str, str]:
    # any token is accepted in disabled mode
    return {"Authorization": "Bearer test-token"}
