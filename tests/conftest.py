"""
Pytest configuration and fixtures for Agora API tests.

API tests run against an in-memory Supabase double (tests/fakes.py) and an
in-memory client state store, with "today" pinned so challenge status and log
dates are deterministic.

Live tests require Supabase to be configured (SUPABASE_URL, SUPABASE_SERVICE_KEY)
and are skipped otherwise.
"""

import os
import uuid
from datetime import date
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from agora.api.v1.endpoints import challenges as challenges_endpoints
from agora.api.v1.endpoints import clients as clients_endpoints
from agora.core import database
from agora.core.cache import MemoryStateBackend
from agora.services import client_state as client_state_module
from agora.services.client_state import ClientStateStore
from main import app
from tests.fakes import FakeSupabase

TODAY = date(2025, 3, 10)


def _supabase_configured() -> bool:
    """Check if Supabase is configured for live tests."""
    return bool(os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_SERVICE_KEY"))


requires_supabase = pytest.mark.skipif(
    not _supabase_configured(),
    reason="SUPABASE_URL and SUPABASE_SERVICE_KEY required for live tests",
)


@pytest.fixture
def fake_supabase(monkeypatch) -> FakeSupabase:
    """Route every service query to a fresh in-memory database."""
    db = FakeSupabase()
    monkeypatch.setattr(database, "_supabase", db)
    return db


@pytest.fixture
def state_store(monkeypatch) -> ClientStateStore:
    store = ClientStateStore(MemoryStateBackend(), recent_limit=5)
    monkeypatch.setattr(client_state_module, "_client_state_store", store)
    return store


@pytest.fixture
def today(monkeypatch) -> date:
    """Pin the local date seen by the endpoints."""
    for module in (challenges_endpoints, clients_endpoints):
        monkeypatch.setattr(module, "local_today", lambda tz_name=None: TODAY)
    return TODAY


@pytest.fixture
def client(fake_supabase, state_store, today) -> Generator[TestClient, None, None]:
    """Test client for the FastAPI app backed by the in-memory database."""
    with TestClient(app, base_url="http://test", client=("127.0.0.1", 50000)) as c:
        yield c


@pytest.fixture
def live_client() -> Generator[TestClient, None, None]:
    """Test client talking to the configured Supabase project."""
    with TestClient(app, base_url="http://test", client=("127.0.0.1", 50000)) as c:
        yield c


@pytest.fixture
def api_base() -> str:
    """Base path for API v1 endpoints."""
    return "/api/v1"


@pytest.fixture
def client_headers() -> dict:
    """Unique client id (avoids collision across tests sharing a store)."""
    return {"X-Client-Id": f"client-{uuid.uuid4().hex[:8]}"}


@pytest.fixture
def challenge_payload() -> dict:
    """Challenge running Mar 1 - Mar 31 2025 with a capped and an uncapped metric."""
    return {
        "name": "March Madness",
        "description": "Move every day",
        "start_date": "2025-03-01",
        "end_date": "2025-03-31",
        "metrics": [
            {"name": "Pushups", "unit": "reps", "points_per_unit": "1", "daily_max": "100"},
            {"name": "Running", "unit": "km", "points_per_unit": 10, "daily_max": ""},
        ],
    }


@pytest.fixture
def created_challenge(client, api_base, challenge_payload, client_headers) -> dict:
    """Create the challenge through the API and return the response body."""
    r = client.post(
        f"{api_base}/challenges/", json=challenge_payload, headers=client_headers
    )
    assert r.status_code == 201, r.text
    return r.json()
