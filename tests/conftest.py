"""Shared test fixtures and configuration."""

from __future__ import annotations

import base64
import os
from typing import Any, AsyncGenerator, Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

os.environ["REMVANA_ENV"] = "test"
os.environ["REMVANA_LOG_LEVEL"] = "WARNING"
os.environ["REMVANA_ENCRYPTION_KEY"] = base64.urlsafe_b64encode(b"k" * 32).decode()
os.environ["DUFFEL_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

import remvana.config
import remvana.database
import remvana.modules.booking_wizard.store
import remvana.security.encryption
from remvana.database import close_db, init_db
from remvana.security.rbac import Role, UserIdentity


def _reset_singletons() -> None:
    remvana.config._settings = None
    remvana.database._engine = None
    remvana.database._session_factory = None
    remvana.security.encryption._cipher = None
    remvana.modules.booking_wizard.store._store = None


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Each test starts with fresh settings, engine, cipher and wizard store."""
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    remvana.config._settings = None
    return url


@pytest_asyncio.fixture
async def db(db_url) -> AsyncGenerator[str, None]:
    """Create all tables in a temporary SQLite file."""
    await init_db()
    yield db_url
    await close_db()


@pytest.fixture
def client(db_url) -> Iterator[TestClient]:
    """API client; the app lifespan creates the schema."""
    from remvana.main import create_app

    with TestClient(create_app()) as c:
        yield c


# ── Identities ───────────────────────────────────────────────────────

@pytest.fixture
def traveler() -> UserIdentity:
    return UserIdentity(user_id="traveler-1", role=Role.TRAVELER, organization_id="org-1")


@pytest.fixture
def agent() -> UserIdentity:
    return UserIdentity(user_id="agent-1", role=Role.AGENT, organization_id="org-1", display_name="Ana Agent")


@pytest.fixture
def manager() -> UserIdentity:
    return UserIdentity(user_id="manager-1", role=Role.MANAGER, organization_id="org-1")


@pytest.fixture
def other_manager() -> UserIdentity:
    """A manager in a different organization."""
    return UserIdentity(user_id="manager-2", role=Role.MANAGER, organization_id="org-2")


@pytest.fixture
def admin() -> UserIdentity:
    return UserIdentity(user_id="admin-1", role=Role.ADMIN, organization_id="org-1")


# ── Provider payloads ────────────────────────────────────────────────

def _place(code: str, name: str, city: str, country: str) -> dict[str, Any]:
    return {"iata_code": code, "name": name, "city_name": city, "iata_country_code": country}


@pytest.fixture
def duffel_offer() -> dict[str, Any]:
    """A one-stop JFK-LHR offer as returned by the Duffel API."""
    jfk = _place("JFK", "John F. Kennedy International", "New York", "US")
    kef = _place("KEF", "Keflavik International", "Reykjavik", "IS")
    lhr = _place("LHR", "Heathrow", "London", "GB")
    carrier = {"iata_code": "ZZ", "name": "Duffel Airways"}
    return {
        "id": "off_0001",
        "total_amount": "245.60",
        "total_currency": "USD",
        "expires_at": "2026-11-01T12:00:00Z",
        "owner": carrier,
        "slices": [{
            "origin": jfk,
            "destination": lhr,
            "duration": "PT9H15M",
            "segments": [
                {
                    "origin": jfk,
                    "destination": kef,
                    "departing_at": "2026-11-10T08:00:00",
                    "arriving_at": "2026-11-10T13:30:00",
                    "duration": "PT5H30M",
                    "marketing_carrier": carrier,
                    "marketing_carrier_flight_number": "101",
                    "aircraft": {"name": "Airbus A321"},
                },
                {
                    "origin": kef,
                    "destination": lhr,
                    "departing_at": "2026-11-10T14:30:00",
                    "arriving_at": "2026-11-10T17:15:00",
                    "duration": "PT2H45M",
                    "marketing_carrier": carrier,
                    "marketing_carrier_flight_number": "202",
                },
            ],
        }],
    }


@pytest.fixture
def mock_openai():
    """Mock the OpenAI client."""
    with patch("openai.AsyncOpenAI") as mock:
        client = MagicMock()
        mock.return_value = client

        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = "A tailored week in Lisbon awaits you."
        completion.choices[0].finish_reason = "stop"

        client.chat.completions.create = AsyncMock(return_value=completion)
        yield client
