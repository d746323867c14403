"""Router test fixtures with a mocked payment provider."""

from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from tutor_market_service.app import create_app
from tutor_market_service.config import clear_settings_cache
from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.core.lifespan import lifespan
from tutor_market_service.core.state import get_app_state, reset_app_state
from tests.helpers import WEBHOOK_SECRET, write_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


# ---------------------------------------------------------------------------
# ID generators
# ---------------------------------------------------------------------------
def make_task_id() -> str:
    """Generate a task ID that does not exist."""
    return f"t-{uuid.uuid4()}"


def make_bid_id() -> str:
    """Generate a bid ID that does not exist."""
    return f"bid-{uuid.uuid4()}"


def make_payment_id() -> str:
    """Generate a payment ID that does not exist."""
    return f"pay-{uuid.uuid4()}"


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def config_overrides() -> dict[str, Any]:
    """Overrides passed to write_config(); test modules redefine this fixture."""
    return {}


@pytest.fixture
async def app(tmp_path: Path, config_overrides: dict[str, Any]) -> AsyncIterator[Any]:
    """Create a test app with temp database and a mocked payment provider."""
    config_path = write_config(tmp_path, **config_overrides)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Every checkout gets a fresh reference unless a test overrides it
        mock_provider = AsyncMock()
        mock_provider.close = AsyncMock()
        mock_provider.create_checkout = AsyncMock(
            side_effect=lambda payment, currency: f"chk-{uuid.uuid4()}"
        )
        state.payment_provider_client = mock_provider

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def mock_provider_unavailable(_app: Any) -> None:
    """Configure the payment provider mock to fail like an unreachable provider."""
    state = get_app_state()
    state.payment_provider_client.create_checkout = AsyncMock(
        side_effect=ServiceError(
            "PAYMENT_PROVIDER_UNAVAILABLE", "Cannot connect to payment provider", 502, {}
        )
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User:
    """A registered user as seen by the tests."""

    def __init__(self, principal: dict[str, Any], token: str) -> None:
        self.id: str = principal["id"]
        self.name: str = principal["name"]
        self.role: str = principal["role"]
        self.token = token

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


async def register_user(client: AsyncClient, name: str, role: str) -> User:
    """Register a user via POST /auth/register and return it."""
    response = await client.post(
        "/auth/register",
        json={
            "name": name,
            "email": f"{name.lower()}-{uuid.uuid4().hex[:8]}@example.com",
            "password": "correct horse battery",
            "role": role,
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return User(data["principal"], data["token"])


@pytest.fixture
async def alice(client: AsyncClient) -> User:
    """A registered student."""
    return await register_user(client, "Alice", "student")


@pytest.fixture
async def dave(client: AsyncClient) -> User:
    """Another registered student."""
    return await register_user(client, "Dave", "student")


@pytest.fixture
async def bob(client: AsyncClient) -> User:
    """A registered tutor."""
    return await register_user(client, "Bob", "tutor")


@pytest.fixture
async def carol(client: AsyncClient) -> User:
    """Another registered tutor."""
    return await register_user(client, "Carol", "tutor")


# ---------------------------------------------------------------------------
# Lifecycle helper functions
# ---------------------------------------------------------------------------
async def create_task(
    client: AsyncClient,
    student: User,
    *,
    title: str = "Help with integrals",
    description: str = "Integration by parts, exercises 3-9",
    due_date: str = "2030-02-01",
    budget: float | None = 50,
) -> Any:
    """Post a task via POST /tasks and return the response."""
    body: dict[str, Any] = {"title": title, "description": description, "due_date": due_date}
    if budget is not None:
        body["budget"] = budget
    return await client.post("/tasks", json=body, headers=student.headers)


async def submit_bid(
    client: AsyncClient,
    tutor: User,
    task_id: str,
    *,
    amount: float = 45,
    message: str = "I can help",
) -> Any:
    """Submit a bid via POST /tasks/{task_id}/bids and return the response."""
    return await client.post(
        f"/tasks/{task_id}/bids",
        json={"amount": amount, "message": message},
        headers=tutor.headers,
    )


async def accept_bid(client: AsyncClient, student: User, task_id: str, bid_id: str) -> Any:
    """Accept a bid via POST /tasks/{task_id}/bids/{bid_id}/accept."""
    return await client.post(f"/tasks/{task_id}/bids/{bid_id}/accept", headers=student.headers)


async def mark_paid(client: AsyncClient, student: User, payment_id: str) -> Any:
    """Settle a payment via POST /payments/{payment_id}/paid."""
    return await client.post(f"/payments/{payment_id}/paid", headers=student.headers)


async def confirm_checkout(
    client: AsyncClient,
    checkout_ref: str,
    *,
    secret: str = WEBHOOK_SECRET,
) -> Any:
    """Deliver the provider confirmation webhook."""
    return await client.post(
        "/payments/webhooks/confirmed",
        json={"checkout_ref": checkout_ref},
        headers={"X-Webhook-Secret": secret},
    )


async def setup_accepted_task(
    client: AsyncClient,
    student: User,
    tutor: User,
    *,
    amount: float = 45,
) -> tuple[str, str, dict[str, Any]]:
    """Create a task, bid on it and accept the bid.

    Returns (task_id, bid_id, payment).
    """
    task_resp = await create_task(client, student)
    task_id = task_resp.json()["task_id"]

    bid_resp = await submit_bid(client, tutor, task_id, amount=amount)
    bid_id = bid_resp.json()["bid_id"]

    accept_resp = await accept_bid(client, student, task_id, bid_id)
    assert accept_resp.status_code == 200, accept_resp.text
    return task_id, bid_id, accept_resp.json()
