"""Payment endpoint tests under the restrictive policy settings."""

from __future__ import annotations

from typing import Any

import pytest

from tests.unit.routers.conftest import confirm_checkout, mark_paid, setup_accepted_task


@pytest.fixture
def config_overrides() -> dict[str, Any]:
    return {"tutor_visibility": "accepted_bidder", "allow_manual_settlement": False}


@pytest.mark.unit
async def test_manual_settlement_disabled(client, alice, bob):
    _, _, payment = await setup_accepted_task(client, alice, bob)

    response = await mark_paid(client, alice, payment["payment_id"])

    assert response.status_code == 409
    assert response.json()["error"] == "MANUAL_SETTLEMENT_DISABLED"


@pytest.mark.unit
async def test_webhook_still_settles(client, alice, bob):
    _, _, payment = await setup_accepted_task(client, alice, bob)
    checkout = await client.post(
        f"/payments/{payment['payment_id']}/checkout", headers=alice.headers
    )

    response = await confirm_checkout(client, checkout.json()["checkout_ref"])

    assert response.status_code == 200
    assert response.json()["paid"] is True


@pytest.mark.unit
async def test_tutor_sees_only_own_payments(client, alice, dave, bob, carol):
    _, _, alice_payment = await setup_accepted_task(client, alice, bob)
    await setup_accepted_task(client, dave, carol)

    listed = (await client.get("/payments", headers=bob.headers)).json()["payments"]

    assert [p["payment_id"] for p in listed] == [alice_payment["payment_id"]]


@pytest.mark.unit
async def test_payment_status_restricted_to_accepted_tutor(client, alice, bob, carol):
    task_id, _, _ = await setup_accepted_task(client, alice, bob)

    allowed = await client.get(f"/tasks/{task_id}/payment", headers=bob.headers)
    denied = await client.get(f"/tasks/{task_id}/payment", headers=carol.headers)

    assert allowed.status_code == 200
    assert denied.status_code == 403
    assert denied.json()["error"] == "UNAUTHORIZED"
