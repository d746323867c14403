"""End-to-end task lifecycle through the HTTP API."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import accept_bid, create_task, mark_paid, submit_bid


@pytest.mark.unit
async def test_full_lifecycle_walkthrough(client, alice, bob, carol):
    """Post, bid twice, accept, reject re-acceptance, pay, reject re-payment, reject tutor accept."""
    # 1. Student posts a task; the listing holds exactly that task.
    task_resp = await create_task(client, alice, title="Essay help", budget=500)
    assert task_resp.status_code == 201
    task_id = task_resp.json()["task_id"]

    listing = (await client.get("/tasks")).json()["tasks"]
    assert len(listing) == 1
    assert listing[0]["task_id"] == task_id
    assert listing[0]["student_id"] == alice.id

    # 2. Two tutors bid; both bids are listed in submission order.
    bid_a = (await submit_bid(client, bob, task_id, amount=400, message="can do")).json()
    bid_b = (await submit_bid(client, carol, task_id, amount=450, message="")).json()

    bids = (await client.get(f"/tasks/{task_id}/bids")).json()["bids"]
    assert [b["bid_id"] for b in bids] == [bid_a["bid_id"], bid_b["bid_id"]]
    assert bids[0]["message"] == "can do"

    # 3. Accepting bid A creates an unpaid payment for 400.
    accept_resp = await accept_bid(client, alice, task_id, bid_a["bid_id"])
    assert accept_resp.status_code == 200
    payment = accept_resp.json()
    assert payment["amount"] == 400
    assert payment["paid"] is False

    task = (await client.get(f"/tasks/{task_id}")).json()
    assert task["accepted_bid_id"] == bid_a["bid_id"]
    assert task["status"] == "accepted"

    # 4. Accepting bid B afterwards fails and changes nothing.
    again = await accept_bid(client, alice, task_id, bid_b["bid_id"])
    assert again.status_code == 409
    assert again.json()["error"] == "ALREADY_ACCEPTED"

    task = (await client.get(f"/tasks/{task_id}")).json()
    assert task["accepted_bid_id"] == bid_a["bid_id"]
    payments = (await client.get("/payments", headers=alice.headers)).json()["payments"]
    assert [p["payment_id"] for p in payments] == [payment["payment_id"]]

    # 5. Marking paid succeeds once; the second attempt is rejected and paid stays true.
    paid_resp = await mark_paid(client, alice, payment["payment_id"])
    assert paid_resp.status_code == 200
    paid = paid_resp.json()
    assert paid["paid"] is True
    assert paid["paid_at"] is not None

    repaid = await mark_paid(client, alice, payment["payment_id"])
    assert repaid.status_code == 409
    assert repaid.json()["error"] == "ALREADY_PAID"

    status = (await client.get(f"/tasks/{task_id}/payment", headers=alice.headers)).json()
    assert status["status"] == "paid"
    assert status["payment"]["paid"] is True

    # 6. A tutor cannot accept bids.
    tutor_accept = await accept_bid(client, bob, task_id, bid_a["bid_id"])
    assert tutor_accept.status_code == 403
    assert tutor_accept.json()["error"] == "UNAUTHORIZED"


@pytest.mark.unit
async def test_health_counts_follow_lifecycle(client, alice, bob):
    """Task counts per status move as tasks advance."""
    first = (await create_task(client, alice)).json()["task_id"]
    second = (await create_task(client, alice)).json()["task_id"]

    bid = (await submit_bid(client, bob, first)).json()
    payment = (await accept_bid(client, alice, first, bid["bid_id"])).json()
    await mark_paid(client, alice, payment["payment_id"])

    bid = (await submit_bid(client, bob, second)).json()
    await accept_bid(client, alice, second, bid["bid_id"])
    await create_task(client, alice)

    data = (await client.get("/health")).json()
    assert data["total_tasks"] == 3
    assert data["tasks_by_status"] == {"open": 1, "accepted": 1, "paid": 1}
