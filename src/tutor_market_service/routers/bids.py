"""Bid submission, listing, and acceptance endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.core.state import get_app_state
from tutor_market_service.routers.validation import current_principal, parse_json_body

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/bids — submit bid
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/bids", status_code=201)
async def submit_bid(task_id: str, request: Request) -> JSONResponse:
    """Submit a bid on a task as the authenticated tutor."""
    principal = current_principal(request)
    body = await request.body()
    data = parse_json_body(body)

    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)

    result = await state.bid_manager.submit_bid(principal, task_id, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks/{task_id}/bids — list bids
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/bids")
async def list_bids(task_id: str) -> dict[str, Any]:
    """List the bids on a task in submission order."""
    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)

    bids = await state.bid_manager.list_bids(task_id)
    return {"task_id": task_id, "bids": bids}


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/bids/{bid_id}/accept — accept bid
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/bids/{bid_id}/accept")
async def accept_bid(task_id: str, bid_id: str, request: Request) -> JSONResponse:
    """Accept a bid; the task's payment is created in the same step."""
    principal = current_principal(request)

    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)

    result = await state.bid_manager.accept_bid(principal, task_id, bid_id)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Method-not-allowed: bid routes
# ---------------------------------------------------------------------------


@router.api_route(
    "/tasks/{task_id}/bids/{bid_id}/accept",
    methods=["GET", "PUT", "PATCH", "DELETE"],
)
async def accept_method_not_allowed(
    task_id: str,
    bid_id: str,
    request: Request,
) -> None:
    """Reject wrong methods on /tasks/{task_id}/bids/{bid_id}/accept."""
    _ = (task_id, bid_id, request)
    raise ServiceError("METHOD_NOT_ALLOWED", "Method not allowed", 405, {})
