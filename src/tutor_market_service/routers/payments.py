"""Payment status, settlement, and provider endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tutor_market_service.core.state import get_app_state
from tutor_market_service.routers.validation import current_principal, parse_json_body

router = APIRouter()

WEBHOOK_SECRET_HEADER = "x-webhook-secret"


@router.get("/tasks/{task_id}/payment")
async def get_payment_status(task_id: str, request: Request) -> dict[str, Any]:
    """Report a task's status together with its payment, if any."""
    principal = current_principal(request)

    state = get_app_state()
    if state.payment_manager is None:
        msg = "PaymentManager not initialized"
        raise RuntimeError(msg)

    return await state.payment_manager.get_payment_status(principal, task_id)


@router.get("/payments")
async def list_payments(request: Request) -> dict[str, Any]:
    """List the payments the caller is allowed to see."""
    principal = current_principal(request)

    state = get_app_state()
    if state.payment_manager is None:
        msg = "PaymentManager not initialized"
        raise RuntimeError(msg)

    payments = await state.payment_manager.list_payments(principal)
    return {"payments": payments}


# ---------------------------------------------------------------------------
# Provider webhook (MUST be before the /payments/{payment_id}/... routes)
# ---------------------------------------------------------------------------


@router.post("/payments/webhooks/confirmed")
async def payment_confirmed(request: Request) -> JSONResponse:
    """Settle a payment on the provider's confirmation callback."""
    body = await request.body()
    data = parse_json_body(body)

    state = get_app_state()
    if state.payment_manager is None:
        msg = "PaymentManager not initialized"
        raise RuntimeError(msg)

    result = await state.payment_manager.on_payment_confirmed(
        request.headers.get(WEBHOOK_SECRET_HEADER),
        data,
    )
    return JSONResponse(status_code=200, content=result)


@router.post("/payments/{payment_id}/paid")
async def mark_paid(payment_id: str, request: Request) -> JSONResponse:
    """Mark a payment as paid on behalf of the owning student."""
    principal = current_principal(request)

    state = get_app_state()
    if state.payment_manager is None:
        msg = "PaymentManager not initialized"
        raise RuntimeError(msg)

    result = await state.payment_manager.mark_paid(principal, payment_id)
    return JSONResponse(status_code=200, content=result)


@router.post("/payments/{payment_id}/checkout")
async def create_checkout(payment_id: str, request: Request) -> JSONResponse:
    """Open (or return the existing) provider checkout for a payment."""
    principal = current_principal(request)

    state = get_app_state()
    if state.payment_manager is None:
        msg = "PaymentManager not initialized"
        raise RuntimeError(msg)

    result = await state.payment_manager.create_checkout(principal, payment_id)
    return JSONResponse(status_code=200, content=result)
