"""Registration, login, and current-principal endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tutor_market_service.core.state import get_app_state
from tutor_market_service.routers.validation import current_principal, parse_json_body
from tutor_market_service.schemas import PrincipalResponse

router = APIRouter()


@router.post("/auth/register", status_code=201)
async def register(request: Request) -> JSONResponse:
    """Register a student or tutor and return a session token."""
    body = await request.body()
    data = parse_json_body(body)

    state = get_app_state()
    if state.identity_provider is None:
        msg = "IdentityProvider not initialized"
        raise RuntimeError(msg)

    result = state.identity_provider.register(data)
    return JSONResponse(status_code=201, content=result)


@router.post("/auth/login")
async def login(request: Request) -> JSONResponse:
    """Exchange email and password for a session token."""
    body = await request.body()
    data = parse_json_body(body)

    state = get_app_state()
    if state.identity_provider is None:
        msg = "IdentityProvider not initialized"
        raise RuntimeError(msg)

    result = state.identity_provider.login(data)
    return JSONResponse(status_code=200, content=result)


@router.get("/auth/me", response_model=PrincipalResponse)
async def me(request: Request) -> dict[str, Any]:
    """Return the principal behind the presented token."""
    return current_principal(request).to_dict()
