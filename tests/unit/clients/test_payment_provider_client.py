from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from tutor_market_service.clients.payment_provider_client import PaymentProviderClient
from tutor_market_service.core.exceptions import ServiceError

PAYMENT = {"payment_id": "pay-1", "task_id": "t-1", "amount": 45.0}


def _make_client(
    mock_response: httpx.Response | None = None,
    side_effect: Exception | None = None,
) -> PaymentProviderClient:
    """Create a PaymentProviderClient with a mock HTTP transport."""
    client = PaymentProviderClient(
        base_url="http://mock-provider:8090",
        checkout_path="/checkouts",
        timeout_seconds=5,
    )

    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.post = AsyncMock(return_value=mock_response, side_effect=side_effect)
    client._client = mock_http
    return client


def _mock_response(status_code: int, json_body: Any) -> httpx.Response:
    """Create a mock httpx.Response."""
    return httpx.Response(
        status_code=status_code,
        json=json_body,
        request=httpx.Request("POST", "http://mock-provider:8090/checkouts"),
    )


@pytest.mark.unit
@pytest.mark.parametrize("status_code", [200, 201])
async def test_create_checkout_returns_reference(status_code: int) -> None:
    client = _make_client(_mock_response(status_code, {"checkout_ref": "chk-abc"}))

    checkout_ref = await client.create_checkout(PAYMENT, "USD")

    assert checkout_ref == "chk-abc"
    client._client.post.assert_awaited_once_with(
        "/checkouts",
        json={"payment_id": "pay-1", "task_id": "t-1", "amount": 45.0, "currency": "USD"},
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "error",
    [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        httpx.RemoteProtocolError("garbled"),
    ],
)
async def test_transport_errors_become_provider_unavailable(error: Exception) -> None:
    client = _make_client(side_effect=error)

    with pytest.raises(ServiceError) as exc_info:
        await client.create_checkout(PAYMENT, "USD")

    assert exc_info.value.error == "PAYMENT_PROVIDER_UNAVAILABLE"
    assert exc_info.value.status_code == 502


@pytest.mark.unit
@pytest.mark.parametrize("status_code", [400, 404, 500, 503])
async def test_unexpected_status_becomes_provider_unavailable(status_code: int) -> None:
    client = _make_client(_mock_response(status_code, {"error": "nope"}))

    with pytest.raises(ServiceError) as exc_info:
        await client.create_checkout(PAYMENT, "USD")

    assert exc_info.value.error == "PAYMENT_PROVIDER_UNAVAILABLE"


@pytest.mark.unit
@pytest.mark.parametrize("body", [{}, {"checkout_ref": ""}, {"checkout_ref": 12}, ["chk-abc"]])
async def test_response_without_reference_is_rejected(body: Any) -> None:
    client = _make_client(_mock_response(201, body))

    with pytest.raises(ServiceError) as exc_info:
        await client.create_checkout(PAYMENT, "USD")

    assert exc_info.value.message == "Payment provider response is missing checkout_ref"


@pytest.mark.unit
async def test_non_json_response_is_rejected() -> None:
    response = httpx.Response(
        status_code=201,
        content=b"<html>ok</html>",
        request=httpx.Request("POST", "http://mock-provider:8090/checkouts"),
    )
    client = _make_client(response)

    with pytest.raises(ServiceError) as exc_info:
        await client.create_checkout(PAYMENT, "USD")

    assert exc_info.value.error == "PAYMENT_PROVIDER_UNAVAILABLE"


@pytest.mark.unit
async def test_close_closes_http_client() -> None:
    client = _make_client(_mock_response(201, {"checkout_ref": "chk-abc"}))
    await client.close()
    client._client.aclose.assert_awaited_once()
