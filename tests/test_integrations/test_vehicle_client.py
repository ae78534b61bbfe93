import httpx
import pytest
from unittest.mock import AsyncMock, patch

from vehicle_sales.core.exceptions import VehicleLookupError
from vehicle_sales.integrations.vehicle_client import VehicleApiClient, VehicleInfo


def _client(handler) -> VehicleApiClient:
    return VehicleApiClient(base_url="http://vehicles.test", timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_get_vehicle():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"id": 7, "preco": "85000.00", "status": "A_VENDA"}})

    client = _client(handler)
    vehicle = await client.get_vehicle("7")
    await client.close()

    assert str(seen[0].url) == "http://vehicles.test/api/veiculos/7"
    assert vehicle == VehicleInfo(id="7", price="85000.00", status="A_VENDA")
    assert vehicle.is_available


@pytest.mark.asyncio
async def test_sold_vehicle_is_not_available():
    client = _client(lambda r: httpx.Response(200, json={"success": True, "data": {"preco": 1, "status": "VENDIDO"}}))
    vehicle = await client.get_vehicle("abc")
    await client.close()

    assert vehicle.id == "abc"
    assert not vehicle.is_available


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(404, json={"success": False, "message": "not found"}),
    httpx.Response(200, json={"success": False}),
    httpx.Response(200, json={"success": True, "data": None}),
])
async def test_unknown_vehicle_returns_none(response):
    client = _client(lambda r: response)
    assert await client.get_vehicle("404") is None
    await client.close()


@pytest.mark.asyncio
async def test_catalogue_outage_raises_lookup_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="maintenance")

    client = _client(handler)
    with patch('asyncio.sleep', new_callable=AsyncMock) as sleep:
        with pytest.raises(VehicleLookupError):
            await client.get_vehicle("1")
    await client.close()

    # One retry layer: 3 requests, backing off 1s then 2s
    assert len(calls) == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_retry_budget_caps_a_slow_outage():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    client = VehicleApiClient(base_url="http://vehicles.test", timeout=1.0,
                              transport=httpx.MockTransport(handler))
    client.retry_budget = 0
    with patch('asyncio.sleep', new_callable=AsyncMock):
        with pytest.raises(VehicleLookupError):
            await client.get_vehicle("1")
    await client.close()

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_unreachable_catalogue_raises_lookup_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with patch('asyncio.sleep', new_callable=AsyncMock):
        with pytest.raises(VehicleLookupError):
            await client.get_vehicle("1")
    await client.close()
