from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .base_client import BaseApiClient
from vehicle_sales.core.config import settings
from vehicle_sales.core.exceptions import VehicleLookupError

AVAILABLE_FOR_SALE = "A_VENDA"


class VehicleInfo(BaseModel):
    """Vehicle as returned by the catalogue service. Only price and status matter here."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    # Left raw: the sale service owns the numeric conversion and its error
    price: Any = Field(default=None, alias="preco")
    status: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE_FOR_SALE


@runtime_checkable
class VehicleLookup(Protocol):
    async def get_vehicle(self, vehicle_id: str) -> VehicleInfo | None: ...


class VehicleApiClient(BaseApiClient):
    """Client of the catalogue service's ``/api/veiculos`` endpoints."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        base_url = (base_url or settings.VEHICLE_SERVICE_URL).rstrip("/") + "/api/"
        super().__init__(
            base_url=base_url,
            timeout=timeout or settings.VEHICLE_SERVICE_TIMEOUT_SECONDS,
            transport=transport,
            tries=settings.VEHICLE_SERVICE_MAX_TRIES,
            retry_budget=settings.VEHICLE_SERVICE_RETRY_BUDGET_SECONDS,
        )
        self.client.headers["Content-Type"] = "application/json"

    async def get_vehicle(self, vehicle_id: str) -> VehicleInfo | None:
        """
        Fetches one vehicle. Returns None when the catalogue does not know it
        (HTTP 404 or ``success: false``); raises VehicleLookupError when the
        catalogue cannot be reached.
        """
        try:
            body = await self._request("GET", f"veiculos/{vehicle_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise VehicleLookupError(
                f"Vehicle service answered {e.response.status_code} for vehicle {vehicle_id}"
            ) from e
        except httpx.HTTPError as e:
            raise VehicleLookupError(f"Vehicle service unreachable: {e!r}") from e

        if not body or not body.get("success"):
            return None
        data = body.get("data")
        if not isinstance(data, dict):
            return None
        return VehicleInfo.model_validate({**data, "id": str(data.get("id") or vehicle_id)})
