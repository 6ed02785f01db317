#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""EasyPost REST client for shipments, labels and trackers."""

import logging
from typing import Any, Dict, Optional

from candle_checkout.exceptions import ShippingProcessorError
import httpx

logger = logging.getLogger(__name__)

EASYPOST_API_BASE = "https://api.easypost.com/v2"


def _error_message(response: httpx.Response) -> str:
  """Extracts the error message from an EasyPost error response."""
  try:
    body = response.json()
  except ValueError:
    return f"HTTP {response.status_code}"
  error = body.get("error") if isinstance(body, dict) else None
  if isinstance(error, dict) and error.get("message"):
    return f"{error.get('code', 'ERROR')}: {error['message']}"
  return f"HTTP {response.status_code}"


class EasyPostClient:
  """Minimal async client for the EasyPost v2 API."""

  def __init__(
      self,
      api_key: Optional[str],
      timeout: float = 15.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
      base_url: str = EASYPOST_API_BASE,
  ):
    self.api_key = api_key
    self.timeout = timeout
    self.transport = transport
    self.base_url = base_url

  async def _request(
      self, method: str, path: str, json: Optional[Dict[str, Any]] = None
  ) -> Dict[str, Any]:
    if not self.api_key:
      raise ShippingProcessorError("Shipping processor is not configured")

    try:
      async with httpx.AsyncClient(
          base_url=self.base_url,
          auth=(self.api_key, ""),
          timeout=self.timeout,
          transport=self.transport,
      ) as client:
        response = await client.request(method, path, json=json)
    except httpx.HTTPError as e:
      raise ShippingProcessorError(f"EasyPost request failed: {e}") from e

    if response.status_code >= 400:
      message = _error_message(response)
      logger.error("EasyPost %s %s failed: %s", method, path, message)
      raise ShippingProcessorError(message)

    try:
      return response.json()
    except ValueError as e:
      raise ShippingProcessorError("EasyPost returned invalid JSON") from e

  async def create_shipment(self, shipment: Dict[str, Any]) -> Dict[str, Any]:
    """Creates a shipment; the response carries the available rates."""
    return await self._request("POST", "/shipments", {"shipment": shipment})

  async def buy_shipment(
      self,
      shipment_id: str,
      rate_id: str,
      insurance: Optional[str] = None,
  ) -> Dict[str, Any]:
    """Buys the given rate for a shipment, optionally insuring it."""
    body: Dict[str, Any] = {"rate": {"id": rate_id}}
    if insurance:
      body["insurance"] = insurance
    return await self._request("POST", f"/shipments/{shipment_id}/buy", body)

  async def retrieve_shipment(self, shipment_id: str) -> Dict[str, Any]:
    return await self._request("GET", f"/shipments/{shipment_id}")

  async def create_tracker(
      self, tracking_code: str, carrier: Optional[str] = None
  ) -> Dict[str, Any]:
    tracker: Dict[str, Any] = {"tracking_code": tracking_code}
    if carrier:
      tracker["carrier"] = carrier
    return await self._request("POST", "/trackers", {"tracker": tracker})
