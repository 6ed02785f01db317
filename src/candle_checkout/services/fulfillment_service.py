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

"""Fulfillment service for shipping paid orders.

This module estimates the package weight of an order, asks EasyPost for
rates, picks one with the store's rate policy and buys the label. Shipment
failures are reported on the returned outcome instead of raised, because the
order has already been paid and must still be confirmed by email.
"""

from decimal import Decimal
from decimal import InvalidOperation
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from candle_checkout.clients.shipping import EasyPostClient
from candle_checkout.exceptions import NoRatesAvailableError
from candle_checkout.exceptions import ShippingError
from candle_checkout.exceptions import ShippingProcessorError
from candle_checkout.models import Address
from candle_checkout.models import PurchasedLabel
from candle_checkout.models import Rate
from candle_checkout.models import ShipmentItem
from candle_checkout.models import ShipmentOutcome

logger = logging.getLogger(__name__)

FROM_ADDRESS = {
    "name": "Kelley's Farm Candles",
    "street1": "17 Deerfield Dr",
    "city": "Moundsville",
    "state": "WV",
    "zip": "26041-1082",
    "country": "US",
    "phone": "3043125563",
}

# Estimated shipping weight per unit in ounces (wax plus jar), by size.
CANDLE_WEIGHTS_OZ = {
    "6 oz": 10,
    "12 oz": 18,
    "17 oz": 24,
}
WAX_MELT_WEIGHT_OZ = 5
FALLBACK_WEIGHT_OZ = 15
BOX_WEIGHT_OZ = 4

# One box size for every order (inches).
BOX_DIMENSIONS_IN = {"length": 12, "width": 10, "height": 8}

PREFERRED_CARRIER = "USPS"
PREFERRED_SERVICES = ("GroundAdvantage", "First", "ParcelSelect")


def _is_wax_melt(item: ShipmentItem) -> bool:
  return "wax melt" in item.scent.lower()


def unit_weight(item: ShipmentItem) -> int:
  """Estimated weight of one unit of an item, in ounces."""
  if _is_wax_melt(item):
    return WAX_MELT_WEIGHT_OZ
  return CANDLE_WEIGHTS_OZ.get(item.size, FALLBACK_WEIGHT_OZ)


def calculate_package_weight(items: Iterable[ShipmentItem]) -> int:
  """Estimates total package weight in ounces, box included.

  This is an estimate from fixed per-size weights, not a measured weight.
  """
  return BOX_WEIGHT_OZ + sum(unit_weight(item) * item.qty for item in items)


def parse_rates(raw_rates: Optional[Sequence[Mapping[str, Any]]]) -> List[Rate]:
  """Converts EasyPost rate objects, skipping any without a usable price."""
  rates = []
  for raw in raw_rates or []:
    try:
      rates.append(
          Rate(
              id=raw.get("id") or "",
              carrier=raw.get("carrier") or "",
              service=raw.get("service") or "",
              price=Decimal(str(raw.get("rate"))),
              currency=raw.get("currency") or "USD",
          )
      )
    except (InvalidOperation, ValueError):
      logger.warning("Skipping rate with unusable price: %s", raw.get("id"))
  return rates


def select_rate(
    rates: Sequence[Rate],
    preferred_carrier: str = PREFERRED_CARRIER,
    preferred_services: Sequence[str] = PREFERRED_SERVICES,
) -> Rate:
  """Picks the rate to buy.

  The cheapest rate for the preferred carrier and economy services wins, even
  when another carrier is cheaper. Only when no preferred rate exists does
  the globally cheapest rate get picked. Ties keep the earlier rate.

  Raises:
    NoRatesAvailableError: If there are no rates at all.
  """
  if not rates:
    raise NoRatesAvailableError()

  carrier = preferred_carrier.lower()
  services = {s.lower() for s in preferred_services}
  preferred = [
      r
      for r in rates
      if r.carrier.lower() == carrier and r.service.lower() in services
  ]
  if preferred:
    return min(preferred, key=lambda r: r.price)

  cheapest = min(rates, key=lambda r: r.price)
  logger.warning(
      "No %s economy rate among %d rates; falling back to cheapest %s %s",
      preferred_carrier,
      len(rates),
      cheapest.carrier,
      cheapest.service,
  )
  return cheapest


def _to_easypost_address(address: Address) -> Dict[str, Any]:
  return {
      "name": address.name,
      "street1": address.line1,
      "street2": address.line2,
      "city": address.city,
      "state": address.state,
      "zip": address.postal_code,
      "country": address.country or "US",
      "phone": address.phone,
  }


class FulfillmentService:
  """Service for buying shipping labels for paid orders."""

  def __init__(self, shipping_client: EasyPostClient, verify_address: bool = False):
    self.shipping_client = shipping_client
    self.verify_address = verify_address

  async def create_shipment(
      self,
      to_address: Optional[Address],
      items: Sequence[ShipmentItem],
      order_id: str,
      insured_amount_cents: Optional[int] = None,
  ) -> ShipmentOutcome:
    """Creates a shipment and buys a label for an order.

    Args:
      to_address: The customer's shipping address.
      items: The paid items, used to estimate the weight.
      order_id: The checkout session id, stored as the shipment reference.
      insured_amount_cents: Declared value to insure, if any.

    Returns:
      A ShipmentOutcome holding either the purchased label or the error
      message. This method does not raise.
    """
    try:
      label = await self._purchase_label(
          to_address, items, order_id, insured_amount_cents
      )
    except ShippingError as e:
      logger.error("Shipment for %s failed: %s", order_id, e.message)
      return ShipmentOutcome(error=e.message)
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.exception("Unexpected shipment error for %s", order_id)
      return ShipmentOutcome(error=str(e) or type(e).__name__)
    return ShipmentOutcome(label=label)

  async def _purchase_label(
      self,
      to_address: Optional[Address],
      items: Sequence[ShipmentItem],
      order_id: str,
      insured_amount_cents: Optional[int],
  ) -> PurchasedLabel:
    if to_address is None:
      raise ShippingProcessorError("Order has no shipping address")

    weight_oz = calculate_package_weight(items)
    logger.info(
        "Creating shipment for %s (%d oz, %d items)",
        order_id,
        weight_oz,
        len(items),
    )

    to_payload = _to_easypost_address(to_address)
    if self.verify_address:
      to_payload["verify"] = ["delivery"]

    shipment = await self.shipping_client.create_shipment({
        "from_address": FROM_ADDRESS,
        "to_address": to_payload,
        "parcel": dict(BOX_DIMENSIONS_IN, weight=weight_oz),
        "reference": order_id,
    })
    shipment_id = shipment.get("id")
    if not shipment_id:
      raise ShippingProcessorError("Shipment response has no id")

    rate = select_rate(parse_rates(shipment.get("rates")))
    logger.info(
        "Buying %s %s label for %s at %s %s",
        rate.carrier,
        rate.service,
        order_id,
        rate.price,
        rate.currency,
    )

    insurance = None
    if insured_amount_cents:
      insurance = f"{insured_amount_cents / 100:.2f}"
    await self.shipping_client.buy_shipment(shipment_id, rate.id, insurance)

    bought = await self.shipping_client.retrieve_shipment(shipment_id)
    tracking_code = bought.get("tracking_code")
    label_url = (bought.get("postage_label") or {}).get("label_url")
    tracking_url = (bought.get("tracker") or {}).get("public_url")

    if tracking_code and not tracking_url:
      try:
        tracker = await self.shipping_client.create_tracker(
            tracking_code, rate.carrier
        )
        tracking_url = tracker.get("public_url")
      except ShippingError as e:
        logger.warning("Tracker creation for %s failed: %s", order_id, e)

    logger.info("Label purchased for %s: %s", order_id, tracking_code)
    return PurchasedLabel(
        shipment_id=shipment_id,
        tracking_code=tracking_code,
        tracking_url=tracking_url,
        label_url=label_url,
        rate=rate,
    )

  async def get_tracking(self, tracking_code: str) -> Dict[str, Any]:
    """Looks up the current tracking status for a tracking code."""
    tracker = await self.shipping_client.create_tracker(tracking_code)
    return {
        "status": tracker.get("status"),
        "status_detail": tracker.get("status_detail"),
        "public_url": tracker.get("public_url"),
        "tracking_details": tracker.get("tracking_details") or [],
    }
