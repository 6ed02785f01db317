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

"""Checkout service for creating and reading hosted checkout sessions.

This module provides the `CheckoutService` class, which encapsulates the
business logic for turning a storefront cart into a Stripe-hosted checkout
session.

Key responsibilities include:
- Resolving cart lines into server-priced items via the catalog service.
- Deciding the single shipping fee for the order (flat or quantity tiered,
  with a free-shipping threshold).
- Recording a readable cart summary, structured cart data and the shipping
  decision as session metadata for later audit.
- Projecting an existing session for the storefront's thank-you page.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from candle_checkout.clients.payments import PaymentGateway
from candle_checkout.config import Settings
from candle_checkout.enums import ShippingPolicy
from candle_checkout.exceptions import EmptyCartError
from candle_checkout.exceptions import InvalidRequestError
from candle_checkout.exceptions import UpstreamProcessorError
from candle_checkout.models import CreateCheckoutSessionRequest
from candle_checkout.models import NormalizedItem
from candle_checkout.models import ShippingDecision
from candle_checkout.services import session_parser
from candle_checkout.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

CURRENCY = "usd"

# Stripe rejects metadata values longer than this.
METADATA_VALUE_LIMIT = 500


def _truncate(value: str, limit: int = METADATA_VALUE_LIMIT) -> str:
  if len(value) <= limit:
    return value
  return value[: limit - 3] + "..."


class CheckoutService:
  """Service for creating checkout sessions from storefront carts."""

  def __init__(
      self,
      settings: Settings,
      catalog_service: CatalogService,
      payment_gateway: PaymentGateway,
  ):
    self.settings = settings
    self.catalog_service = catalog_service
    self.payment_gateway = payment_gateway

  def decide_shipping(self, items: List[NormalizedItem]) -> ShippingDecision:
    """Resolves the one shipping fee charged for the order.

    The fee is computed here rather than offered as a choice so the customer
    cannot pick a cheaper option than the store intends.
    """
    subtotal = sum(item.line_total_cents for item in items)
    if subtotal >= self.settings.free_shipping_threshold_cents:
      return ShippingDecision(
          tier="free", display_name="Free Shipping", amount_cents=0
      )

    if self.settings.shipping_policy == ShippingPolicy.FLAT:
      return ShippingDecision(
          tier="flat",
          display_name="Flat Rate Shipping",
          amount_cents=self.settings.flat_shipping_cents,
      )

    quantity = sum(item.qty for item in items)
    if quantity <= 1:
      tier, amount = "single", self.settings.tier_single_cents
    elif quantity <= 3:
      tier, amount = "small", self.settings.tier_small_cents
    else:
      tier, amount = "large", self.settings.tier_large_cents
    return ShippingDecision(
        tier=tier, display_name="Standard Shipping", amount_cents=amount
    )

  def build_session_params(
      self,
      items: List[NormalizedItem],
      shipping: ShippingDecision,
      customer_email: Optional[str] = None,
  ) -> Dict[str, Any]:
    """Builds the Stripe checkout session request for priced items."""
    line_items = [
        {
            "quantity": item.qty,
            "price_data": {
                "currency": CURRENCY,
                "unit_amount": item.unit_price_cents,
                "product_data": {
                    "name": item.display_name,
                    "metadata": {
                        "scent": item.scent,
                        "size": item.size,
                        "catalog_key": item.catalog_key,
                    },
                },
            },
        }
        for item in items
    ]

    subtotal = sum(item.line_total_cents for item in items)
    metadata = {
        "items": _truncate(
            ", ".join(f"{item.qty}x {item.display_name}" for item in items)
        ),
        "shipping_tier": shipping.tier,
        "shipping_amount": str(shipping.amount_cents),
        "subtotal": str(subtotal),
    }
    cart = json.dumps(
        [[item.scent, item.size, item.qty] for item in items],
        separators=(",", ":"),
    )
    if len(cart) <= METADATA_VALUE_LIMIT:
      metadata["cart"] = cart
    else:
      logger.warning("Cart metadata too long (%d chars); omitting", len(cart))

    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": line_items,
        "success_url": self.settings.checkout_success_url,
        "cancel_url": self.settings.checkout_cancel_url,
        "customer_creation": "if_required",
        "shipping_address_collection": {
            "allowed_countries": list(self.settings.allowed_countries),
        },
        "phone_number_collection": {"enabled": True},
        "shipping_options": [{
            "shipping_rate_data": {
                "type": "fixed_amount",
                "display_name": shipping.display_name,
                "fixed_amount": {
                    "amount": shipping.amount_cents,
                    "currency": CURRENCY,
                },
            }
        }],
        "metadata": metadata,
    }
    if customer_email:
      params["customer_email"] = customer_email
    return params

  async def create_session(self, request: CreateCheckoutSessionRequest) -> str:
    """Creates a hosted checkout session and returns its redirect URL.

    Args:
      request: The storefront's cart and optional contact email.

    Returns:
      The URL of the hosted checkout page.

    Raises:
      EmptyCartError: If the cart is missing or empty.
      InvalidCartItemError: If any cart line cannot be normalized or priced.
      UpstreamProcessorError: If Stripe fails to create the session.
    """
    if not request.cart:
      raise EmptyCartError()

    items = self.catalog_service.resolve_cart(request.cart)
    shipping = self.decide_shipping(items)
    params = self.build_session_params(
        items, shipping, request.customer_email
    )

    session = await self.payment_gateway.create_checkout_session(params)
    url = session.get("url")
    if not url:
      raise UpstreamProcessorError("Checkout session has no redirect URL")

    logger.info(
        "Created checkout session %s (%d items, shipping %s=%d)",
        session.get("id"),
        len(items),
        shipping.tier,
        shipping.amount_cents,
    )
    return url

  async def get_session_summary(self, session_id: Optional[str]) -> Dict[str, Any]:
    """Returns totals, customer, shipping and items of a session."""
    session_id = (session_id or "").strip()
    if not session_id:
      raise InvalidRequestError("Missing session_id")

    session = await self.payment_gateway.retrieve_session(session_id)
    line_items = await self.payment_gateway.list_line_items(session_id)
    return session_parser.session_projection(session, line_items)
