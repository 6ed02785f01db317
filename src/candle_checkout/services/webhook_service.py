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

"""Webhook service driving fulfillment for completed payments.

Once a Stripe event's signature verifies, the payment has been captured and
the event must be acknowledged whatever happens downstream; a non-2xx answer
would only make Stripe redeliver it. Each downstream step (shipment, merchant
email, customer email) is therefore isolated and its failures are logged.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from candle_checkout import db
from candle_checkout.clients.payments import PaymentGateway
from candle_checkout.enums import CHECKOUT_COMPLETED_EVENT
from candle_checkout.exceptions import UpstreamProcessorError
from candle_checkout.models import OrderSummary
from candle_checkout.models import ShipmentItem
from candle_checkout.models import ShipmentOutcome
from candle_checkout.services import session_parser
from candle_checkout.services.fulfillment_service import FulfillmentService
from candle_checkout.services.notification_service import NotificationService
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

RECEIVED = {"received": True}


def shipment_items(
    order: OrderSummary, session: Mapping[str, Any]
) -> List[ShipmentItem]:
  """Items used for the weight estimate.

  Paid line items are used when available; otherwise the structured cart
  written into the session metadata at checkout.
  """
  if order.lines:
    return [
        ShipmentItem(scent=line.scent, size=line.size, qty=line.qty)
        for line in order.lines
    ]
  return [
      ShipmentItem(scent=scent, size=size, qty=qty)
      for scent, size, qty in session_parser.parse_cart_metadata(session)
  ]


class WebhookService:
  """Service handling verified Stripe webhook events."""

  def __init__(
      self,
      payment_gateway: PaymentGateway,
      fulfillment_service: FulfillmentService,
      notification_service: NotificationService,
      events_session: Optional[AsyncSession] = None,
  ):
    self.payment_gateway = payment_gateway
    self.fulfillment_service = fulfillment_service
    self.notification_service = notification_service
    self.events_session = events_session

  async def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verifies and processes one webhook delivery.

    Args:
      payload: The raw request body.
      signature: The Stripe-Signature header value.

    Returns:
      The acknowledgement body.

    Raises:
      SignatureInvalidError: If the event cannot be verified. This is the only
        error that reaches the caller.
    """
    event = self.payment_gateway.construct_event(payload, signature)
    event_type = event.get("type")
    event_id = event.get("id")

    if event_type != CHECKOUT_COMPLETED_EVENT:
      logger.info("Ignoring webhook event %s (%s)", event_id, event_type)
      return dict(RECEIVED)

    event_session = (event.get("data") or {}).get("object") or {}
    session_id = event_session.get("id")
    if not session_id:
      logger.error("Event %s has no checkout session id", event_id)
      return dict(RECEIVED)

    if not await self._claim(session_id, event_id):
      return dict(RECEIVED, duplicate=True)

    try:
      await self.process_completed_session(session_id, event_session)
    except Exception:  # pylint: disable=broad-exception-caught
      logger.exception("Webhook handler error for session %s", session_id)
    return dict(RECEIVED)

  async def _claim(self, session_id: str, event_id: Optional[str]) -> bool:
    if self.events_session is None:
      return True
    try:
      return await db.claim_session(self.events_session, session_id, event_id)
    except SQLAlchemyError:
      # The payment is captured; shipping twice is better than not at all.
      logger.exception(
          "Events DB unavailable; processing %s without a claim", session_id
      )
      return True

  async def load_order(
      self, session_id: str, event_session: Mapping[str, Any]
  ) -> Tuple[OrderSummary, Mapping[str, Any]]:
    """Re-fetches the session and its line items from Stripe.

    The event body is a trimmed copy of the session, so the full session is
    retrieved for totals and the shipping method name. Either fetch may fail
    independently; the event copy and the session metadata fill in.

    Returns:
      (order summary, session mapping used to build it).
    """
    try:
      session = await self.payment_gateway.retrieve_session(session_id)
    except UpstreamProcessorError:
      logger.warning("Using event payload for session %s", session_id)
      session = event_session

    line_items = None
    try:
      line_items = await self.payment_gateway.list_line_items(session_id)
    except UpstreamProcessorError:
      logger.warning(
          "Could not fetch line items for %s; using metadata", session_id
      )

    return session_parser.build_order_summary(session, line_items), session

  async def process_completed_session(
      self, session_id: str, event_session: Mapping[str, Any]
  ) -> Dict[str, Any]:
    """Ships and confirms one paid checkout session."""
    order, session = await self.load_order(session_id, event_session)
    logger.info(
        "checkout.session.completed %s: total=%d %s, status=%s, items=%s",
        order.id,
        order.totals.total,
        order.currency,
        order.payment_status,
        order.items_text,
    )

    try:
      shipment = await self.fulfillment_service.create_shipment(
          order.shipping_address,
          shipment_items(order, session),
          order.id or session_id,
          insured_amount_cents=order.totals.subtotal or None,
      )
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.exception("Shipment step failed for %s", session_id)
      shipment = ShipmentOutcome(error=str(e) or type(e).__name__)

    emails = await self.notification_service.send_order_emails(order, shipment)
    return {"order": order, "shipment": shipment, "emails": emails}
