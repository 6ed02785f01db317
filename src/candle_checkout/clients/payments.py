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

"""Stripe adapter for hosted checkout sessions and webhook verification.

The Stripe SDK is synchronous, so each call runs in the threadpool to keep the
event loop free. Every SDK failure is converted to `UpstreamProcessorError`.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from candle_checkout.exceptions import SignatureInvalidError
from candle_checkout.exceptions import UpstreamProcessorError
from fastapi.concurrency import run_in_threadpool
import stripe

logger = logging.getLogger(__name__)

# Maximum age of a signed webhook payload.
SIGNATURE_TOLERANCE_SECONDS = 300

_SESSION_EXPAND = ["shipping_cost.shipping_rate"]
_LINE_ITEM_EXPAND = ["data.price.product"]


def _as_dict(obj: Any) -> Dict[str, Any]:
  if isinstance(obj, dict):
    return obj
  return obj.to_dict()


class PaymentGateway:
  """Thin wrapper around the Stripe checkout and webhook APIs."""

  def __init__(
      self,
      api_key: Optional[str],
      webhook_secret: Optional[str],
      timeout: float = 15.0,
  ):
    self.api_key = api_key
    self.webhook_secret = webhook_secret
    self.timeout = timeout
    self._client: Optional[stripe.StripeClient] = None

  def _get_client(self) -> stripe.StripeClient:
    if not self.api_key:
      raise UpstreamProcessorError("Payment processor is not configured")
    if self._client is None:
      self._client = stripe.StripeClient(
          self.api_key,
          http_client=stripe.RequestsClient(timeout=self.timeout),
      )
    return self._client

  async def _call(self, description: str, fn, *args, **kwargs) -> Any:
    client = self._get_client()
    try:
      return await run_in_threadpool(fn, client, *args, **kwargs)
    except stripe.StripeError as e:
      logger.error("Stripe %s failed: %s", description, e)
      raise UpstreamProcessorError(f"Stripe {description} failed") from e

  async def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
    """Creates a hosted checkout session and returns it as a dict."""
    session = await self._call(
        "session creation",
        lambda client: client.checkout.sessions.create(params=params),
    )
    return _as_dict(session)

  async def retrieve_session(self, session_id: str) -> Dict[str, Any]:
    """Retrieves a session with its shipping rate expanded."""
    session = await self._call(
        "session retrieval",
        lambda client: client.checkout.sessions.retrieve(
            session_id, params={"expand": _SESSION_EXPAND}
        ),
    )
    return _as_dict(session)

  async def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
    """Lists up to 100 line items of a session with products expanded."""
    page = await self._call(
        "line item listing",
        lambda client: client.checkout.sessions.line_items.list(
            session_id, params={"limit": 100, "expand": _LINE_ITEM_EXPAND}
        ),
    )
    return [_as_dict(item) for item in (_as_dict(page).get("data") or [])]

  def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verifies a webhook signature and parses the event body.

    Args:
      payload: The raw request body, exactly as received.
      signature: The value of the Stripe-Signature header.

    Returns:
      The event as a plain dict.

    Raises:
      SignatureInvalidError: If the signature is missing or wrong, the secret
        is not configured, or the verified body is not a JSON object.
    """
    if not signature:
      raise SignatureInvalidError("Missing Stripe signature")
    if not self.webhook_secret:
      logger.error("Webhook secret is not configured; rejecting event")
      raise SignatureInvalidError("Webhook secret is not configured")

    try:
      body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
      raise SignatureInvalidError("Webhook payload is not UTF-8") from e

    try:
      stripe.WebhookSignature.verify_header(
          body, signature, self.webhook_secret, SIGNATURE_TOLERANCE_SECONDS
      )
    except stripe.SignatureVerificationError as e:
      raise SignatureInvalidError(f"Webhook Error: {e}") from e

    try:
      event = json.loads(body)
    except ValueError as e:
      raise SignatureInvalidError("Webhook payload is not valid JSON") from e
    if not isinstance(event, dict):
      raise SignatureInvalidError("Webhook payload is not an event object")
    return event
