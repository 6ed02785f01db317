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

"""Integration tests for the checkout server."""

import asyncio
import hashlib
import hmac
import json
import os
import shutil
import tempfile
import time
from typing import Any, AsyncGenerator, Dict, List

from absl.testing import absltest
from candle_checkout import config
from candle_checkout import db
from candle_checkout import dependencies
from candle_checkout.clients.mailer import ResendClient
from candle_checkout.clients.payments import PaymentGateway
from candle_checkout.clients.shipping import EasyPostClient
from candle_checkout.exceptions import UpstreamProcessorError
from candle_checkout.server import app
from fastapi.testclient import TestClient
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

WEBHOOK_SECRET = "whsec_integration"
STORE_ORIGIN = "https://kelleyscandles.com"


def _completed_session(session_id: str, shipping: int = 0) -> Dict[str, Any]:
  return {
      "id": session_id,
      "object": "checkout.session",
      "currency": "usd",
      "mode": "payment",
      "payment_status": "paid",
      "amount_subtotal": 12000,
      "amount_total": 12000 + shipping,
      "customer_details": {
          "email": "ann@example.com",
          "name": "Ann Buyer",
          "phone": "5555550100",
      },
      "shipping_details": {
          "name": "Ann Buyer",
          "address": {
              "line1": "1 Main St",
              "city": "Wheeling",
              "state": "WV",
              "postal_code": "26003",
              "country": "US",
          },
      },
      "shipping_cost": {
          "amount_total": shipping,
          "shipping_rate": {
              "display_name": "Free Shipping" if not shipping else "Standard"
          },
      },
      "total_details": {"amount_tax": 0},
      "metadata": {"items": "10x Apple Pie • 12 oz"},
  }


class StubStripe(PaymentGateway):
  """Verifies webhooks for real; session calls return canned data."""

  def __init__(self):
    super().__init__("sk_test_integration", WEBHOOK_SECRET)
    self.created: List[Dict[str, Any]] = []

  async def create_checkout_session(self, params):
    self.created.append(params)
    return {"id": "cs_test_new", "url": "https://checkout.stripe.com/c/pay/new"}

  async def retrieve_session(self, session_id):
    return _completed_session(session_id)

  async def list_line_items(self, session_id):
    del session_id  # Unused.
    return [{
        "description": "Apple Pie • 12 oz",
        "quantity": 10,
        "amount_subtotal": 12000,
        "price": {
            "unit_amount": 1200,
            "product": {"metadata": {"scent": "Apple Pie", "size": "12 oz"}},
        },
    }]


class IntegrationTest(absltest.TestCase):
  """Integration tests for the checkout server application."""

  def setUp(self) -> None:
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    events_db = os.path.join(self.test_dir, "test_events.db")

    self.events_engine = create_async_engine(
        f"sqlite+aiosqlite:///{events_db}", echo=False
    )
    self.events_session_factory = sessionmaker(
        self.events_engine, expire_on_commit=False, class_=AsyncSession
    )

    async def init_schema() -> None:
      async with self.events_engine.begin() as conn:
        await conn.run_sync(db.EventBase.metadata.create_all)
      await self.events_engine.dispose()

    asyncio.run(init_schema())

    self.settings = config.Settings(
        stripe_secret_key="sk_test_integration",
        stripe_webhook_secret=WEBHOOK_SECRET,
        easypost_api_key="EZTK_integration",
        resend_api_key="re_integration",
        order_notify_to_email="owner@example.com",
        order_notify_from_email="orders@example.com",
    )
    self.stripe = StubStripe()
    self.buy_fails = False
    self.easypost_requests: List[httpx.Request] = []
    self.emails: List[Dict[str, Any]] = []

    async def override_get_events_db() -> AsyncGenerator[AsyncSession, None]:
      async with self.events_session_factory() as session:
        yield session

    app.dependency_overrides[dependencies.get_settings] = lambda: self.settings
    app.dependency_overrides[dependencies.get_payment_gateway] = (
        lambda: self.stripe
    )
    app.dependency_overrides[dependencies.get_shipping_client] = (
        lambda: EasyPostClient(
            "EZTK_integration",
            transport=httpx.MockTransport(self._easypost),
        )
    )
    app.dependency_overrides[dependencies.get_email_client] = (
        lambda: ResendClient(
            "re_integration", transport=httpx.MockTransport(self._resend)
        )
    )
    app.dependency_overrides[dependencies.get_events_db] = (
        override_get_events_db
    )

    self.client = TestClient(app)

  def tearDown(self) -> None:
    app.dependency_overrides.clear()

    async def dispose_engine() -> None:
      await self.events_engine.dispose()

    asyncio.run(dispose_engine())

    shutil.rmtree(self.test_dir)
    super().tearDown()

  # --- Provider fakes ---

  def _easypost(self, request: httpx.Request) -> httpx.Response:
    self.easypost_requests.append(request)
    path = request.url.path
    if path == "/v2/shipments":
      return httpx.Response(
          200,
          json={
              "id": "shp_1",
              "rates": [
                  {"id": "rate_ups", "carrier": "UPS", "service": "Express",
                   "rate": "30.00"},
                  {"id": "rate_usps", "carrier": "USPS",
                   "service": "GroundAdvantage", "rate": "8.00"},
              ],
          },
      )
    if path == "/v2/shipments/shp_1/buy":
      if self.buy_fails:
        return httpx.Response(
            422,
            json={"error": {"code": "SHIPMENT.POSTAGE.FAILURE",
                            "message": "Insufficient funds"}},
        )
      return httpx.Response(200, json={"id": "shp_1"})
    if path == "/v2/shipments/shp_1":
      return httpx.Response(
          200,
          json={
              "id": "shp_1",
              "tracking_code": "9400100000000000000000",
              "postage_label": {"label_url": "https://labels/shp_1.png"},
              "tracker": {"public_url": "https://track/shp_1"},
          },
      )
    if path == "/v2/trackers":
      return httpx.Response(
          200, json={"status": "delivered", "public_url": "https://track/x"}
      )
    return httpx.Response(404)

  def _resend(self, request: httpx.Request) -> httpx.Response:
    self.emails.append(json.loads(request.content))
    return httpx.Response(200, json={"id": f"email_{len(self.emails)}"})

  def _post_webhook(self, payload: Dict[str, Any], secret=WEBHOOK_SECRET):
    body = json.dumps(payload).encode("utf-8")
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.".encode("utf-8") + body,
        hashlib.sha256,
    ).hexdigest()
    return self.client.post(
        "/api/stripe-webhook",
        content=body,
        headers={
            "Stripe-Signature": f"t={timestamp},v1={digest}",
            "Content-Type": "application/json",
        },
    )

  def _completed_event(self, session_id: str = "cs_test_paid"):
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": _completed_session(session_id)},
    }

  # --- Checkout ---

  def test_create_checkout_session(self):
    response = self.client.post(
        "/api/create-checkout-session",
        json={
            "cart": [
                {"name": "Apple Pie", "size": "12 oz", "qty": 2, "price": 1}
            ],
            "customerEmail": "ann@example.com",
        },
    )

    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(
        response.json(), {"url": "https://checkout.stripe.com/c/pay/new"}
    )
    params = self.stripe.created[0]
    line = params["line_items"][0]
    self.assertEqual(line["price_data"]["unit_amount"], 1200)
    self.assertEqual(line["quantity"], 2)
    self.assertEqual(params["customer_email"], "ann@example.com")

  def test_empty_cart(self):
    response = self.client.post(
        "/api/create-checkout-session", json={"cart": []}
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(
        response.json(), {"error": "Cart is empty", "code": "EMPTY_CART"}
    )

  def test_quantity_exceeded(self):
    response = self.client.post(
        "/api/create-checkout-session",
        json={"cart": [{"name": "Lilac", "size": "6 oz", "qty": 11}]},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "QUANTITY_EXCEEDED")
    self.assertEmpty(self.stripe.created)

  def test_unpriced_item(self):
    response = self.client.post(
        "/api/create-checkout-session",
        json={"cart": [{"name": "Christmas Tree", "size": "6 oz"}]},
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "PRICE_NOT_FOUND")
    self.assertIn("12 oz, 17 oz", response.json()["error"])

  def test_malformed_body(self):
    response = self.client.post(
        "/api/create-checkout-session", json={"cart": "not a list"}
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "INVALID_REQUEST")

  def test_wrong_method(self):
    response = self.client.get("/api/create-checkout-session")
    self.assertEqual(response.status_code, 405)
    self.assertEqual(
        response.json(),
        {"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"},
    )

  def test_upstream_failure_hides_detail(self):
    async def fail(params):
      del params  # Unused.
      raise UpstreamProcessorError("Stripe session creation failed")

    self.stripe.create_checkout_session = fail
    response = self.client.post(
        "/api/create-checkout-session",
        json={"cart": [{"name": "Lilac", "size": "6 oz"}]},
    )
    self.assertEqual(response.status_code, 500)
    self.assertEqual(response.json()["code"], "UPSTREAM_PROCESSOR_ERROR")
    self.assertNotIn("Stripe", response.json()["error"])

  def test_get_checkout_session(self):
    response = self.client.get(
        "/api/get-checkout-session", params={"session_id": "cs_test_paid"}
    )
    self.assertEqual(response.status_code, 200, response.text)
    body = response.json()
    self.assertEqual(body["id"], "cs_test_paid")
    self.assertEqual(body["totals"]["total"], 12000)
    self.assertEqual(body["items"][0]["quantity"], 10)

  def test_get_checkout_session_requires_id(self):
    response = self.client.get("/api/get-checkout-session")
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "INVALID_REQUEST")

  # --- Webhook ---

  def test_webhook_ships_and_notifies(self):
    response = self._post_webhook(self._completed_event())

    self.assertEqual(response.status_code, 200, response.text)
    self.assertEqual(response.json(), {"received": True})

    buys = [
        r for r in self.easypost_requests
        if r.url.path == "/v2/shipments/shp_1/buy"
    ]
    self.assertLen(buys, 1)
    self.assertEqual(json.loads(buys[0].content)["rate"]["id"], "rate_usps")

    self.assertLen(self.emails, 2)
    merchant, customer = self.emails
    self.assertEqual(merchant["to"], ["owner@example.com"])
    self.assertIn("9400100000000000000000", merchant["html"])
    # Free shipping order shows a zero shipping line.
    self.assertIn("$0.00", merchant["html"])
    self.assertEqual(customer["to"], ["ann@example.com"])
    self.assertIn("Tracking number", customer["html"])

  def test_webhook_label_failure_still_acknowledged(self):
    self.buy_fails = True
    response = self._post_webhook(self._completed_event())

    self.assertEqual(response.status_code, 200)
    self.assertEqual(response.json(), {"received": True})
    self.assertLen(self.emails, 2)
    merchant, customer = self.emails
    self.assertIn("Label creation failed", merchant["html"])
    self.assertIn("Insufficient funds", merchant["html"])
    self.assertNotIn("Insufficient funds", customer["html"])

  def test_webhook_redelivery_is_ignored(self):
    first = self._post_webhook(self._completed_event("cs_test_dup"))
    second = self._post_webhook(self._completed_event("cs_test_dup"))

    self.assertEqual(first.json(), {"received": True})
    self.assertEqual(second.json(), {"received": True, "duplicate": True})
    self.assertLen(self.emails, 2)

  def test_webhook_bad_signature(self):
    response = self._post_webhook(
        self._completed_event(), secret="whsec_wrong"
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(response.json()["code"], "SIGNATURE_INVALID")
    self.assertEmpty(self.emails)

  def test_webhook_missing_signature(self):
    response = self.client.post(
        "/api/stripe-webhook", content=b"{}", headers={}
    )
    self.assertEqual(response.status_code, 400)
    self.assertEqual(
        response.json(),
        {"error": "Missing Stripe signature", "code": "SIGNATURE_INVALID"},
    )

  def test_webhook_other_event(self):
    response = self._post_webhook(
        {"id": "evt_2", "type": "charge.refunded", "data": {"object": {}}}
    )
    self.assertEqual(response.status_code, 200)
    self.assertEqual(response.json(), {"received": True})
    self.assertEmpty(self.easypost_requests)

  def test_webhook_wrong_method(self):
    response = self.client.get("/api/stripe-webhook")
    self.assertEqual(response.status_code, 405)
    self.assertEqual(response.json()["code"], "METHOD_NOT_ALLOWED")

  # --- Tracking, health and CORS ---

  def test_tracking(self):
    response = self.client.get("/api/tracking/9400100000000000000000")
    self.assertEqual(response.status_code, 200)
    self.assertEqual(response.json()["status"], "delivered")

  def test_health(self):
    response = self.client.get("/healthz")
    self.assertEqual(response.status_code, 200)
    self.assertEqual(response.json()["status"], "ok")

  def test_cors_preflight_for_store_origin(self):
    response = self.client.options(
        "/api/create-checkout-session",
        headers={
            "Origin": STORE_ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    self.assertEqual(response.status_code, 200)
    self.assertEqual(
        response.headers["access-control-allow-origin"], STORE_ORIGIN
    )

  def test_cors_unknown_origin_gets_no_header(self):
    response = self.client.post(
        "/api/create-checkout-session",
        json={"cart": []},
        headers={"Origin": "https://evil.example"},
    )
    self.assertNotIn("access-control-allow-origin", response.headers)


if __name__ == "__main__":
  absltest.main()
