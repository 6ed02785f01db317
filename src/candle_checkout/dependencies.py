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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Settings resolution (one Settings object per process).
- Client instantiation (Stripe, EasyPost, Resend).
- Service instantiation (Catalog, Checkout, Fulfillment, Notification,
  Webhook).
- Database session management for the processed-events store.
"""

from typing import AsyncGenerator, Optional

from candle_checkout import config
from candle_checkout import db
from candle_checkout.clients.mailer import ResendClient
from candle_checkout.clients.payments import PaymentGateway
from candle_checkout.clients.shipping import EasyPostClient
from candle_checkout.services.catalog_service import CatalogService
from candle_checkout.services.checkout_service import CheckoutService
from candle_checkout.services.fulfillment_service import FulfillmentService
from candle_checkout.services.notification_service import NotificationService
from candle_checkout.services.webhook_service import WebhookService
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession


def get_settings() -> config.Settings:
  """Dependency provider for the resolved Settings."""
  return config.get_settings()


def get_catalog_service(
    settings: config.Settings = Depends(get_settings),
) -> CatalogService:
  return CatalogService(strict_scents=settings.strict_scents)


def get_payment_gateway(
    settings: config.Settings = Depends(get_settings),
) -> PaymentGateway:
  """Dependency provider for the Stripe gateway."""
  return PaymentGateway(
      settings.stripe_secret_key,
      settings.stripe_webhook_secret,
      timeout=settings.request_timeout_seconds,
  )


def get_shipping_client(
    settings: config.Settings = Depends(get_settings),
) -> EasyPostClient:
  return EasyPostClient(
      settings.easypost_api_key, timeout=settings.request_timeout_seconds
  )


def get_email_client(
    settings: config.Settings = Depends(get_settings),
) -> ResendClient:
  return ResendClient(
      settings.resend_api_key, timeout=settings.request_timeout_seconds
  )


def get_fulfillment_service(
    settings: config.Settings = Depends(get_settings),
    shipping_client: EasyPostClient = Depends(get_shipping_client),
) -> FulfillmentService:
  """Dependency provider for FulfillmentService."""
  return FulfillmentService(
      shipping_client, verify_address=settings.verify_shipping_address
  )


def get_notification_service(
    settings: config.Settings = Depends(get_settings),
    email_client: ResendClient = Depends(get_email_client),
) -> NotificationService:
  """Dependency provider for NotificationService."""
  return NotificationService(settings, email_client)


def get_checkout_service(
    settings: config.Settings = Depends(get_settings),
    catalog_service: CatalogService = Depends(get_catalog_service),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(settings, catalog_service, payment_gateway)


async def get_events_db() -> AsyncGenerator[Optional[AsyncSession], None]:
  """Dependency provider for the events DB session.

  Yields None when no events DB is configured.
  """
  if not db.manager.initialized:
    yield None
    return
  async with db.manager.session_factory() as session:
    yield session


def get_webhook_service(
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
    fulfillment_service: FulfillmentService = Depends(get_fulfillment_service),
    notification_service: NotificationService = Depends(
        get_notification_service
    ),
    events_session: Optional[AsyncSession] = Depends(get_events_db),
) -> WebhookService:
  """Dependency provider for WebhookService."""
  return WebhookService(
      payment_gateway, fulfillment_service, notification_service, events_session
  )
