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

"""Payment webhook route."""

import logging
from typing import Any, Optional

from candle_checkout import dependencies
from candle_checkout.exceptions import SignatureInvalidError
from candle_checkout.services.webhook_service import WebhookService
from fastapi import APIRouter
from fastapi import Depends
from fastapi import Header
from fastapi import Request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.post(
    "/stripe-webhook",
    response_model=dict[str, Any],
    operation_id="stripe_webhook",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    webhook_service: WebhookService = Depends(
        dependencies.get_webhook_service
    ),
) -> dict[str, Any]:
  """Receives Stripe events.

  The raw body is read as-is because the signature covers the exact bytes.
  """
  payload = await request.body()
  try:
    return await webhook_service.handle(payload, stripe_signature)
  except SignatureInvalidError as e:
    logger.error("Webhook signature verification failed: %s", e.message)
    raise
