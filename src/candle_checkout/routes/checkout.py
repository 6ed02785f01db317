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

"""Checkout routes called by the storefront."""

from typing import Any, Optional

from candle_checkout import dependencies
from candle_checkout.models import CreateCheckoutSessionRequest
from candle_checkout.services.checkout_service import CheckoutService
from candle_checkout.services.fulfillment_service import FulfillmentService
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from fastapi import Query

router = APIRouter(prefix="/api")


@router.post(
    "/create-checkout-session",
    response_model=dict[str, Any],
    operation_id="create_checkout_session",
)
async def create_checkout_session(
    request: CreateCheckoutSessionRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Creates a hosted checkout session and returns its URL."""
  url = await checkout_service.create_session(request)
  return {"url": url}


@router.get(
    "/get-checkout-session",
    response_model=dict[str, Any],
    operation_id="get_checkout_session",
)
async def get_checkout_session(
    session_id: Optional[str] = Query(None),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> dict[str, Any]:
  """Returns the totals, customer, shipping and items of a session."""
  return await checkout_service.get_session_summary(session_id)


@router.get(
    "/tracking/{tracking_code}",
    response_model=dict[str, Any],
    operation_id="get_tracking",
)
async def get_tracking(
    tracking_code: str = Path(...),
    fulfillment_service: FulfillmentService = Depends(
        dependencies.get_fulfillment_service
    ),
) -> dict[str, Any]:
  """Returns the current tracking status of a shipment."""
  return await fulfillment_service.get_tracking(tracking_code)
