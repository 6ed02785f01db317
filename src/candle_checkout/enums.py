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

"""Enumerations for the candle checkout service.

This module defines the small closed sets used across the service: the
deployment profile that selects test or live credentials, the shipping fee
policy applied at checkout, and the outcome of an email send.
"""

import enum


class Profile(str, enum.Enum):
  TEST = "test"
  LIVE = "live"


class ShippingPolicy(str, enum.Enum):
  FLAT = "flat"
  TIERED = "tiered"


class EmailStatus(str, enum.Enum):
  SENT = "sent"
  SKIPPED = "skipped"
  FAILED = "failed"


# Stripe event type that triggers fulfillment.
CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
