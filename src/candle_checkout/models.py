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

"""Pydantic models shared by the checkout, webhook and fulfillment layers.

Request models are deliberately loose (cart fields arrive as whatever the
storefront sends); everything downstream of the catalog resolver uses the
strict, server-derived models.
"""

from decimal import Decimal
from typing import Optional, Union

from candle_checkout.enums import EmailStatus
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class CartLine(BaseModel):
  """One untrusted cart entry as posted by the storefront."""

  model_config = ConfigDict(extra="ignore")

  name: Optional[str] = None
  scent: Optional[str] = None
  size: Union[str, int, float, None] = None
  qty: Union[int, float, str, None] = None
  # Accepted for compatibility with the storefront payload; never used.
  price: Union[str, int, float, None] = None


class CreateCheckoutSessionRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  cart: Optional[list[CartLine]] = None
  customer_email: Optional[str] = Field(None, alias="customerEmail")


class NormalizedItem(BaseModel):
  """A cart line after scent/size normalization and server-side pricing."""

  model_config = ConfigDict(frozen=True)

  scent: str
  size: str
  qty: int
  unit_price_cents: int
  catalog_key: str

  @property
  def display_name(self) -> str:
    return f"{self.scent} • {self.size}"

  @property
  def line_total_cents(self) -> int:
    return self.unit_price_cents * self.qty


class ShippingDecision(BaseModel):
  """The single shipping fee attached to a checkout session."""

  tier: str
  display_name: str
  amount_cents: int


class Address(BaseModel):
  name: str = ""
  line1: str = ""
  line2: str = ""
  city: str = ""
  state: str = ""
  postal_code: str = ""
  country: str = "US"
  phone: str = ""

  def format_lines(self) -> str:
    """Renders the address as newline separated text for emails."""
    locality = f"{self.city}{',' if self.city else ''} {self.state} {self.postal_code}"
    parts = [self.line1, self.line2, locality.strip(), self.country]
    return "\n".join(part for part in parts if part)


class Customer(BaseModel):
  name: str = ""
  email: str = ""
  phone: str = ""


class OrderTotals(BaseModel):
  """Amounts in minor currency units, as reported by the payment processor."""

  subtotal: int = 0
  shipping: int = 0
  tax: int = 0
  total: int = 0


class OrderLine(BaseModel):
  """One paid line item reconstructed from the processor's line items."""

  name: str
  qty: int
  unit_amount: int
  line_amount: int
  scent: str
  size: str


class OrderSummary(BaseModel):
  """Authoritative view of a completed checkout session."""

  id: str
  currency: str = "usd"
  payment_status: str = ""
  mode: str = ""
  customer: Customer = Field(default_factory=Customer)
  shipping_name: str = ""
  shipping_address: Optional[Address] = None
  shipping_method: str = "Shipping"
  totals: OrderTotals = Field(default_factory=OrderTotals)
  lines: list[OrderLine] = Field(default_factory=list)
  # Fallback text when line items could not be fetched.
  items_text: str = ""


class ShipmentItem(BaseModel):
  scent: str
  size: str
  qty: int


class Rate(BaseModel):
  """One carrier quote returned for a shipment."""

  model_config = ConfigDict(frozen=True)

  id: str = ""
  carrier: str
  service: str
  price: Decimal
  currency: str = "USD"


class PurchasedLabel(BaseModel):
  shipment_id: str
  tracking_code: Optional[str] = None
  tracking_url: Optional[str] = None
  label_url: Optional[str] = None
  rate: Rate


class ShipmentOutcome(BaseModel):
  """Result of the shipment step; exactly one of label or error is set."""

  label: Optional[PurchasedLabel] = None
  error: Optional[str] = None

  @property
  def succeeded(self) -> bool:
    return self.label is not None


class EmailResult(BaseModel):
  status: EmailStatus
  id: Optional[str] = None
  reason: Optional[str] = None
