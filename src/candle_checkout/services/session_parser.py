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

"""Helpers reading Stripe checkout sessions and line items into models.

Stripe payloads are nested dicts in which almost every field may be null or,
for expandable fields, a bare id string. These helpers centralize the
defaulting rules so the webhook and the session lookup agree on them.
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from candle_checkout.models import Address
from candle_checkout.models import Customer
from candle_checkout.models import OrderLine
from candle_checkout.models import OrderSummary
from candle_checkout.models import OrderTotals

logger = logging.getLogger(__name__)

FALLBACK_SIZE = "12 oz"
NAME_SEPARATOR = "•"

_SIZE_IN_NAME_RE = re.compile(r"(\d+(?:\.\d+)?)\s*oz", re.IGNORECASE)


def _obj(value: Any) -> Mapping[str, Any]:
  """Returns value if it is an expanded object, else an empty mapping."""
  return value if isinstance(value, Mapping) else {}


def _int(value: Any, default: int = 0) -> int:
  if value is None:
    return default
  try:
    return int(value)
  except (TypeError, ValueError):
    return default


def parse_customer(session: Mapping[str, Any]) -> Customer:
  details = _obj(session.get("customer_details"))
  return Customer(
      name=details.get("name") or "",
      email=details.get("email") or session.get("customer_email") or "",
      phone=details.get("phone") or "",
  )


def shipping_details(session: Mapping[str, Any]) -> Mapping[str, Any]:
  """Returns the collected shipping details across Stripe API versions."""
  details = _obj(session.get("shipping_details"))
  if not details:
    details = _obj(
        _obj(session.get("collected_information")).get("shipping_details")
    )
  return details


def parse_shipping_address(
    session: Mapping[str, Any], fallback_name: str = "", phone: str = ""
) -> Optional[Address]:
  details = shipping_details(session)
  address = _obj(details.get("address"))
  if not address:
    return None
  return Address(
      name=details.get("name") or fallback_name,
      line1=address.get("line1") or "",
      line2=address.get("line2") or "",
      city=address.get("city") or "",
      state=address.get("state") or "",
      postal_code=address.get("postal_code") or "",
      country=address.get("country") or "US",
      phone=phone,
  )


def parse_shipping_method(session: Mapping[str, Any]) -> Optional[str]:
  shipping_cost = _obj(session.get("shipping_cost"))
  return _obj(shipping_cost.get("shipping_rate")).get("display_name")


def parse_totals(session: Mapping[str, Any]) -> OrderTotals:
  return OrderTotals(
      subtotal=_int(session.get("amount_subtotal")),
      shipping=_int(_obj(session.get("shipping_cost")).get("amount_total")),
      tax=_int(_obj(session.get("total_details")).get("amount_tax")),
      total=_int(session.get("amount_total")),
  )


def reconstruct_scent_size(
    name: str, product_metadata: Optional[Mapping[str, Any]] = None
) -> Tuple[str, str]:
  """Recovers (scent, size) for a paid line item.

  Structured product metadata written at checkout is preferred. Older
  sessions only have the display name ("Apple Pie • 12 oz"), so the size is
  the first "<number> oz" in it and the scent is the text before the
  separator.
  """
  metadata = product_metadata or {}
  scent = metadata.get("scent")
  size = metadata.get("size")
  if scent and size:
    return scent, size

  match = _SIZE_IN_NAME_RE.search(name)
  parsed_size = f"{match.group(1)} oz" if match else FALLBACK_SIZE
  parsed_scent = name.split(NAME_SEPARATOR)[0].strip() or name
  return scent or parsed_scent, size or parsed_size


def parse_order_line(line_item: Mapping[str, Any]) -> OrderLine:
  qty = _int(line_item.get("quantity"), 1)
  name = line_item.get("description") or "Item"
  price = _obj(line_item.get("price"))
  product = _obj(price.get("product"))

  unit = price.get("unit_amount")
  if unit is None:
    unit = round(_int(line_item.get("amount_subtotal")) / max(1, qty))
  line_total = line_item.get("amount_subtotal")
  if line_total is None:
    line_total = unit * qty

  scent, size = reconstruct_scent_size(name, _obj(product.get("metadata")))
  return OrderLine(
      name=name,
      qty=qty,
      unit_amount=int(unit),
      line_amount=int(line_total),
      scent=scent,
      size=size,
  )


def parse_cart_metadata(session: Mapping[str, Any]) -> List[Tuple[str, str, int]]:
  """Reads the compact [scent, size, qty] triples written at checkout."""
  raw = _obj(session.get("metadata")).get("cart")
  if not raw:
    return []
  try:
    triples = json.loads(raw)
    return [(str(s), str(z), int(q)) for s, z, q in triples]
  except (TypeError, ValueError) as e:
    logger.warning("Ignoring unreadable cart metadata: %s", e)
    return []


def build_order_summary(
    session: Mapping[str, Any],
    line_items: Optional[List[Mapping[str, Any]]],
) -> OrderSummary:
  """Projects a session and its line items into an OrderSummary.

  Args:
    session: The (expanded) checkout session.
    line_items: The session's line items, or None if they could not be
      fetched. In that case the session metadata provides the item text.
  """
  customer = parse_customer(session)
  details = shipping_details(session)
  shipping_name = details.get("name") or customer.name

  if line_items is not None:
    lines = [parse_order_line(li) for li in line_items]
    items_text = ", ".join(f"{l.qty}x {l.name}" for l in lines)
  else:
    lines = []
    items_text = _obj(session.get("metadata")).get("items") or "(no line items)"

  return OrderSummary(
      id=session.get("id") or "",
      currency=session.get("currency") or "usd",
      payment_status=session.get("payment_status") or "",
      mode=session.get("mode") or "",
      customer=customer,
      shipping_name=shipping_name,
      shipping_address=parse_shipping_address(
          session, shipping_name, customer.phone
      ),
      shipping_method=parse_shipping_method(session) or "Shipping",
      totals=parse_totals(session),
      lines=lines,
      items_text=items_text,
  )


def session_projection(
    session: Mapping[str, Any], line_items: List[Mapping[str, Any]]
) -> Dict[str, Any]:
  """JSON view of a session for the storefront's thank-you page."""
  customer = parse_customer(session)
  details = shipping_details(session)
  return {
      "id": session.get("id"),
      "currency": session.get("currency"),
      "payment_status": session.get("payment_status"),
      "customer": {
          "email": customer.email or None,
          "name": customer.name or None,
          "phone": customer.phone or None,
      },
      "shipping": dict(details) if details else None,
      "shipping_method": parse_shipping_method(session),
      "totals": parse_totals(session).model_dump(),
      "items": [
          {
              "description": li.get("description") or "Item",
              "quantity": _int(li.get("quantity"), 1),
              "unit_amount": _obj(li.get("price")).get("unit_amount"),
              "amount_subtotal": _int(li.get("amount_subtotal")),
          }
          for li in line_items
      ],
  }
