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

"""Catalog service for normalizing and pricing cart items.

This module turns untrusted storefront cart lines into priced line items. The
storefront only sends free text for the scent and size, so both are normalized
into the canonical catalog key (`"<scent>|<size>"`) before the price is looked
up in the static price table. Client supplied prices are never consulted.
"""

import logging
import re
from typing import Any, Iterable, List

from candle_checkout.exceptions import InvalidCartItemError
from candle_checkout.exceptions import PriceNotFoundError
from candle_checkout.exceptions import QuantityExceededError
from candle_checkout.models import CartLine
from candle_checkout.models import NormalizedItem

logger = logging.getLogger(__name__)

MAX_QUANTITY_PER_LINE = 10

# Prices in cents, keyed by "<canonical scent>|<N oz>".
PRICE_TABLE = {
    "Apple Pie|6 oz": 800,
    "Apple Pie|12 oz": 1200,
    "Apple Pie|17 oz": 1800,
    "Black Raspberry|6 oz": 800,
    "Black Raspberry|12 oz": 1200,
    "Black Raspberry|17 oz": 1800,
    "Christmas Tree|12 oz": 1200,
    "Christmas Tree|17 oz": 1800,
    "Cinnamon Bun|6 oz": 800,
    "Cinnamon Bun|12 oz": 1200,
    "Cinnamon Bun|17 oz": 1800,
    "Fresh Linen|6 oz": 800,
    "Fresh Linen|12 oz": 1200,
    "Lavender|6 oz": 800,
    "Lavender|12 oz": 1200,
    "Lemon Pound Cake|12 oz": 1200,
    "Lilac|6 oz": 800,
    "Lilac|12 oz": 1200,
    "Lilac|17 oz": 1800,
    "Mahogany Teakwood|12 oz": 1300,
    "Mahogany Teakwood|17 oz": 1900,
    "Pumpkin Spice|6 oz": 800,
    "Pumpkin Spice|12 oz": 1200,
    "Pumpkin Spice|17 oz": 1800,
    "Sea Salt & Orchid|6 oz": 800,
    "Sea Salt & Orchid|12 oz": 1200,
    "Vanilla Bean|6 oz": 800,
    "Vanilla Bean|12 oz": 1200,
    "Vanilla Bean|17 oz": 1800,
    "Apple Pie Wax Melt|3 oz": 500,
    "Black Raspberry Wax Melt|3 oz": 500,
    "Lilac Wax Melt|3 oz": 500,
    "Pumpkin Spice Wax Melt|3 oz": 500,
}

KNOWN_SCENTS = frozenset(key.split("|", 1)[0] for key in PRICE_TABLE)

# Storefront spellings that differ from the canonical scent name. Keys are in
# the form produced by _alias_key().
_EXTRA_ALIASES = {
    "black raspberry vanilla": "Black Raspberry",
    "black raspberry vanilla bean": "Black Raspberry",
    "hot apple pie": "Apple Pie",
    "apple pie candle": "Apple Pie",
    "xmas tree": "Christmas Tree",
    "christmas tree farm": "Christmas Tree",
    "cinnamon roll": "Cinnamon Bun",
    "cinnamon buns": "Cinnamon Bun",
    "clean linen": "Fresh Linen",
    "fresh linens": "Fresh Linen",
    "french lavender": "Lavender",
    "lemon pound": "Lemon Pound Cake",
    "mahogany teak": "Mahogany Teakwood",
    "pumpkin pie spice": "Pumpkin Spice",
    "sea salt and orchid": "Sea Salt & Orchid",
    "vanilla": "Vanilla Bean",
    "apple pie wax melts": "Apple Pie Wax Melt",
    "black raspberry wax melts": "Black Raspberry Wax Melt",
    "lilac wax melts": "Lilac Wax Melt",
    "pumpkin spice wax melts": "Pumpkin Spice Wax Melt",
}

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]+")
_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _alias_key(text: str) -> str:
  lowered = _NON_WORD_RE.sub(" ", text.lower())
  return _WHITESPACE_RE.sub(" ", lowered).strip()


SCENT_ALIASES = {_alias_key(scent): scent for scent in KNOWN_SCENTS}
SCENT_ALIASES.update(_EXTRA_ALIASES)


def normalize_scent(text: str) -> str:
  """Maps free scent text to its canonical name.

  Text that matches no alias is returned trimmed in its original case, so a
  new scent typed by the store owner still reaches the price lookup.

  Args:
    text: The scent or product name as typed in the storefront.

  Returns:
    The canonical scent name, or the cleaned-up input.
  """
  cleaned = _WHITESPACE_RE.sub(" ", str(text or "")).strip()
  return SCENT_ALIASES.get(_alias_key(cleaned), cleaned)


def normalize_size(text: Any) -> str:
  """Extracts the first number from a size string and formats it as "N oz"."""
  match = _NUMBER_RE.search(str(text if text is not None else ""))
  if not match:
    raise InvalidCartItemError(f"Invalid size: {text!r}")
  number = match.group(0)
  if "." in number:
    number = number.rstrip("0").rstrip(".")
  else:
    number = str(int(number))
  return f"{number} oz"


def normalize_quantity(value: Any) -> int:
  """Coerces a quantity to an integer between 1 and MAX_QUANTITY_PER_LINE.

  Missing quantities count as one and values below one are raised to one.

  Raises:
    InvalidCartItemError: If the value is not numeric.
    QuantityExceededError: If the value is above the per-line maximum.
  """
  if value is None or (isinstance(value, str) and not value.strip()):
    return 1
  try:
    qty = int(float(value))
  except (TypeError, ValueError, OverflowError) as e:
    raise InvalidCartItemError(f"Invalid quantity: {value!r}") from e
  if qty > MAX_QUANTITY_PER_LINE:
    raise QuantityExceededError(
        f"Quantity {qty} exceeds the maximum of {MAX_QUANTITY_PER_LINE} per"
        " item"
    )
  return max(1, qty)


def lookup_price(scent: str, size: str) -> int:
  """Returns the price in cents for a canonical scent and size.

  Raises:
    PriceNotFoundError: If the catalog key is not in the price table. The
      message lists the sizes that do exist for the scent.
  """
  key = f"{scent}|{size}"
  price = PRICE_TABLE.get(key)
  if price is not None:
    return price

  siblings = sorted(
      (k.split("|", 1)[1] for k in PRICE_TABLE if k.startswith(f"{scent}|")),
      key=lambda s: float(s.split()[0]),
  )
  message = f"No price found for {scent} ({size})"
  if siblings:
    message += f"; available sizes: {', '.join(siblings)}"
  raise PriceNotFoundError(message)


class CatalogService:
  """Service resolving storefront cart lines into priced items."""

  def __init__(self, strict_scents: bool = False):
    self.strict_scents = strict_scents

  def resolve_item(self, line: CartLine) -> NormalizedItem:
    """Normalizes and prices one cart line."""
    raw_scent = line.name if line.name and line.name.strip() else line.scent
    if not raw_scent or not raw_scent.strip():
      raise InvalidCartItemError("Each cart item needs a scent or name")

    scent = normalize_scent(raw_scent)
    if self.strict_scents and scent not in KNOWN_SCENTS:
      raise InvalidCartItemError(f"Unknown scent: {scent}")

    size = normalize_size(line.size)
    qty = normalize_quantity(line.qty)
    price = lookup_price(scent, size)

    return NormalizedItem(
        scent=scent,
        size=size,
        qty=qty,
        unit_price_cents=price,
        catalog_key=f"{scent}|{size}",
    )

  def resolve_cart(self, lines: Iterable[CartLine]) -> List[NormalizedItem]:
    """Resolves every cart line; any invalid line fails the whole cart."""
    items = [self.resolve_item(line) for line in lines]
    logger.info(
        "Resolved %d cart items: %s",
        len(items),
        ", ".join(f"{i.qty}x {i.catalog_key}" for i in items),
    )
    return items
