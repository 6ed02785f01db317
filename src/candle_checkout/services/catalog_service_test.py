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

"""Tests for cart normalization and pricing."""

from absl.testing import absltest
from absl.testing import parameterized
from candle_checkout.exceptions import InvalidCartItemError
from candle_checkout.exceptions import PriceNotFoundError
from candle_checkout.exceptions import QuantityExceededError
from candle_checkout.models import CartLine
from candle_checkout.services import catalog_service
from candle_checkout.services.catalog_service import CatalogService


class NormalizeTest(parameterized.TestCase):

  @parameterized.parameters(
      ("Apple Pie", "Apple Pie"),
      ("  apple   pie ", "Apple Pie"),
      ("APPLE-PIE", "Apple Pie"),
      ("Sea Salt and Orchid", "Sea Salt & Orchid"),
      ("sea salt & orchid", "Sea Salt & Orchid"),
      ("Black Raspberry Vanilla Bean", "Black Raspberry"),
      ("Xmas Tree", "Christmas Tree"),
      ("Lilac Wax Melts", "Lilac Wax Melt"),
  )
  def test_normalize_scent(self, raw, expected):
    self.assertEqual(catalog_service.normalize_scent(raw), expected)

  def test_unknown_scent_passes_through_cleaned(self):
    self.assertEqual(
        catalog_service.normalize_scent("  Winter   Birch "), "Winter Birch"
    )

  @parameterized.parameters(
      "Apple Pie", "sea salt and orchid", "Winter Birch", "Lilac Wax Melt"
  )
  def test_normalize_scent_is_idempotent(self, raw):
    once = catalog_service.normalize_scent(raw)
    self.assertEqual(catalog_service.normalize_scent(once), once)

  @parameterized.parameters(
      ("12 oz", "12 oz"),
      ("12oz", "12 oz"),
      ("Large 17 oz jar", "17 oz"),
      (12, "12 oz"),
      ("012", "12 oz"),
      ("6.0 oz", "6 oz"),
      ("3.5oz", "3.5 oz"),
  )
  def test_normalize_size(self, raw, expected):
    self.assertEqual(catalog_service.normalize_size(raw), expected)

  @parameterized.parameters(None, "", "large")
  def test_normalize_size_without_number(self, raw):
    with self.assertRaises(InvalidCartItemError):
      catalog_service.normalize_size(raw)

  @parameterized.parameters(
      (None, 1), ("", 1), (0, 1), (-3, 1), ("2", 2), (2.7, 2), (10, 10)
  )
  def test_normalize_quantity(self, raw, expected):
    self.assertEqual(catalog_service.normalize_quantity(raw), expected)

  def test_quantity_above_limit(self):
    with self.assertRaises(QuantityExceededError) as cm:
      catalog_service.normalize_quantity(11)
    self.assertEqual(cm.exception.code, "QUANTITY_EXCEEDED")
    self.assertEqual(cm.exception.status_code, 400)

  @parameterized.parameters("many", "nan", "inf")
  def test_non_numeric_quantity(self, raw):
    with self.assertRaises(InvalidCartItemError):
      catalog_service.normalize_quantity(raw)


class LookupPriceTest(absltest.TestCase):

  def test_known_key(self):
    self.assertEqual(catalog_service.lookup_price("Apple Pie", "12 oz"), 1200)

  def test_missing_size_lists_siblings(self):
    with self.assertRaises(PriceNotFoundError) as cm:
      catalog_service.lookup_price("Christmas Tree", "6 oz")
    self.assertEqual(cm.exception.code, "PRICE_NOT_FOUND")
    self.assertIn("available sizes: 12 oz, 17 oz", cm.exception.message)

  def test_missing_scent(self):
    with self.assertRaises(PriceNotFoundError) as cm:
      catalog_service.lookup_price("Winter Birch", "12 oz")
    self.assertNotIn("available sizes", cm.exception.message)

  def test_every_price_is_positive_cents(self):
    for key, price in catalog_service.PRICE_TABLE.items():
      self.assertIsInstance(price, int, key)
      self.assertGreater(price, 0, key)


class CatalogServiceTest(absltest.TestCase):

  def setUp(self):
    super().setUp()
    self.service = CatalogService()

  def test_resolves_storefront_line(self):
    item = self.service.resolve_item(
        CartLine(name="Apple Pie", size="12 oz", qty=2, price=1)
    )
    self.assertEqual(item.scent, "Apple Pie")
    self.assertEqual(item.size, "12 oz")
    self.assertEqual(item.qty, 2)
    self.assertEqual(item.unit_price_cents, 1200)
    self.assertEqual(item.catalog_key, "Apple Pie|12 oz")
    self.assertEqual(item.display_name, "Apple Pie • 12 oz")
    self.assertEqual(item.line_total_cents, 2400)

  def test_name_takes_precedence_over_scent(self):
    item = self.service.resolve_item(
        CartLine(name="Lilac", scent="Apple Pie", size="6 oz")
    )
    self.assertEqual(item.scent, "Lilac")

  def test_scent_used_when_name_blank(self):
    item = self.service.resolve_item(
        CartLine(name="  ", scent="lavender", size="6oz")
    )
    self.assertEqual(item.catalog_key, "Lavender|6 oz")

  def test_missing_scent_and_name(self):
    with self.assertRaises(InvalidCartItemError):
      self.service.resolve_item(CartLine(size="12 oz"))

  def test_strict_mode_rejects_unknown_scent(self):
    strict = CatalogService(strict_scents=True)
    with self.assertRaises(InvalidCartItemError) as cm:
      strict.resolve_item(CartLine(name="Winter Birch", size="12 oz"))
    self.assertEqual(cm.exception.code, "INVALID_CART_ITEM")

  def test_permissive_mode_fails_on_price_for_unknown_scent(self):
    with self.assertRaises(PriceNotFoundError):
      self.service.resolve_item(CartLine(name="Winter Birch", size="12 oz"))

  def test_one_bad_line_fails_the_cart(self):
    with self.assertRaises(QuantityExceededError):
      self.service.resolve_cart([
          CartLine(name="Apple Pie", size="12 oz", qty=1),
          CartLine(name="Lilac", size="6 oz", qty=50),
      ])


if __name__ == "__main__":
  absltest.main()
