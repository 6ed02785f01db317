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

"""Custom exceptions for the candle checkout service."""


class ShopError(Exception):
  """Base class for all checkout service exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class InvalidRequestError(ShopError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class InvalidCartItemError(ShopError):
  """Raised when a cart line has an unusable scent, size or quantity."""

  def __init__(self, message: str, code: str = "INVALID_CART_ITEM"):
    super().__init__(message, code=code, status_code=400)


class QuantityExceededError(InvalidCartItemError):
  """Raised when a cart line asks for more than the per-line maximum."""

  def __init__(self, message: str):
    super().__init__(message, code="QUANTITY_EXCEEDED")


class PriceNotFoundError(InvalidCartItemError):
  """Raised when a (scent, size) pair has no entry in the price table."""

  def __init__(self, message: str):
    super().__init__(message, code="PRICE_NOT_FOUND")


class EmptyCartError(ShopError):
  """Raised when a checkout is requested for an empty cart."""

  def __init__(self, message: str = "Cart is empty"):
    super().__init__(message, code="EMPTY_CART", status_code=400)


class MethodNotAllowedError(ShopError):

  def __init__(self, message: str = "Method not allowed"):
    super().__init__(message, code="METHOD_NOT_ALLOWED", status_code=405)


class SignatureInvalidError(ShopError):
  """Raised when a webhook signature is missing or does not verify."""

  def __init__(self, message: str):
    super().__init__(message, code="SIGNATURE_INVALID", status_code=400)


class UpstreamProcessorError(ShopError):
  """Raised when the payment or shipping processor fails or is unreachable."""

  def __init__(self, message: str):
    super().__init__(
        message, code="UPSTREAM_PROCESSOR_ERROR", status_code=500
    )


class ShippingError(ShopError):
  """Base class for shipment failures.

  These are non-fatal inside the webhook pipeline: they are recorded on the
  shipment outcome and only surface in the merchant email.
  """

  def __init__(
      self, message: str, code: str = "SHIPPING_ERROR", status_code: int = 502
  ):
    super().__init__(message, code=code, status_code=status_code)


class NoRatesAvailableError(ShippingError):
  """Raised when the carrier API returns no rates for a shipment."""

  def __init__(self, message: str = "No shipping rates available"):
    super().__init__(message, code="NO_RATES_AVAILABLE")


class ShippingProcessorError(ShippingError):
  """Raised when the shipping processor rejects or fails a request."""

  def __init__(self, message: str):
    super().__init__(message, code="SHIPPING_PROCESSOR_ERROR")


class EmailProviderError(ShopError):
  """Raised when the email provider rejects or fails a send."""

  def __init__(self, message: str):
    super().__init__(message, code="EMAIL_PROVIDER_ERROR", status_code=502)
