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

"""Shared configuration and startup logic for the checkout server.

Configuration is resolved once into a `Settings` object. The deployment
profile (test or live) picks which of the parallel Stripe and EasyPost
credentials are used; business logic only ever sees the resolved values.
"""

import contextlib
import logging
import os
from typing import List, Mapping, Optional, Union

from absl import flags
from candle_checkout import db
from candle_checkout.enums import Profile
from candle_checkout.enums import ShippingPolicy
from fastapi import FastAPI
from pydantic import BaseModel

FLAGS = flags.FLAGS

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ORIGINS = (
    "https://grooverr.github.io",
    "https://kelleyscandles.com",
    "https://www.kelleyscandles.com",
    "http://localhost:5500",
    "http://127.0.0.1:5500",
)

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string("host", "0.0.0.0", "Interface to bind the server to")
  flags.DEFINE_enum(
      "profile",
      None,
      [p.value for p in Profile],
      "Credential profile; defaults to APP_ENV / NODE_ENV",
  )
  flags.DEFINE_string(
      "events_db_path", None, "Path to the processed-events SQLite DB"
  )
except flags.DuplicateFlagError:
  pass


class Settings(BaseModel):
  """Resolved runtime configuration."""

  profile: Profile = Profile.TEST

  stripe_secret_key: Optional[str] = None
  stripe_webhook_secret: Optional[str] = None
  easypost_api_key: Optional[str] = None
  resend_api_key: Optional[str] = None

  order_notify_to_email: Optional[str] = None
  order_notify_from_email: Optional[str] = None
  customer_confirm_from_email: Optional[str] = None
  store_reply_to_email: str = "kelleysfarmcandles@gmail.com"
  store_name: str = "Kelley's Candles"

  allowed_origins: List[str] = list(DEFAULT_ALLOWED_ORIGINS)
  checkout_success_url: str = (
      "https://grooverr.github.io/KellysCandles/thank-you.html"
      "?session_id={CHECKOUT_SESSION_ID}"
  )
  checkout_cancel_url: str = "https://grooverr.github.io/KellysCandles/"
  allowed_countries: List[str] = ["US"]

  shipping_policy: ShippingPolicy = ShippingPolicy.TIERED
  flat_shipping_cents: int = 895
  tier_single_cents: int = 895
  tier_small_cents: int = 1295
  tier_large_cents: int = 1695
  free_shipping_threshold_cents: int = 10000

  strict_scents: bool = False
  verify_shipping_address: bool = False
  request_timeout_seconds: float = 15.0

  events_db_path: Optional[str] = None

  @property
  def customer_sender(self) -> Optional[str]:
    return self.customer_confirm_from_email or self.order_notify_from_email


def resolve_profile(value: Union[str, Profile, None]) -> Profile:
  """Maps an environment name ("production", "live", "test", ...) to a Profile."""
  if isinstance(value, Profile):
    return value
  if value and value.strip().lower() in ("production", "prod", "live"):
    return Profile.LIVE
  return Profile.TEST


def _env_list(value: Optional[str]) -> Optional[List[str]]:
  if value is None:
    return None
  return [part.strip() for part in value.split(",") if part.strip()]


def _env_bool(value: Optional[str]) -> Optional[bool]:
  if value is None:
    return None
  return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(
    environ: Mapping[str, str],
    profile: Union[str, Profile, None] = None,
) -> Settings:
  """Builds Settings from an environment mapping.

  Args:
    environ: Environment variables (usually `os.environ`).
    profile: Explicit profile; falls back to APP_ENV, then NODE_ENV.

  Returns:
    The resolved Settings. Missing secrets are left as None; the calls that
    need them fail and are logged rather than preventing startup.
  """
  resolved = resolve_profile(
      profile or environ.get("APP_ENV") or environ.get("NODE_ENV")
  )
  live = resolved == Profile.LIVE

  values = {
      "profile": resolved,
      "stripe_secret_key": environ.get(
          "STRIPE_LIVE_KEY" if live else "STRIPE_SECRET_KEY"
      ),
      "stripe_webhook_secret": environ.get(
          "STRIPE_LIVE_WEBHOOK_SECRET" if live else "STRIPE_TEST_WEBHOOK_SECRET"
      ),
      "easypost_api_key": environ.get(
          "EASYPOST_LIVE_API_KEY" if live else "EASYPOST_TEST_API_KEY"
      ),
      "resend_api_key": environ.get("RESEND_API_KEY"),
      "order_notify_to_email": environ.get("ORDER_NOTIFY_TO_EMAIL"),
      "order_notify_from_email": environ.get("ORDER_NOTIFY_FROM_EMAIL"),
      "customer_confirm_from_email": environ.get("CUSTOMER_CONFIRM_FROM_EMAIL"),
      "store_reply_to_email": environ.get("STORE_REPLY_TO_EMAIL"),
      "store_name": environ.get("STORE_NAME"),
      "allowed_origins": _env_list(environ.get("ALLOWED_ORIGINS")),
      "checkout_success_url": environ.get("CHECKOUT_SUCCESS_URL"),
      "checkout_cancel_url": environ.get("CHECKOUT_CANCEL_URL"),
      "allowed_countries": _env_list(environ.get("ALLOWED_COUNTRIES")),
      "shipping_policy": environ.get("SHIPPING_POLICY"),
      "flat_shipping_cents": environ.get("FLAT_SHIPPING_CENTS"),
      "free_shipping_threshold_cents": environ.get(
          "FREE_SHIPPING_THRESHOLD_CENTS"
      ),
      "strict_scents": _env_bool(environ.get("STRICT_SCENT_ALLOWLIST")),
      "verify_shipping_address": _env_bool(
          environ.get("VERIFY_SHIPPING_ADDRESS")
      ),
      "request_timeout_seconds": environ.get("REQUEST_TIMEOUT_SECONDS"),
      "events_db_path": environ.get("EVENTS_DB_PATH"),
  }
  # Unset variables fall back to the model defaults.
  return Settings(**{k: v for k, v in values.items() if v is not None})


_SETTINGS_CACHE: Optional[Settings] = None


def get_settings() -> Settings:
  """Returns the process-wide Settings, resolving them on first use."""
  global _SETTINGS_CACHE
  if _SETTINGS_CACHE:
    return _SETTINGS_CACHE

  profile = None
  if FLAGS.is_parsed():
    profile = FLAGS.profile
  settings = load_settings(os.environ, profile)
  if FLAGS.is_parsed() and FLAGS.events_db_path:
    settings = settings.model_copy(
        update={"events_db_path": FLAGS.events_db_path}
    )
  _SETTINGS_CACHE = settings
  return _SETTINGS_CACHE


def clear_settings_cache() -> None:
  global _SETTINGS_CACHE
  _SETTINGS_CACHE = None


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing the processed-events DB."""
  del app  # Unused.
  settings = get_settings()
  logger.info("Starting checkout server with %s profile", settings.profile.value)
  if settings.events_db_path:
    await db.manager.init_db(settings.events_db_path)
  else:
    logger.warning(
        "No events DB configured; duplicate webhook deliveries will be"
        " processed again"
    )
  yield
  await db.manager.close()
