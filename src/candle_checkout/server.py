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

"""Candle shop checkout server (Python/FastAPI)."""

import logging
import sys
from typing import Sequence

from absl import app as absl_app
from candle_checkout import config
from candle_checkout.exceptions import InvalidRequestError
from candle_checkout.exceptions import MethodNotAllowedError
from candle_checkout.exceptions import ShopError
from candle_checkout.routes.checkout import router as checkout_router
from candle_checkout.routes.webhooks import router as webhook_router
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

# --- App Setup ---

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

app = FastAPI(
    title="Candle Checkout Service",
    version="1.0.0",
    description="Checkout, webhook fulfillment and notifications for the"
    " candle storefront",
    lifespan=config.lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_settings().allowed_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def _error_response(exc: ShopError) -> JSONResponse:
  message = exc.message
  if exc.status_code == 500:
    logger.error("%s: %s", exc.code, exc.message)
    message = "Internal server error"
  return JSONResponse(
      status_code=exc.status_code,
      content={"error": message, "code": exc.code},
  )


@app.exception_handler(ShopError)
async def shop_exception_handler(request: Request, exc: ShopError):
  """Handles service exceptions and converts them to JSON responses."""
  del request  # Unused.
  return _error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
):
  del request  # Unused.
  if exc.status_code == 405:
    return _error_response(MethodNotAllowedError())
  return JSONResponse(
      status_code=exc.status_code,
      content={"error": str(exc.detail), "code": "HTTP_%d" % exc.status_code},
      headers=getattr(exc, "headers", None),
  )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
):
  del request  # Unused.
  errors = exc.errors()
  message = "Invalid request"
  if errors:
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = "Invalid request: %s %s" % (location, first.get("msg", ""))
  return _error_response(InvalidRequestError(message.strip()))


@app.get("/healthz", operation_id="healthz")
async def healthz():
  return {"status": "ok", "profile": config.get_settings().profile.value}


app.include_router(checkout_router)
app.include_router(webhook_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the checkout server."""
  del argv  # Unused.

  if config.FLAGS.port is None:
    logger.error("--port must be provided.")
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  # Flags are parsed now, so --profile and --events_db_path apply.
  config.clear_settings_cache()
  settings = config.get_settings()
  if not settings.stripe_secret_key:
    logger.warning("No Stripe secret key for the %s profile", settings.profile.value)
  if not settings.stripe_webhook_secret:
    logger.warning("No Stripe webhook secret; webhooks will be rejected")

  uvicorn.run(app, host=config.FLAGS.host, port=config.FLAGS.port)


def run() -> None:
  absl_app.run(main)


if __name__ == "__main__":
  run()
