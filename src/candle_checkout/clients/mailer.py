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

"""Resend REST client for transactional email."""

import logging
from typing import Optional

from candle_checkout.exceptions import EmailProviderError
import httpx

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


class ResendClient:
  """Sends HTML email through the Resend API."""

  def __init__(
      self,
      api_key: Optional[str],
      timeout: float = 15.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
      url: str = RESEND_EMAILS_URL,
  ):
    self.api_key = api_key
    self.timeout = timeout
    self.transport = transport
    self.url = url

  @property
  def configured(self) -> bool:
    return bool(self.api_key)

  async def send(
      self,
      *,
      sender: str,
      to: str,
      subject: str,
      html: str,
      reply_to: Optional[str] = None,
  ) -> Optional[str]:
    """Sends one email.

    Returns:
      The provider's message id, when it returns one.

    Raises:
      EmailProviderError: If the request fails or the provider rejects it.
    """
    if not self.api_key:
      raise EmailProviderError("Email provider is not configured")

    payload = {"from": sender, "to": [to], "subject": subject, "html": html}
    if reply_to:
      payload["reply_to"] = reply_to

    try:
      async with httpx.AsyncClient(
          timeout=self.timeout, transport=self.transport
      ) as client:
        response = await client.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
    except httpx.HTTPError as e:
      raise EmailProviderError(f"Resend request failed: {e}") from e

    if response.status_code >= 400:
      detail = response.text
      try:
        body = response.json()
      except ValueError:
        body = None
      if isinstance(body, dict) and body.get("message"):
        detail = body["message"]
      raise EmailProviderError(
          f"Resend rejected email ({response.status_code}): {detail}"
      )

    try:
      body = response.json()
    except ValueError:
      return None
    return body.get("id") if isinstance(body, dict) else None
