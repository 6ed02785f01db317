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

"""Notification service for order confirmation emails.

Two emails go out per paid order: a notification to the store and a
confirmation to the customer. Each send stands alone; a failure or a missing
setting for one never blocks the other and never raises to the caller.
"""

import html
import logging
from typing import Dict, Optional, Tuple

from candle_checkout.clients.mailer import ResendClient
from candle_checkout.config import Settings
from candle_checkout.enums import EmailStatus
from candle_checkout.exceptions import EmailProviderError
from candle_checkout.models import EmailResult
from candle_checkout.models import OrderLine
from candle_checkout.models import OrderSummary
from candle_checkout.models import ShipmentOutcome

logger = logging.getLogger(__name__)


def escape(value) -> str:
  return html.escape(str(value if value is not None else ""), quote=True)


def money(amount: int, currency: str = "usd") -> str:
  """Formats minor units as "12.00 USD"."""
  return f"{(amount or 0) / 100:.2f} {(currency or 'usd').upper()}"


def money_pretty(amount: int, currency: str = "usd") -> str:
  """Formats minor units as "$1,234.56" (or "1,234.56 EUR" for non-USD)."""
  value = (amount or 0) / 100
  code = (currency or "usd").upper()
  if code == "USD":
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"
  return f"{value:,.2f} {code}"


def _cell(value: str, align: str = "left") -> str:
  return (
      f'<td style="padding:10px 0;border-bottom:1px solid #eee;'
      f'text-align:{align};">{escape(value)}</td>'
  )


def _header(label: str, align: str = "left") -> str:
  return (
      f'<th style="text-align:{align};padding:10px 0;'
      f'border-bottom:2px solid #ddd;">{label}</th>'
  )


def build_items_table(order: OrderSummary) -> str:
  """Renders the order's items as an HTML table.

  When line items could not be fetched, the stored item text is shown
  instead.
  """
  if not order.lines:
    text = order.items_text or "(no items)"
    return (
        '<div style="padding:12px;border:1px solid #eee;border-radius:12px;">'
        f"{escape(text)}</div>"
    )

  def row(line: OrderLine) -> str:
    return (
        "<tr>"
        + _cell(line.name)
        + _cell(str(line.qty), "center")
        + _cell(money_pretty(line.unit_amount, order.currency), "right")
        + _cell(money_pretty(line.line_amount, order.currency), "right")
        + "</tr>"
    )

  rows = "".join(row(line) for line in order.lines)
  return (
      '<table style="width:100%;border-collapse:collapse;font-size:14px;">'
      "<thead><tr>"
      + _header("Item")
      + _header("Qty", "center")
      + _header("Unit", "right")
      + _header("Line", "right")
      + f"</tr></thead><tbody>{rows}</tbody></table>"
  )


def build_totals(order: OrderSummary, total_label: str = "Total") -> str:
  currency = order.currency
  rows = [
      ("Subtotal", order.totals.subtotal),
      ("Shipping", order.totals.shipping),
      ("Tax", order.totals.tax),
  ]
  body = "".join(
      '<div style="display:flex;justify-content:space-between;padding:6px 0;">'
      f"<span>{label}</span><span>{escape(money_pretty(amount, currency))}</span>"
      "</div>"
      for label, amount in rows
  )
  body += (
      '<div style="display:flex;justify-content:space-between;padding:10px 0;'
      'border-top:2px solid #ddd;font-weight:bold;">'
      f"<span>{escape(total_label)}</span>"
      f"<span>{escape(money_pretty(order.totals.total, currency))}</span></div>"
  )
  return f'<div style="font-size:14px;">{body}</div>'


def build_shipping_block(order: OrderSummary) -> str:
  address = (
      order.shipping_address.format_lines() if order.shipping_address else "N/A"
  )
  return (
      '<h3 style="margin:18px 0 8px;">Shipping</h3>'
      '<div style="background:#fff;border:1px solid #eee;border-radius:12px;'
      'padding:12px;">'
      f'<p style="margin:0 0 6px;"><strong>Method:</strong> '
      f"{escape(order.shipping_method)}</p>"
      f'<p style="margin:0 0 6px;"><strong>Name:</strong> '
      f"{escape(order.shipping_name)}</p>"
      f'<p style="margin:0 0 6px;"><strong>Phone:</strong> '
      f"{escape(order.customer.phone)}</p>"
      '<pre style="white-space:pre-wrap;margin:0;font-family:inherit;">'
      f"{escape(address)}</pre></div>"
  )


def _link(url: Optional[str], text: str, margin: str = "0") -> str:
  if not url:
    return ""
  return (
      f'<p style="margin:{margin};"><a href="{escape(url)}" '
      f'style="color:#0ea5e9;">{text}</a></p>'
  )


def build_merchant_label_block(shipment: ShipmentOutcome) -> str:
  if shipment.label and shipment.label.tracking_code:
    label = shipment.label
    return (
        '<h3 style="margin:18px 0 8px;">Shipping Label</h3>'
        '<div style="background:#f0f9ff;border:1px solid #0ea5e9;'
        'border-radius:12px;padding:12px;">'
        f'<p style="margin:0 0 6px;"><strong>Tracking:</strong> '
        f"{escape(label.tracking_code)}</p>"
        f'<p style="margin:0 0 6px;"><strong>Carrier:</strong> '
        f"{escape(label.rate.carrier)} {escape(label.rate.service)}</p>"
        + _link(label.tracking_url, "Track Package", "0 0 6px")
        + _link(label.label_url, "Download Label")
        + "</div>"
    )
  error = shipment.error or "No tracking code was returned"
  return (
      '<h3 style="margin:18px 0 8px;">Shipping Label</h3>'
      '<div style="background:#fef2f2;border:1px solid #ef4444;'
      'border-radius:12px;padding:12px;">'
      '<p style="margin:0;color:#991b1b;"><strong>Label creation failed:'
      f"</strong> {escape(error)}</p>"
      '<p style="margin:6px 0 0;font-size:12px;color:#7f1d1d;">'
      "Create label manually in EasyPost dashboard.</p></div>"
  )


def render_merchant_email(
    order: OrderSummary, shipment: ShipmentOutcome
) -> Tuple[str, str]:
  """Returns (subject, html) of the store's new-order notification."""
  items_text = ", ".join(f"{l.qty}x {l.name}" for l in order.lines)
  subject = (
      f"New paid order — {items_text or order.items_text or 'Checkout'} — "
      f"{money(order.totals.total, order.currency)}"
  )
  body = (
      '<div style="font-family: Arial, sans-serif; line-height: 1.4; '
      'max-width:680px;">'
      '<h2 style="margin:0 0 8px;">New Paid Order</h2>'
      '<div style="padding:12px 14px; background:#f7f7f7; border-radius:12px;'
      ' margin:12px 0;">'
      f'<p style="margin:0 0 6px;"><strong>Order ID:</strong> '
      f"{escape(order.id)}</p>"
      f'<p style="margin:0;"><strong>Total:</strong> '
      f"{escape(money_pretty(order.totals.total, order.currency))}</p></div>"
      f'<p style="margin:0 0 10px;"><strong>Payment status:</strong> '
      f"{escape(order.payment_status)}</p>"
      '<h3 style="margin:18px 0 8px;">Customer</h3>'
      f'<p style="margin:0;"><strong>Name:</strong> '
      f"{escape(order.customer.name)}<br/>"
      f"<strong>Email:</strong> {escape(order.customer.email)}<br/>"
      f"<strong>Phone:</strong> {escape(order.customer.phone)}</p>"
      '<h3 style="margin:18px 0 8px;">Items</h3>'
      + build_items_table(order)
      + '<h3 style="margin:18px 0 8px;">Totals</h3>'
      + build_totals(order)
      + build_shipping_block(order)
      + '<h3 style="margin:18px 0 8px;">Stripe</h3>'
      f'<p style="margin:0;"><strong>Checkout session:</strong> '
      f"{escape(order.id)}<br/><strong>Mode:</strong> {escape(order.mode)}</p>"
      + build_merchant_label_block(shipment)
      + "</div>"
  )
  return subject, body


def render_customer_email(
    order: OrderSummary, shipment: ShipmentOutcome, store_name: str
) -> Tuple[str, str]:
  """Returns (subject, html) of the customer's order confirmation."""
  order_short = order.id[-8:] if order.id else ""
  subject = f"Order confirmed — {store_name} ({order_short})"
  greeting = "Thanks for your order"
  if order.customer.name:
    greeting += f", {escape(order.customer.name)}"

  tracking = ""
  label = shipment.label
  if label and label.tracking_code:
    tracking = (
        '<div style="margin:18px 0;padding:14px;background:#f0f9ff;'
        'border:1px solid #0ea5e9;border-radius:12px;">'
        '<p style="margin:0 0 8px;font-weight:bold;color:#0369a1;">'
        "Your order is ready to ship!</p>"
        f'<p style="margin:0 0 6px;"><strong>Tracking number:</strong> '
        f"{escape(label.tracking_code)}</p>"
        + _link(label.tracking_url, "Track your package")
        + "</div>"
    )

  body = (
      '<div style="font-family: Arial, sans-serif; line-height: 1.5; '
      'max-width:680px; margin:0 auto; color:#111;">'
      f'<h2 style="margin:0 0 8px;">{greeting}!</h2>'
      '<p style="margin:0 0 14px;">We received your order and will start '
      "preparing it for shipment.</p>"
      '<div style="padding:12px 14px; background:#f7f7f7; border-radius:12px;'
      ' margin:14px 0;">'
      f'<p style="margin:0 0 6px;"><strong>Order ID:</strong> '
      f"{escape(order.id)}</p>"
      '<p style="margin:0;"><strong>Status:</strong> Paid</p></div>'
      '<h3 style="margin:18px 0 8px;">Order summary</h3>'
      + build_items_table(order)
      + '<h3 style="margin:18px 0 8px;">Totals</h3>'
      + build_totals(order, "Total paid")
      + build_shipping_block(order)
      + '<h3 style="margin:18px 0 8px;">What happens next</h3>'
      '<ul style="margin:0; padding-left:18px;">'
      "<li>We'll begin preparing your candles for shipment.</li>"
      "<li>When your order ships, you'll receive a shipping update (and"
      " tracking if available).</li>"
      "<li>If your shipping address needs a correction, reply to this email as"
      " soon as possible.</li></ul>"
      + tracking
      + '<p style="margin:16px 0 0; font-size:12px; color:#666;">'
      "Questions? Reply to this email and we'll help.</p></div>"
  )
  return subject, body


class NotificationService:
  """Service sending the merchant and customer order emails."""

  def __init__(self, settings: Settings, email_client: ResendClient):
    self.settings = settings
    self.email_client = email_client

  def _sender(self, address: Optional[str]) -> Optional[str]:
    if not address:
      return None
    return f"{self.settings.store_name} <{address}>"

  async def _send(
      self,
      kind: str,
      *,
      to: Optional[str],
      sender: Optional[str],
      subject: str,
      body: str,
      reply_to: Optional[str],
  ) -> EmailResult:
    if not self.email_client.configured or not sender or not to:
      logger.warning(
          "Skipping %s email (provider key: %s, from: %s, to: %s)",
          kind,
          self.email_client.configured,
          bool(sender),
          bool(to),
      )
      return EmailResult(
          status=EmailStatus.SKIPPED, reason="missing email configuration"
      )

    try:
      message_id = await self.email_client.send(
          sender=sender, to=to, subject=subject, html=body, reply_to=reply_to
      )
    except EmailProviderError as e:
      logger.error("Sending %s email failed: %s", kind, e.message)
      return EmailResult(status=EmailStatus.FAILED, reason=e.message)
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.exception("Unexpected error sending %s email", kind)
      return EmailResult(status=EmailStatus.FAILED, reason=str(e))

    logger.info("Sent %s email %s", kind, message_id)
    return EmailResult(status=EmailStatus.SENT, id=message_id)

  async def send_merchant_email(
      self, order: OrderSummary, shipment: ShipmentOutcome
  ) -> EmailResult:
    subject, body = render_merchant_email(order, shipment)
    return await self._send(
        "merchant",
        to=self.settings.order_notify_to_email,
        sender=self._sender(self.settings.order_notify_from_email),
        subject=subject,
        body=body,
        reply_to=order.customer.email or self.settings.store_reply_to_email,
    )

  async def send_customer_email(
      self, order: OrderSummary, shipment: ShipmentOutcome
  ) -> EmailResult:
    subject, body = render_customer_email(
        order, shipment, self.settings.store_name
    )
    return await self._send(
        "customer",
        to=order.customer.email,
        sender=self._sender(self.settings.customer_sender),
        subject=subject,
        body=body,
        reply_to=self.settings.store_reply_to_email,
    )

  async def send_order_emails(
      self, order: OrderSummary, shipment: ShipmentOutcome
  ) -> Dict[str, EmailResult]:
    """Sends both order emails; neither failure affects the other."""
    results = {}
    for kind, send in (
        ("merchant", self.send_merchant_email),
        ("customer", self.send_customer_email),
    ):
      try:
        results[kind] = await send(order, shipment)
      except Exception as e:  # pylint: disable=broad-exception-caught
        logger.exception("Rendering %s email failed", kind)
        results[kind] = EmailResult(status=EmailStatus.FAILED, reason=str(e))
    return results
