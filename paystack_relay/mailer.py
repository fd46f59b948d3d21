import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape
from typing import Protocol

from .errors import DownstreamUnavailable
from .models import Order
from .settings import Settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, to_address: str, subject: str, html_body: str) -> None: ...


@dataclass(frozen=True)
class ConfirmationEmail:
    to_address: str
    subject: str
    html_body: str


def build_confirmation_email(order: Order, currency: str) -> ConfirmationEmail:
    """Render the order confirmation sent once the order is written."""
    if not order.customer_email:
        raise ValueError(f"Order {order.order_id} has no customer email")

    rows = "".join(
        f"""
        <tr>
          <td style="padding: 8px; border-bottom: 1px solid #ddd;">{escape(item.name)} (x{item.quantity})</td>
          <td style="padding: 8px; border-bottom: 1px solid #ddd; text-align: right;">{escape(currency)} {item.line_total:.2f}</td>
        </tr>"""
        for item in order.items
    )
    shipping = order.shipping_info
    city_line = ", ".join(part for part in (escape(shipping.city), escape(shipping.zip)) if part)

    html_body = f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
      <h2 style="color: #0d47a1;">Thank you for your order, {escape(shipping.name)}!</h2>
      <p>We've received your order and will process it shortly. Here are the details:</p>
      <h3>Order ID: {escape(order.order_id)}</h3>
      <table style="width: 100%; border-collapse: collapse;">
        <thead>
          <tr>
            <th style="padding: 8px; border-bottom: 2px solid #ddd; text-align: left;">Item</th>
            <th style="padding: 8px; border-bottom: 2px solid #ddd; text-align: right;">Price</th>
          </tr>
        </thead>
        <tbody>{rows}
        </tbody>
        <tfoot>
          <tr>
            <td style="padding: 8px; font-weight: bold; text-align: right;">Total:</td>
            <td style="padding: 8px; font-weight: bold; text-align: right;">{escape(currency)} {order.total_price:.2f}</td>
          </tr>
        </tfoot>
      </table>
      <h3 style="margin-top: 20px;">Shipping to:</h3>
      <p>
        {escape(shipping.name)}<br>
        {escape(shipping.address)}<br>
        {city_line}
      </p>
      <p>Thank you for shopping with us!</p>
    </div>
    """
    return ConfirmationEmail(
        to_address=order.customer_email,
        subject=f"Your Order Confirmation (ID: {order.order_id[:8]})",
        html_body=html_body,
    )


class SmtpMailer:
    """Sends HTML mail through the configured SMTP server.

    Port 465 uses implicit TLS; any other port upgrades with STARTTLS when
    credentials are configured.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def sender(self) -> str:
        return formataddr((self.settings.email_from_name, self.settings.email_user))

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.email_port == 465:
            return smtplib.SMTP_SSL(s.email_host, s.email_port, timeout=s.smtp_timeout_seconds)
        return smtplib.SMTP(s.email_host, s.email_port, timeout=s.smtp_timeout_seconds)

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = to_address
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html"))

        try:
            with self._connect() as smtp:
                if self.settings.email_user:
                    if self.settings.email_port != 465:
                        smtp.starttls()
                    smtp.login(self.settings.email_user, self.settings.email_pass)
                smtp.sendmail(self.settings.email_user, [to_address], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DownstreamUnavailable(f"Could not send email to {to_address}") from exc

        logger.info("Confirmation email sent to %s", to_address)
