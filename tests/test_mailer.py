from __future__ import annotations

import smtplib
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from paystack_relay.errors import DownstreamUnavailable
from paystack_relay.mailer import SmtpMailer, build_confirmation_email
from paystack_relay.models import CartItem, Order, ShippingInfo
from paystack_relay.settings import Settings


def _order(**overrides) -> Order:
    fields = dict(
        partition="shop",
        order_id="ord-123456789",
        user_id="u1",
        items=[CartItem(name="Shea <Butter>", quantity=2, price=10.25)],
        shipping_info=ShippingInfo(name="Ama", address="1 Ring Rd", city="Accra", zip="00233"),
        total_price=Decimal("20.50"),
        payment_reference="ref-1",
        customer_email="ama@example.com",
    )
    fields.update(overrides)
    return Order(**fields)


class TestConfirmationEmail:
    def test_subject_uses_short_order_id(self):
        email = build_confirmation_email(_order(), "GHS")
        assert email.subject == "Your Order Confirmation (ID: ord-1234)"
        assert email.to_address == "ama@example.com"

    def test_body_lists_items_total_and_address(self):
        html = build_confirmation_email(_order(), "GHS").html_body
        assert "Thank you for your order, Ama!" in html
        assert "(x2)" in html
        assert "GHS 20.50" in html
        assert "Accra, 00233" in html

    def test_values_are_escaped(self):
        html = build_confirmation_email(_order(), "GHS").html_body
        assert "Shea &lt;Butter&gt;" in html
        assert "<Butter>" not in html

    def test_requires_customer_email(self):
        with pytest.raises(ValueError):
            build_confirmation_email(_order(customer_email=None), "GHS")


class TestSmtpMailer:
    def test_starttls_login_and_send(self):
        settings = Settings(email_host="smtp.test", email_port=587, email_user="shop@example.com", email_pass="pw")
        with patch("paystack_relay.mailer.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            SmtpMailer(settings).send("ama@example.com", "Hi", "<p>Hi</p>")

        smtp_cls.assert_called_once_with("smtp.test", 587, timeout=settings.smtp_timeout_seconds)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("shop@example.com", "pw")
        from_addr, to_addrs, message = smtp.sendmail.call_args[0]
        assert from_addr == "shop@example.com"
        assert to_addrs == ["ama@example.com"]
        assert "Subject: Hi" in message

    def test_port_465_uses_ssl(self):
        settings = Settings(email_host="smtp.test", email_port=465, email_user="shop@example.com")
        with patch("paystack_relay.mailer.smtplib.SMTP_SSL") as ssl_cls:
            smtp = ssl_cls.return_value.__enter__.return_value
            SmtpMailer(settings).send("ama@example.com", "Hi", "<p>Hi</p>")
        smtp.starttls.assert_not_called()
        smtp.sendmail.assert_called_once()

    def test_sender_display_name(self):
        settings = Settings(email_user="shop@example.com", email_from_name="Awuzat Import")
        assert SmtpMailer(settings).sender == "Awuzat Import <shop@example.com>"

    def test_smtp_error_wrapped(self):
        with patch("paystack_relay.mailer.smtplib.SMTP") as smtp_cls:
            smtp_cls.side_effect = smtplib.SMTPConnectError(421, b"busy")
            with pytest.raises(DownstreamUnavailable):
                SmtpMailer(Settings()).send("ama@example.com", "Hi", "<p>Hi</p>")

    def test_socket_timeout_wrapped(self):
        with patch("paystack_relay.mailer.smtplib.SMTP", MagicMock(side_effect=TimeoutError("timed out"))):
            with pytest.raises(DownstreamUnavailable):
                SmtpMailer(Settings()).send("ama@example.com", "Hi", "<p>Hi</p>")
