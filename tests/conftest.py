"""Shared fixtures: settings, in-memory order store, recording notifier, signed events."""

from __future__ import annotations

import json
import threading

import pytest

from paystack_relay.errors import DownstreamUnavailable
from paystack_relay.settings import Settings
from paystack_relay.signature import compute_signature
from paystack_relay.webhook import WebhookHandler

SECRET = "sk_test_relay_secret"
PARTITION = "shop-test"


class FakeOrderStore:
    """Dict-backed stand-in for OrderStore with per-operation failure switches."""

    def __init__(self):
        self.orders = {}
        self.carts = {}
        self.cart_clears = []
        self.lookups = 0
        self.fail_on: set[str] = set()
        self._lock = threading.Lock()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise DownstreamUnavailable(f"{operation} unavailable")

    def order_exists(self, partition, order_id):
        self._maybe_fail("order_exists")
        self.lookups += 1
        return (partition, order_id) in self.orders

    def create_order(self, order):
        self._maybe_fail("create_order")
        with self._lock:
            key = (order.partition, order.order_id)
            if key in self.orders:
                return False
            self.orders[key] = order
            return True

    def clear_cart(self, partition, user_id):
        self._maybe_fail("clear_cart")
        self.carts[(partition, user_id)] = []
        self.cart_clears.append((partition, user_id))


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.error: Exception | None = None

    def send(self, to_address, subject, html_body):
        if self.error is not None:
            raise self.error
        self.sent.append((to_address, subject, html_body))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        paystack_secret_key=SECRET,
        paystack_base_url="https://paystack.test",
        store_partition=PARTITION,
        frontend_url="https://shop.example",
        backend_url="https://api.shop.example",
    )


@pytest.fixture
def store() -> FakeOrderStore:
    return FakeOrderStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def handler(settings, store, notifier) -> WebhookHandler:
    return WebhookHandler(settings, store, notifier)


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str = SECRET) -> str:
        return compute_signature(secret, body)

    return _sign


@pytest.fixture
def make_event():
    """Factory for raw ``charge.success`` bodies with double-encoded cart and shipping."""

    def _make(
        order_id: str = "ord-1",
        user_id: str = "u1",
        amount: int = 2000,
        reference: str = "ref-1",
        event: str = "charge.success",
        email: str | None = "buyer@example.com",
        cart_items=None,
        shipping_info=None,
        **metadata_overrides,
    ) -> bytes:
        items = cart_items if cart_items is not None else [{"name": "A", "quantity": 2, "price": 10}]
        shipping = shipping_info if shipping_info is not None else {"name": "X", "address": ".."}
        metadata = {
            "order_id": order_id,
            "user_id": user_id,
            "cart_items": items if isinstance(items, str) else json.dumps(items),
            "shipping_info": shipping if isinstance(shipping, str) else json.dumps(shipping),
        }
        metadata.update(metadata_overrides)
        metadata = {k: v for k, v in metadata.items() if v is not None}
        data = {"amount": amount, "reference": reference, "metadata": metadata}
        if email is not None:
            data["customer"] = {"email": email}
        return json.dumps({"event": event, "data": data}).encode("utf-8")

    return _make
