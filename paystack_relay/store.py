import logging
from typing import Callable, ContextManager

import psycopg
from psycopg.types.json import Jsonb

from .db import get_conn
from .errors import DownstreamUnavailable
from .models import Order
from .settings import Settings

logger = logging.getLogger(__name__)


class OrderStore:
    """Orders and carts in Postgres.

    ``create_order`` is a single INSERT ... ON CONFLICT DO NOTHING, so two
    concurrent deliveries of the same event can never both write an order.
    """

    def __init__(self, settings: Settings, connect: Callable[[Settings], ContextManager] = get_conn):
        self.settings = settings
        self._connect = connect

    def order_exists(self, partition: str, order_id: str) -> bool:
        try:
            with self._connect(self.settings) as conn:
                row = conn.execute(
                    "SELECT 1 FROM orders WHERE partition = %s AND order_id = %s",
                    (partition, order_id),
                ).fetchone()
        except psycopg.Error as exc:
            raise DownstreamUnavailable(f"Order lookup failed for {order_id}") from exc
        return row is not None

    def create_order(self, order: Order) -> bool:
        """Insert the order if absent. True when this call created it."""
        try:
            with self._connect(self.settings) as conn:
                row = conn.execute(
                    "INSERT INTO orders(partition, order_id, user_id, items, shipping_info, total_price, "
                    "payment_status, payment_reference, status, customer_email, created_at) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW()) "
                    "ON CONFLICT DO NOTHING RETURNING order_id",
                    (
                        order.partition,
                        order.order_id,
                        order.user_id,
                        Jsonb([item.model_dump(mode="json") for item in order.items]),
                        Jsonb(order.shipping_info.model_dump(mode="json")),
                        order.total_price,
                        order.payment_status,
                        order.payment_reference,
                        order.status,
                        order.customer_email,
                    ),
                ).fetchone()
        except psycopg.Error as exc:
            raise DownstreamUnavailable(f"Order write failed for {order.order_id}") from exc
        return row is not None

    def clear_cart(self, partition: str, user_id: str) -> None:
        try:
            with self._connect(self.settings) as conn:
                conn.execute(
                    "INSERT INTO carts(partition, user_id, items, updated_at) VALUES (%s, %s, %s, NOW()) "
                    "ON CONFLICT (partition, user_id) DO UPDATE SET items = EXCLUDED.items, updated_at = NOW()",
                    (partition, user_id, Jsonb([])),
                )
        except psycopg.Error as exc:
            raise DownstreamUnavailable(f"Cart clear failed for user {user_id}") from exc
