import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .errors import GatewayError
from .models import InitializePaymentRequest, TransactionAuthorization, TransactionStatus, to_minor_units
from .settings import Settings

logger = logging.getLogger(__name__)


def _error_detail(exc: httpx.HTTPError) -> Any:
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    try:
        return response.json()
    except ValueError:
        return response.text or str(exc)


class PaystackClient:
    """Paystack REST calls. One attempt per call; the gateway's redelivery is the retry."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.settings.paystack_secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        url = f"{self.settings.paystack_base_url}{path}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                r = await client.request(
                    method,
                    url,
                    json=payload,
                    headers=self._headers(),
                    timeout=self.settings.gateway_timeout_seconds,
                )
                logger.debug("Paystack %s %s -> %s", method, path, r.status_code)
                r.raise_for_status()
                body = r.json()
        except httpx.HTTPError as exc:
            raise GatewayError(f"Paystack {method} {path} failed", _error_detail(exc)) from exc
        except ValueError as exc:
            raise GatewayError(f"Paystack {method} {path} returned invalid JSON") from exc

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            raise GatewayError(message or "Paystack rejected the request", body)
        return body.get("data") or {}

    async def initialize_transaction(self, req: InitializePaymentRequest) -> TransactionAuthorization:
        payload = {
            "email": req.email,
            "amount": to_minor_units(req.amount),
            "currency": self.settings.currency,
            "callback_url": self.settings.verify_callback_url,
            "metadata": {
                "order_id": req.order_id,
                "user_id": req.user_id,
                # Nested JSON strings; the webhook decodes them back
                "cart_items": json.dumps([item.model_dump(mode="json") for item in req.cart_items]),
                "shipping_info": json.dumps(req.shipping_info.model_dump(mode="json")),
            },
        }
        data = await self._request("POST", "/transaction/initialize", payload)
        try:
            return TransactionAuthorization.model_validate(data)
        except ValidationError as exc:
            raise GatewayError("Unexpected initialize response from Paystack", data) from exc

    async def verify_transaction(self, reference: str) -> TransactionStatus:
        data = await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        try:
            return TransactionStatus.model_validate(data)
        except ValidationError as exc:
            raise GatewayError("Unexpected verify response from Paystack", data) from exc
