from typing import Any, Optional


class RelayError(Exception):
    """Base class for every error raised by the relay."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationFailure(RelayError):
    """Webhook signature missing or wrong. The only case the gateway sees a rejection."""


class DataContractViolation(RelayError):
    """Event body or metadata is missing fields or cannot be decoded.

    Retrying cannot fix it, so webhooks carrying one are acknowledged.
    """


class DuplicateEvent(RelayError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} has already been processed")
        self.order_id = order_id


class DownstreamUnavailable(RelayError):
    """Order store, mail server or gateway call failed or timed out."""


class GatewayError(DownstreamUnavailable):
    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.detail = detail if detail is not None else message
