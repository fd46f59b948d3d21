from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

CHARGE_SUCCESS = "charge.success"

PaymentStatus = Literal["paid"]
OrderStatus = Literal["processing"]

_CENT = Decimal("0.01")


def to_minor_units(amount: Union[float, str, Decimal]) -> int:
    """Major currency amount -> integer minor units, rounding half up.

    Going through str() drops binary float noise, so 49.99 stays 4999.
    """
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(_CENT, rounding=ROUND_HALF_UP)


class CartItem(BaseModel):
    # Frontends send id, image, etc. alongside; keep them on the order
    model_config = ConfigDict(extra="allow")

    name: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)

    @property
    def line_total(self) -> Decimal:
        return (Decimal(str(self.price)) * self.quantity).quantize(_CENT, rounding=ROUND_HALF_UP)


class ShippingInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    address: str = ""
    city: str = ""
    zip: str = ""


# ---------- Payment initialization ----------

class InitializePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(gt=0)
    email: str = Field(min_length=3)
    order_id: str = Field(alias="orderId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    cart_items: List[CartItem] = Field(alias="cartItems")
    shipping_info: ShippingInfo = Field(alias="shippingInfo")


class TransactionAuthorization(BaseModel):
    model_config = ConfigDict(extra="ignore")

    authorization_url: str
    access_code: Optional[str] = None
    reference: str


class InitializePaymentResponse(BaseModel):
    message: str
    data: TransactionAuthorization


class TransactionStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    reference: str
    gateway_response: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


# ---------- Webhook events ----------

class WebhookEnvelope(BaseModel):
    """Outer shape shared by every Paystack event."""

    model_config = ConfigDict(extra="ignore")

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class Customer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None


class ChargeData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: int = Field(ge=0)
    reference: str = Field(min_length=1)
    customer: Customer = Field(default_factory=Customer)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OrderMetadata(BaseModel):
    """Metadata attached at initialization; cart and shipping are JSON strings."""

    model_config = ConfigDict(extra="ignore")

    order_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    cart_items: str = Field(min_length=1)
    shipping_info: str = Field(min_length=1)
    store_partition: Optional[str] = None


class Order(BaseModel):
    partition: str
    order_id: str
    user_id: str
    items: List[CartItem]
    shipping_info: ShippingInfo
    total_price: Decimal
    payment_status: PaymentStatus = "paid"
    payment_reference: str
    status: OrderStatus = "processing"
    customer_email: Optional[str] = None
