"""Order and order note models."""

import enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from persistence.models.address import Address
from persistence.models.base import Entity


class OrderStatusEnum(str, enum.Enum):
    """Lifecycle states of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class OrderItem(BaseModel):
    """A line item of an order."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    product_id: str | None = None
    name: str = ""
    quantity: int = 1
    price: float = 0.0
    total: float = 0.0


class Order(Entity):
    """A customer order placed with a store.

    Totals are stored as computed at checkout; the repository does not
    recalculate them.
    """

    collection_name: ClassVar[str] = "orders"
    topic_prefix: ClassVar[str] = "order"

    created_by: str | None = None
    parent_id: str | None = Field(default=None, alias="parentID")
    order_number: int = 0
    order_type: str = ""
    store_id: str | None = None
    service_type: str = ""
    order_items: list[OrderItem] = Field(default_factory=list)
    coupon: str = ""
    provider_id: str | None = None
    delivery_address: Address | None = None
    order_status: OrderStatusEnum = OrderStatusEnum.PENDING
    currency: str = "USD"
    discount_amount: float = 0.0
    shipping_total: float = 0.0
    total_tax: float = 0.0
    order_total_amount: float = 0.0
    prices_include_tax: bool = False
    customer_id: str | None = Field(default=None, alias="customerID")
    customer_note: str = ""
    payment_method: str = ""
    transaction_id: str | None = Field(default=None, alias="transactionID")


class OrderNote(Entity):
    """A note attached to an order by staff or the customer."""

    collection_name: ClassVar[str] = "order_notes"
    topic_prefix: ClassVar[str] = "order_note"

    created_by: str | None = None
    order_id: str | None = None
    author: str = ""
    note: str = ""
    customer_note: bool = False
    is_active: bool = True
