"""
Order schemas for the order backend boundary.

This module defines the pydantic models the back office reads from and writes
to the order backend: orders with client details and line items, the two kinds
of update patches, and catalog product references. Heterogeneous field names
coming from the backend are mapped onto one canonical field here, in a single
``mode="before"`` validator per model, so no call site ever checks alternate
field names.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)

from orderdesk.core.logging import get_logger
from orderdesk.services.orders.enums import OrderStatus, PaymentMethod
from orderdesk.services.orders.line_items import (
    coerce_number,
    coerce_price,
    line_subtotal,
)

logger = get_logger(__name__)

# Decimal in Python, plain JSON number on the wire.
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


def _document_id(value: Any) -> Any:
    """Reduce a populated reference (``{"_id": ...}``) to its identifier."""
    if isinstance(value, dict):
        return value.get("_id", value.get("id"))
    return value


class ClientInfo(BaseModel):
    """Customer details attached to an order. All fields are free text."""

    model_config = ConfigDict(validate_assignment=True)

    name: str = Field(default="", description="Customer name")
    contact: str = Field(default="", description="Phone number or other contact")
    city: str = Field(default="", description="Delivery city")
    address: str = Field(default="", description="Delivery address")

    @field_validator("name", "contact", "city", "address", mode="before")
    @classmethod
    def none_as_blank(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float, Decimal)):
            return str(v)
        return v


class LineItem(BaseModel):
    """One product entry within an order."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(default="", description="Product name")
    price: Money = Field(default=Decimal("0"), description="Unit price")
    quantity: int = Field(default=1, description="Units ordered")
    product_id: Optional[str] = Field(
        default=None,
        alias="productId",
        description="Catalog product reference",
    )

    @field_validator("name", mode="before")
    @classmethod
    def none_name_as_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("price", mode="before")
    @classmethod
    def coerce_unit_price(cls, v: Any) -> Decimal:
        return coerce_price(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> int:
        number = coerce_number(v)
        quantity = int(number)
        unparsed = number == 0 and v not in (None, "", 0, "0")
        if number != quantity or unparsed:
            logger.warning(
                "Line item quantity altered on load",
                raw_quantity=str(v),
                quantity=quantity,
            )
        return quantity

    @field_validator("product_id", mode="before")
    @classmethod
    def unwrap_product_reference(cls, v: Any) -> Optional[str]:
        v = _document_id(v)
        return None if v is None else str(v)

    @property
    def subtotal(self) -> Decimal:
        return line_subtotal(self)


class Order(BaseModel):
    """
    An order as stored by the backend.

    ``total_price`` is always derived from ``products``; this model never
    authors it, it only carries what the backend returned.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Backend identifier")
    client: ClientInfo = Field(default_factory=ClientInfo)
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.COD,
        alias="paymentMethod",
    )
    products: list[LineItem] = Field(default_factory=list)
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    total_price: Money = Field(default=Decimal("0"), alias="totalPrice")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def normalize_document(cls, data: Any) -> Any:
        """Map backend field variants onto the canonical fields."""
        if not isinstance(data, dict):
            return data

        document = dict(data)
        if "_id" not in document and "id" in document:
            document["_id"] = document.pop("id")
        if document.get("_id") is not None:
            document["_id"] = str(document["_id"])
        if document.get("client") is None:
            document.pop("client", None)
        if document.get("products") is None:
            document.pop("products", None)
        return document

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> OrderStatus:
        return OrderStatus.from_string(v)

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v: Any) -> PaymentMethod:
        if v is None or v == "":
            return PaymentMethod.COD
        return PaymentMethod.from_string(v)

    @field_validator("total_price", mode="before")
    @classmethod
    def coerce_total(cls, v: Any) -> Decimal:
        return coerce_number(v)

    @property
    def short_number(self) -> str:
        """Last six characters of the identifier, as shown to staff."""
        return self.id[-6:]


class OrderPatch(BaseModel):
    """Base class for update payloads sent to the backend."""

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderStatusPatch(OrderPatch):
    """Status-only update."""

    status: OrderStatus


class LineItemPayload(BaseModel):
    """A cleaned line item ready to be persisted."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    price: Money = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(..., ge=1)
    product_id: Optional[str] = Field(
        default=None,
        alias="productId",
        pattern=r"^[0-9a-fA-F]{24}$",
    )


class OrderContentPatch(OrderPatch):
    """Full content update produced by a committed edit session."""

    client: ClientInfo
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    products: list[LineItemPayload] = Field(..., min_length=1)
    total_price: Money = Field(..., alias="totalPrice")


class CatalogProduct(BaseModel):
    """
    Catalog product reference with normalized flags.

    The catalog has stored availability and offer flags under several names
    over time. They are collapsed into ``is_available`` and ``on_offer`` here.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str = ""
    price: Money = Field(default=Decimal("0"))
    category_name: str = Field(default="Uncategorized")
    is_available: bool = False
    on_offer: bool = False

    @model_validator(mode="before")
    @classmethod
    def normalize_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        document = dict(data)
        if "_id" not in document and "id" in document:
            document["_id"] = document.pop("id")

        if "isAvailable" in document:
            document["is_available"] = document.pop("isAvailable")
        elif "available" in document:
            document["is_available"] = document.pop("available")
        elif "disavailable" in document:
            document["is_available"] = not document.pop("disavailable")

        if "isOnOffer" in document:
            document["on_offer"] = document.pop("isOnOffer")
        elif "onOffer" in document:
            document["on_offer"] = document.pop("onOffer")

        category = document.pop("category", None)
        if isinstance(category, dict):
            category = category.get("name")
        if category:
            document["category_name"] = str(category)

        return document

    @field_validator("price", mode="before")
    @classmethod
    def coerce_catalog_price(cls, v: Any) -> Decimal:
        return coerce_price(v)
