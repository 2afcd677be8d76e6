"""
Order edit session.

An edit session holds a working copy of a pending order's editable fields
(client details, payment method, line items). Staff edit the copy freely; the
persisted order is untouched until the session is committed. Committing
validates the line items, cleans them, recomputes the total and hands a full
content patch to the lifecycle coordinator. A failed save keeps the working
copy so the operator can retry without re-entering anything.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import (
    ClientInfo,
    LineItem,
    LineItemPayload,
    Order,
    OrderContentPatch,
)
from orderdesk.services.orders.enums import PaymentMethod
from orderdesk.services.orders.line_items import (
    LineItemValidation,
    coerce_number,
    coerce_price,
    compute_total,
    is_catalog_reference,
    line_subtotal,
    round_money,
    validate_line_items,
)

if TYPE_CHECKING:
    from orderdesk.services.orders.service import OrderLifecycleCoordinator

logger = get_logger(__name__)

CLIENT_FIELDS = ("name", "contact", "city", "address")
LINE_ITEM_FIELDS = ("name", "price", "quantity", "product_id")
FIELD_ALIASES = {"productId": "product_id"}


class EditSessionError(Exception):
    """Base exception for edit session errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class EditNotAllowedError(EditSessionError):
    """Raised when editing an order that is not pending."""

    pass


class NoActiveSessionError(EditSessionError):
    """Raised when an edit operation runs without a started session."""

    pass


class LineItemIndexError(EditSessionError):
    """Raised when a line item index is out of range."""

    pass


class UnknownFieldError(EditSessionError):
    """Raised when writing a field the session does not know."""

    pass


@dataclass
class EditableLineItem:
    """Mutable line item inside a working set."""

    name: str = ""
    price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("1")
    product_id: Optional[str] = None

    @classmethod
    def from_line_item(cls, item: LineItem) -> "EditableLineItem":
        return cls(
            name=item.name,
            price=item.price,
            quantity=Decimal(item.quantity),
            product_id=item.product_id,
        )

    @property
    def subtotal(self) -> Decimal:
        return line_subtotal(self)

    def to_payload(self) -> LineItemPayload:
        """Trimmed name, coerced numbers, product id only if well formed."""
        return LineItemPayload(
            name=self.name.strip(),
            price=coerce_price(self.price),
            quantity=int(coerce_number(self.quantity)),
            product_id=self.product_id if is_catalog_reference(self.product_id) else None,
        )


@dataclass
class WorkingSet:
    """Uncommitted copy of an order's editable fields."""

    client: dict[str, str]
    payment_method: PaymentMethod
    products: list[EditableLineItem] = field(default_factory=list)


class OrderEditSession:
    """
    Working copy of one pending order.

    A session is exclusive to one order at a time. Starting it again on
    another order replaces the previous working set.
    """

    def __init__(self, coordinator: "OrderLifecycleCoordinator"):
        self._coordinator = coordinator
        self._order_id: Optional[str] = None
        self._working: Optional[WorkingSet] = None

    @property
    def is_active(self) -> bool:
        return self._working is not None

    @property
    def order_id(self) -> Optional[str]:
        return self._order_id

    @property
    def working_set(self) -> WorkingSet:
        return self._require_active()

    @property
    def products(self) -> list[EditableLineItem]:
        return self._require_active().products

    @property
    def total(self) -> Decimal:
        """Unrounded total of the working line items."""
        return compute_total(self._require_active().products)

    @property
    def display_total(self) -> Decimal:
        return round_money(self.total)

    def start(self, order: Order) -> None:
        """
        Snapshot a pending order's editable fields.

        Raises:
            EditNotAllowedError: If the order is not pending
        """
        if not order.status.is_pending():
            raise EditNotAllowedError(
                f"Only pending orders can be edited, order is {order.status.value}",
                order_id=order.id,
                status=order.status.value,
            )

        if self._working is not None:
            logger.info(
                "Replacing open edit session",
                previous_order_id=self._order_id,
                order_id=order.id,
            )

        self._order_id = order.id
        self._working = WorkingSet(
            client=order.client.model_dump(),
            payment_method=order.payment_method,
            products=[EditableLineItem.from_line_item(item) for item in order.products],
        )

        logger.debug(
            "Edit session started",
            order_id=order.id,
            item_count=len(self._working.products),
        )

    def set_client_field(self, field_name: str, value: Any) -> None:
        working = self._require_active()
        if field_name not in CLIENT_FIELDS:
            raise UnknownFieldError(
                f"Unknown client field: {field_name}",
                field=field_name,
                allowed=list(CLIENT_FIELDS),
            )
        working.client[field_name] = "" if value is None else str(value)

    def set_payment_method(self, value: Any) -> None:
        working = self._require_active()
        try:
            working.payment_method = PaymentMethod.from_string(value)
        except ValueError as e:
            raise UnknownFieldError(
                str(e),
                field="payment_method",
                value=value,
            ) from e

    def set_line_item(self, index: int, field_name: str, value: Any) -> None:
        """
        Write one field of one line item.

        Price and quantity are coerced to numbers on write. A blank price
        becomes zero; a blank quantity becomes zero and blocks commit.

        Raises:
            LineItemIndexError: If index is out of range
            UnknownFieldError: If field_name is not a line item field
        """
        item = self._item(index)
        field_name = FIELD_ALIASES.get(field_name, field_name)

        if field_name == "name":
            item.name = "" if value is None else str(value)
        elif field_name == "price":
            item.price = coerce_price(value)
        elif field_name == "quantity":
            item.quantity = coerce_number(value)
        elif field_name == "product_id":
            item.product_id = None if value is None else str(value)
        else:
            raise UnknownFieldError(
                f"Unknown line item field: {field_name}",
                field=field_name,
                allowed=list(LINE_ITEM_FIELDS),
            )

    def add_line_item(self) -> int:
        """Append a blank line item and return its index."""
        products = self._require_active().products
        products.append(EditableLineItem())
        return len(products) - 1

    def remove_line_item(self, index: int) -> bool:
        """
        Remove a line item unless it is the only one left.

        Returns:
            True if removed, False if it was the last remaining item

        Raises:
            LineItemIndexError: If index is out of range
        """
        self._item(index)
        products = self._require_active().products
        if len(products) <= 1:
            logger.debug(
                "Refused to remove last line item",
                order_id=self._order_id,
            )
            return False
        del products[index]
        return True

    def validate(self) -> LineItemValidation:
        return validate_line_items(self._require_active().products)

    def build_patch(self) -> OrderContentPatch:
        """
        Build the content patch for the current working set.

        The working set must be valid; call ``validate`` first.
        """
        working = self._require_active()
        return OrderContentPatch(
            client=ClientInfo(**working.client),
            payment_method=working.payment_method,
            products=[item.to_payload() for item in working.products],
            total_price=compute_total(working.products),
        )

    async def commit(self) -> LineItemValidation:
        """
        Validate and persist the working set.

        On validation failure nothing is sent and the working set is kept.
        On success the coordinator stores the patch and reloads, and the
        working set is discarded.

        Returns:
            The validation result

        Raises:
            NoActiveSessionError: If no session is open
            OrderMutationError: If persisting fails (working set is kept)
            OrderLoadError: If the edits were saved but the reload failed
                (working set is discarded)
        """
        from orderdesk.services.orders.service import OrderLoadError

        working = self._require_active()
        validation = validate_line_items(working.products)
        if not validation.ok:
            logger.info(
                "Edit session commit blocked",
                order_id=self._order_id,
                errors=validation.messages(),
            )
            return validation

        patch = self.build_patch()
        try:
            await self._coordinator.save_edits(self._order_id, patch)
        except OrderLoadError:
            logger.warning(
                "Edits saved but board reload failed",
                order_id=self._order_id,
            )
            self._discard()
            raise

        logger.info(
            "Edit session committed",
            order_id=self._order_id,
            total_price=float(patch.total_price),
        )
        self._discard()
        return validation

    def cancel(self) -> None:
        """Discard the working set without persisting."""
        if self._working is not None:
            logger.debug("Edit session cancelled", order_id=self._order_id)
        self._discard()

    def _discard(self) -> None:
        self._order_id = None
        self._working = None

    def _require_active(self) -> WorkingSet:
        if self._working is None:
            raise NoActiveSessionError("No edit session is open")
        return self._working

    def _item(self, index: int) -> EditableLineItem:
        products = self._require_active().products
        if not 0 <= index < len(products):
            raise LineItemIndexError(
                f"No line item at index {index}",
                index=index,
                item_count=len(products),
            )
        return products[index]
