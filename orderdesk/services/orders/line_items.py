"""
Line item validation and order total calculation.

Pure functions shared by the edit session and the order schemas: numeric
coercion for free-form input, line item validation, and money totals. Totals
are computed exactly with Decimal; rounding to two places happens only for
display so repeated edits never compound rounding error.
"""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Protocol, Sequence

ZERO = Decimal("0")
CENT = Decimal("0.01")
DEFAULT_CURRENCY = "Rs"

# Catalog product identifiers are 24-character hex object ids.
CATALOG_ID_PATTERN = re.compile(r"[0-9a-fA-F]{24}")


class PricedItem(Protocol):
    """Anything with a name, a unit price and a quantity."""

    name: Any
    price: Any
    quantity: Any


@dataclass(frozen=True)
class LineItemError:
    """A single validation failure.

    Attributes:
        index: Position of the offending line item, None for collection errors
        field: Field that failed validation
        message: Human readable reason
    """

    index: Optional[int]
    field: str
    message: str


@dataclass
class LineItemValidation:
    """Outcome of validating a line item collection."""

    errors: list[LineItemError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def messages(self) -> list[str]:
        return [
            error.message if error.index is None
            else f"Item {error.index + 1}: {error.message}"
            for error in self.errors
        ]

    def for_index(self, index: int) -> list[LineItemError]:
        return [error for error in self.errors if error.index == index]


def coerce_number(value: Any) -> Decimal:
    """
    Coerce free-form numeric input to a Decimal.

    Blank strings, None, non-numeric text, NaN and infinities all become zero.

    Example:
        >>> coerce_number(" 12.50 ")
        Decimal('12.50')
        >>> coerce_number("")
        Decimal('0')
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return ZERO
        try:
            number = Decimal(stripped)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not number.is_finite():
        return ZERO
    return number


def coerce_price(value: Any) -> Decimal:
    """Coerce a unit price; missing and negative prices become zero."""
    price = coerce_number(value)
    return price if price > ZERO else ZERO


def is_catalog_reference(value: Any) -> bool:
    """Check whether value is a well-formed catalog product identifier."""
    return isinstance(value, str) and CATALOG_ID_PATTERN.fullmatch(value) is not None


def line_subtotal(item: PricedItem) -> Decimal:
    return coerce_price(item.price) * coerce_number(item.quantity)


def compute_total(items: Iterable[PricedItem]) -> Decimal:
    """
    Sum price x quantity over the line items.

    The result is unrounded; use ``round_money`` for display.

    Example:
        >>> compute_total([LineItem(name="Rice", price=200, quantity=2)])
        Decimal('400')
    """
    return sum((line_subtotal(item) for item in items), ZERO)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def display_total(items: Iterable[PricedItem]) -> Decimal:
    """Order total rounded to two decimal places."""
    return round_money(compute_total(items))


def format_money(value: Decimal, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{currency} {round_money(value):.2f}"


def validate_line_items(items: Sequence[PricedItem]) -> LineItemValidation:
    """
    Validate a line item collection before it is committed.

    A collection is invalid when it is empty, or when any item has a blank
    name or a quantity that is not a whole number of at least one. Prices are
    never a cause of failure.

    Args:
        items: Line items in display order

    Returns:
        LineItemValidation with one error per failed field
    """
    result = LineItemValidation()

    if not items:
        result.errors.append(
            LineItemError(None, "products", "Order must contain at least one item")
        )
        return result

    for index, item in enumerate(items):
        name = item.name if isinstance(item.name, str) else ""
        if not name.strip():
            result.errors.append(
                LineItemError(index, "name", "Product name is required")
            )

        quantity = coerce_number(item.quantity)
        if quantity <= ZERO:
            result.errors.append(
                LineItemError(index, "quantity", "Quantity must be greater than 0")
            )
        elif quantity != quantity.to_integral_value():
            result.errors.append(
                LineItemError(index, "quantity", "Quantity must be a whole number")
            )

    return result
