"""Order status and payment method enums for order lifecycle management.

This module defines the closed set of order statuses and payment methods the
back office works with, together with the status transition tables consumed by
the transition policies in ``state_machine``.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Set, Tuple


def _normalize_token(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


class OrderStatus(str, Enum):
    """Order lifecycle status.

    ``PENDING`` is the only initial state and the only state that allows
    content edits. Every other status belongs to the fulfillment stage.
    There is no rejected status: rejecting an order deletes it.
    """

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Matching ignores case, spaces and punctuation, so ``"Out for Delivery"``,
        ``"OutForDelivery"`` and ``"out_for_delivery"`` are the same status.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            status = _STATUS_LOOKUP.get(_normalize_token(value))
            if status is not None:
                return status
        valid_values = ", ".join(s.value for s in cls)
        raise ValueError(
            f"Invalid order status: {value!r}. Valid values are: {valid_values}"
        )

    def is_pending(self) -> bool:
        return self is OrderStatus.PENDING

    def is_terminal(self) -> bool:
        """Check if status is the terminal fulfillment state.

        Returns:
            True if status is DELIVERED
        """
        return self is OrderStatus.DELIVERED

    def is_in_fulfillment(self) -> bool:
        """Check if order has left review and is being fulfilled."""
        return self in POST_PENDING_STATUSES

    @property
    def step(self) -> Optional[int]:
        """Position in the fulfillment sequence, None for PENDING."""
        try:
            return FULFILLMENT_SEQUENCE.index(self)
        except ValueError:
            return None

    @property
    def display_name(self) -> str:
        return self.value


_STATUS_LOOKUP: Dict[str, OrderStatus] = {
    _normalize_token(status.value): status for status in OrderStatus
}


class PaymentMethod(str, Enum):
    """How the customer pays for the order."""

    COD = "COD"
    ONLINE = "Online"

    @classmethod
    def from_string(cls, value: str) -> "PaymentMethod":
        """Convert string to PaymentMethod enum, case-insensitively.

        Raises:
            ValueError: If value is not a valid payment method
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for method in cls:
                if method.value.lower() == value.strip().lower():
                    return method
        valid_values = ", ".join(m.value for m in cls)
        raise ValueError(
            f"Invalid payment method: {value!r}. Valid values are: {valid_values}"
        )


# Fulfillment statuses in display order (the "order progress" indicator).
FULFILLMENT_SEQUENCE: Tuple[OrderStatus, ...] = (
    OrderStatus.CONFIRMED,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

POST_PENDING_STATUSES: FrozenSet[OrderStatus] = frozenset(FULFILLMENT_SEQUENCE)


# Permissive rules: once out of review, any fulfillment status may be set.
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED},
    **{status: set(POST_PENDING_STATUSES) for status in FULFILLMENT_SEQUENCE},
}

# Strict rules: forward one step at a time, DELIVERED is terminal.
SEQUENTIAL_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED},
    OrderStatus.CONFIRMED: {OrderStatus.PACKED},
    OrderStatus.PACKED: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus,
    transitions: Optional[Dict[OrderStatus, Set[OrderStatus]]] = None,
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status
        transitions: Transition table, defaults to the permissive rules

    Returns:
        True if transition is valid
    """
    table = ORDER_STATUS_TRANSITIONS if transitions is None else transitions
    return new in table.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus,
    transitions: Optional[Dict[OrderStatus, Set[OrderStatus]]] = None,
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status.

    Returns:
        Set of allowed next statuses (a copy, safe to mutate)
    """
    table = ORDER_STATUS_TRANSITIONS if transitions is None else transitions
    return table.get(current, set()).copy()
