"""
Order board derivation.

The backend returns two collections: pending orders, and every order that has
left review. The board view splits the second one into orders still being
fulfilled and delivered ones. The split is recomputed from scratch on every
fetch and holds no state of its own.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import Order

logger = get_logger(__name__)

TerminalPredicate = Callable[[Order], bool]


def is_completed(order: Order) -> bool:
    return order.status.is_terminal()


@dataclass(frozen=True)
class OrderBuckets:
    """Non-pending orders split by the terminal predicate."""

    in_progress: tuple[Order, ...] = ()
    completed: tuple[Order, ...] = ()

    @property
    def completed_revenue(self) -> Decimal:
        return sum((order.total_price for order in self.completed), Decimal("0"))


def partition_orders(
    orders: Iterable[Order],
    is_terminal: TerminalPredicate = is_completed,
) -> OrderBuckets:
    """
    Split non-pending orders into in-progress and completed.

    Input order is preserved within each bucket. Pending orders do not belong
    to either bucket and are dropped.

    Args:
        orders: Orders whose status is not PENDING
        is_terminal: Predicate selecting completed orders

    Returns:
        OrderBuckets with both views
    """
    in_progress: list[Order] = []
    completed: list[Order] = []

    for order in orders:
        if order.status.is_pending():
            logger.warning(
                "Pending order in fulfillment collection ignored",
                order_id=order.id,
            )
            continue
        if is_terminal(order):
            completed.append(order)
        else:
            in_progress.append(order)

    return OrderBuckets(in_progress=tuple(in_progress), completed=tuple(completed))


@dataclass(frozen=True)
class OrderBoard:
    """Snapshot of every order bucket as of the last successful load."""

    pending: tuple[Order, ...] = ()
    in_progress: tuple[Order, ...] = ()
    completed: tuple[Order, ...] = ()
    loaded_at: Optional[datetime] = None

    @classmethod
    def from_collections(
        cls,
        pending: Iterable[Order],
        confirmed: Iterable[Order],
        loaded_at: Optional[datetime] = None,
        is_terminal: TerminalPredicate = is_completed,
    ) -> "OrderBoard":
        buckets = partition_orders(confirmed, is_terminal=is_terminal)
        return cls(
            pending=tuple(pending),
            in_progress=buckets.in_progress,
            completed=buckets.completed,
            loaded_at=loaded_at,
        )

    @property
    def is_loaded(self) -> bool:
        return self.loaded_at is not None

    @property
    def completed_revenue(self) -> Decimal:
        return OrderBuckets(self.in_progress, self.completed).completed_revenue

    def counts(self) -> dict[str, int]:
        """Tab counters."""
        return {
            "pending": len(self.pending),
            "in_progress": len(self.in_progress),
            "completed": len(self.completed),
        }

    def all_orders(self) -> tuple[Order, ...]:
        return self.pending + self.in_progress + self.completed

    def find(self, order_id: str) -> Optional[Order]:
        for order in self.all_orders():
            if order.id == order_id:
                return order
        return None
