"""Order status transition gate.

This module implements the StatusTransitionGate, which decides whether a
requested status change or deletion is legal for an order's current status
and produces the confirmation prompt staff must accept before anything is
dispatched. The gate never applies a transition itself and never patches
local state.

The transition rule lives behind a TransitionPolicy. The default policy is
permissive: from any fulfillment status every other fulfillment status may be
set. A forward-only policy can be swapped in without touching callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Set

from orderdesk.core.logging import get_logger
from orderdesk.schemas.orders import Order
from orderdesk.services.orders.enums import (
    FULFILLMENT_SEQUENCE,
    ORDER_STATUS_TRANSITIONS,
    SEQUENTIAL_STATUS_TRANSITIONS,
    OrderStatus,
    get_allowed_order_transitions,
)

logger = get_logger(__name__)


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: Optional[OrderStatus],
        target_state: Optional[OrderStatus],
        **context: Any
    ):
        super().__init__(message)
        self.current_state = current_state
        self.target_state = target_state
        self.context = context


class InvalidStatusError(StateTransitionError):
    """Raised when a requested status is not one of the known statuses."""

    def __init__(self, value: Any, current_state: Optional[OrderStatus] = None):
        super().__init__(
            f"Unknown order status: {value!r}",
            current_state=current_state,
            target_state=None,
            requested_value=value,
            valid_values=[s.value for s in OrderStatus],
        )
        self.requested_value = value


class TransitionPolicy(Protocol):
    """Rule deciding which statuses are reachable from a given status."""

    name: str

    def allowed_targets(self, current: OrderStatus) -> Set[OrderStatus]:
        ...


class TableTransitionPolicy:
    """Transition policy backed by a static transition table."""

    name = "table"

    def __init__(self, transitions: Dict[OrderStatus, Set[OrderStatus]]):
        self.transitions = transitions

    def allowed_targets(self, current: OrderStatus) -> Set[OrderStatus]:
        return get_allowed_order_transitions(current, self.transitions)


class PermissiveTransitionPolicy(TableTransitionPolicy):
    """Any fulfillment status may be set from any fulfillment status."""

    name = "permissive"

    def __init__(self):
        super().__init__(ORDER_STATUS_TRANSITIONS)


class SequentialTransitionPolicy(TableTransitionPolicy):
    """Fulfillment moves forward one step at a time."""

    name = "sequential"

    def __init__(self):
        super().__init__(SEQUENTIAL_STATUS_TRANSITIONS)


class GateAction(str, Enum):
    """Mutations the gate can authorize."""

    CONFIRM = "confirm"
    REJECT = "reject"
    CHANGE_STATUS = "change_status"
    DELETE = "delete"


@dataclass(frozen=True)
class TransitionRequest:
    """An authorized mutation awaiting human confirmation."""

    action: GateAction
    order_id: str
    current_status: OrderStatus
    target_status: Optional[OrderStatus]
    prompt: str

    @property
    def is_deletion(self) -> bool:
        return self.target_status is None


@dataclass(frozen=True)
class ProgressStep:
    """One step of the fulfillment progress indicator."""

    status: OrderStatus
    reached: bool
    current: bool


class StatusTransitionGate:
    """Gate authorizing status changes and deletions.

    Every method either returns a TransitionRequest carrying the prompt to
    show, or raises StateTransitionError. Nothing is persisted here.
    """

    CONFIRM_PROMPT = "Are you sure you want to confirm this order?"
    REJECT_PROMPT = "Are you sure you want to reject this order?"
    CHANGE_STATUS_PROMPT = 'Are you sure you want to change status to "{status}"?'
    DELETE_PROMPT = (
        "Are you sure you want to delete Order #{number}? "
        "This action cannot be undone."
    )

    def __init__(self, policy: Optional[TransitionPolicy] = None):
        """Initialize the gate.

        Args:
            policy: Transition rule, defaults to PermissiveTransitionPolicy
        """
        self.policy = policy or PermissiveTransitionPolicy()

        logger.debug("StatusTransitionGate initialized", policy=self.policy.name)

    def parse_status(
        self,
        value: Any,
        current_state: Optional[OrderStatus] = None,
    ) -> OrderStatus:
        """Resolve a requested status value.

        Raises:
            InvalidStatusError: If value is not a known status
        """
        try:
            return OrderStatus.from_string(value)
        except ValueError:
            logger.warning(
                "Rejected unknown status",
                requested_value=str(value),
                current_status=current_state.value if current_state else None,
            )
            raise InvalidStatusError(value, current_state=current_state)

    def allowed_targets(self, current: OrderStatus) -> Set[OrderStatus]:
        return self.policy.allowed_targets(current)

    def can_transition(self, current: OrderStatus, target: OrderStatus) -> bool:
        return target in self.policy.allowed_targets(current)

    def can_edit(self, order: Order) -> bool:
        """Only pending orders accept content edits."""
        return order.status.is_pending()

    def authorize_confirm(self, order: Order) -> TransitionRequest:
        """Authorize moving a pending order to CONFIRMED.

        Raises:
            StateTransitionError: If the order is not pending
        """
        if not order.status.is_pending():
            raise StateTransitionError(
                f"Only pending orders can be confirmed, order is "
                f"{order.status.value}",
                current_state=order.status,
                target_state=OrderStatus.CONFIRMED,
                order_id=order.id,
            )
        self._validate(order, OrderStatus.CONFIRMED)
        return self._request(
            GateAction.CONFIRM, order, OrderStatus.CONFIRMED, self.CONFIRM_PROMPT
        )

    def authorize_reject(self, order: Order) -> TransitionRequest:
        """Authorize rejecting (deleting) a pending order.

        Raises:
            StateTransitionError: If the order is not pending
        """
        if not order.status.is_pending():
            raise StateTransitionError(
                f"Only pending orders can be rejected, order is "
                f"{order.status.value}",
                current_state=order.status,
                target_state=None,
                order_id=order.id,
            )
        return self._request(GateAction.REJECT, order, None, self.REJECT_PROMPT)

    def authorize_status_change(
        self,
        order: Order,
        requested_status: Any,
    ) -> TransitionRequest:
        """Authorize setting an order's status.

        Args:
            order: Order whose status changes
            requested_status: Target status, as enum or string

        Raises:
            InvalidStatusError: If requested_status is not a known status
            StateTransitionError: If the policy forbids the transition
        """
        target = self.parse_status(requested_status, current_state=order.status)
        self._validate(order, target)
        return self._request(
            GateAction.CHANGE_STATUS,
            order,
            target,
            self.CHANGE_STATUS_PROMPT.format(status=target.value),
        )

    def authorize_delete(self, order: Order) -> TransitionRequest:
        """Deletion is permitted from every status."""
        return self._request(
            GateAction.DELETE,
            order,
            None,
            self.DELETE_PROMPT.format(number=order.short_number),
        )

    def progress(self, status: OrderStatus) -> list[ProgressStep]:
        """Fulfillment progress indicator for a status.

        Steps up to and including the current status are reached. A pending
        order has reached none.
        """
        position = status.step
        return [
            ProgressStep(
                status=step_status,
                reached=position is not None and index <= position,
                current=step_status is status,
            )
            for index, step_status in enumerate(FULFILLMENT_SEQUENCE)
        ]

    def _validate(self, order: Order, target: OrderStatus) -> None:
        current = order.status
        if not self.can_transition(current, target):
            allowed = self.allowed_targets(current)
            logger.warning(
                "Invalid state transition",
                order_id=order.id,
                transition=f"{current.value}->{target.value}",
                policy=self.policy.name,
            )
            raise StateTransitionError(
                f"Invalid transition from {current.value} to {target.value}",
                current_state=current,
                target_state=target,
                order_id=order.id,
                allowed_transitions=sorted(s.value for s in allowed),
            )

    def _request(
        self,
        action: GateAction,
        order: Order,
        target: Optional[OrderStatus],
        prompt: str,
    ) -> TransitionRequest:
        logger.info(
            "Transition authorized",
            order_id=order.id,
            action=action.value,
            current_status=order.status.value,
            target_status=target.value if target else None,
        )
        return TransitionRequest(
            action=action,
            order_id=order.id,
            current_status=order.status,
            target_status=target,
            prompt=prompt,
        )
