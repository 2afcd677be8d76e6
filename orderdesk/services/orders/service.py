"""
Order lifecycle coordinator.

This module implements the OrderLifecycleCoordinator, which loads the order
board from the persistence gateway and dispatches staff actions (confirm,
reject, change status, delete, save edits) to it. Every status change and
deletion is authorized by the StatusTransitionGate and confirmed by a human
through the injected Confirmer before it is dispatched.

No optimistic update is ever applied: after each successful write the
after-write hook runs, which by default reloads the whole board, so the board
always reflects the last successful fetch.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from orderdesk.core.logging import get_logger, log_performance, set_action_id
from orderdesk.schemas.orders import (
    Order,
    OrderContentPatch,
    OrderStatusPatch,
)
from orderdesk.services.orders.edit_session import OrderEditSession
from orderdesk.services.orders.enums import OrderStatus
from orderdesk.services.orders.partitioner import (
    OrderBoard,
    TerminalPredicate,
    is_completed,
)
from orderdesk.services.orders.repository import (
    OrderGateway,
    OrderGatewayError,
    OrderNotFoundError,
)
from orderdesk.services.orders.state_machine import (
    StateTransitionError,
    StatusTransitionGate,
    TransitionRequest,
)

logger = get_logger(__name__)

AfterWriteHook = Callable[[], Awaitable[Any]]


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderLoadError(OrderServiceError):
    """Raised when the order board cannot be loaded."""

    pass


class OrderMutationError(OrderServiceError):
    """Raised when a confirmed action fails to persist."""

    pass


class Confirmer(Protocol):
    """Human confirmation capability."""

    def confirm(self, prompt: str) -> bool:
        ...


class AlwaysConfirm:
    """Confirmer that accepts every prompt and remembers them."""

    def __init__(self):
        self.prompts: list[str] = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return True


class NeverConfirm:
    """Confirmer that declines every prompt and remembers them."""

    def __init__(self):
        self.prompts: list[str] = []

    def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return False


class OrderLifecycleCoordinator:
    """
    Coordinator for the back-office order workflow.

    Attributes:
        gateway: Persistence gateway for orders
        confirmer: Human confirmation capability
        gate: Status transition gate
    """

    def __init__(
        self,
        gateway: OrderGateway,
        confirmer: Confirmer,
        gate: Optional[StatusTransitionGate] = None,
        after_write: Optional[AfterWriteHook] = None,
        is_terminal: TerminalPredicate = is_completed,
    ):
        """
        Initialize the coordinator.

        Args:
            gateway: Persistence gateway
            confirmer: Confirmation capability asked before each mutation
            gate: Optional transition gate, defaults to the permissive gate
            after_write: Hook run after every successful write, defaults to
                a full reload of the board
            is_terminal: Predicate selecting completed orders
        """
        self.gateway = gateway
        self.confirmer = confirmer
        self.gate = gate or StatusTransitionGate()
        self._after_write = after_write or self.load_all
        self._is_terminal = is_terminal
        self._board = OrderBoard()
        self._load_error: Optional[BaseException] = None

        logger.info(
            "OrderLifecycleCoordinator initialized",
            policy=self.gate.policy.name,
            custom_after_write=after_write is not None,
        )

    @property
    def board(self) -> OrderBoard:
        return self._board

    @property
    def load_error(self) -> Optional[BaseException]:
        """Failure of the most recent load, None if it succeeded."""
        return self._load_error

    async def load_all(self) -> OrderBoard:
        """
        Fetch pending and confirmed orders concurrently and rebuild the board.

        Both fetches always run to completion. If either fails the previous
        board is kept untouched.

        Returns:
            The new board

        Raises:
            OrderLoadError: If either fetch fails
        """
        with log_performance(logger, "load_orders"):
            results = await asyncio.gather(
                self.gateway.fetch_pending_orders(),
                self.gateway.fetch_confirmed_orders(),
                return_exceptions=True,
            )

            for result in results:
                if isinstance(result, BaseException) and not isinstance(
                    result, Exception
                ):
                    raise result

            failures = {
                name: result
                for name, result in zip(("pending", "confirmed"), results)
                if isinstance(result, Exception)
            }
            if failures:
                first_error = next(iter(failures.values()))
                self._load_error = first_error
                logger.error(
                    "Failed to load orders",
                    failed_fetches=sorted(failures),
                    errors={name: str(e) for name, e in failures.items()},
                )
                raise OrderLoadError(
                    "Failed to load orders",
                    failed_fetches=sorted(failures),
                    error=str(first_error),
                ) from first_error

            pending, confirmed = results
            self._board = OrderBoard.from_collections(
                pending,
                confirmed,
                loaded_at=datetime.now(timezone.utc),
                is_terminal=self._is_terminal,
            )
            self._load_error = None

        logger.info("Orders loaded", **self._board.counts())
        return self._board

    async def confirm(self, order_id: str) -> bool:
        """
        Confirm a pending order.

        Returns:
            True if dispatched, False if the operator declined

        Raises:
            OrderNotFoundError: If the order is not on the board
            StateTransitionError: If the order is not pending
            OrderMutationError: If the update fails
        """
        set_action_id()
        order = self._require_order(order_id)
        request = self.gate.authorize_confirm(order)
        return await self._dispatch(
            request,
            lambda: self.gateway.update_order(
                order_id, OrderStatusPatch(status=OrderStatus.CONFIRMED)
            ),
        )

    async def reject(self, order_id: str) -> bool:
        """
        Reject a pending order by deleting it.

        Returns:
            True if dispatched, False if the operator declined
        """
        set_action_id()
        order = self._require_order(order_id)
        request = self.gate.authorize_reject(order)
        return await self._dispatch(
            request, lambda: self.gateway.delete_order(order_id)
        )

    async def delete(self, order_id: str) -> bool:
        """
        Delete an order in any status.

        Returns:
            True if dispatched, False if the operator declined
        """
        set_action_id()
        order = self._require_order(order_id)
        request = self.gate.authorize_delete(order)
        return await self._dispatch(
            request, lambda: self.gateway.delete_order(order_id)
        )

    async def change_status(self, order_id: str, new_status: Any) -> bool:
        """
        Set an order's status.

        Args:
            order_id: Order identifier
            new_status: Target status, as enum or string

        Returns:
            True if dispatched, False if the operator declined

        Raises:
            InvalidStatusError: If new_status is not a known status
            StateTransitionError: If the transition is not allowed
            OrderMutationError: If the update fails
        """
        set_action_id()
        order = self._require_order(order_id)
        request = self.gate.authorize_status_change(order, new_status)
        target = request.target_status
        return await self._dispatch(
            request,
            lambda: self.gateway.update_order(
                order_id, OrderStatusPatch(status=target)
            ),
        )

    async def save_edits(
        self, order_id: str, patch: OrderContentPatch
    ) -> Optional[Order]:
        """
        Persist a committed edit session.

        On failure nothing is reloaded and the error propagates, so the caller
        keeps its working copy for a retry.

        Returns:
            The order as stored by the backend, or None when the backend
            only acknowledged the write

        Raises:
            OrderNotFoundError: If the order is not on the board or backend
            StateTransitionError: If the order is no longer pending
            OrderMutationError: If the update fails
            OrderLoadError: If the update landed but the reload failed
        """
        set_action_id()
        order = self._require_order(order_id)
        if not self.gate.can_edit(order):
            raise StateTransitionError(
                f"Only pending orders can be edited, order is {order.status.value}",
                current_state=order.status,
                target_state=None,
                order_id=order_id,
            )

        logger.info(
            "Saving order edits",
            order_id=order_id,
            item_count=len(patch.products),
            total_price=float(patch.total_price),
        )

        try:
            updated = await self.gateway.update_order(order_id, patch)
        except OrderNotFoundError:
            raise
        except OrderGatewayError as e:
            logger.error(
                "Failed to save order edits",
                order_id=order_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OrderMutationError(
                "Failed to update order",
                order_id=order_id,
                error=str(e),
            ) from e

        logger.info("Order edits saved", order_id=order_id)
        await self._after_write()
        return updated

    def open_edit_session(self, order_id: str) -> OrderEditSession:
        """
        Start an edit session on a pending order from the board.

        Raises:
            OrderNotFoundError: If the order is not on the board
            EditNotAllowedError: If the order is not pending
        """
        session = OrderEditSession(self)
        session.start(self._require_order(order_id))
        return session

    def _require_order(self, order_id: str) -> Order:
        order = self._board.find(order_id)
        if order is None:
            logger.warning("Order not on board", order_id=order_id)
            raise OrderNotFoundError(
                "Order not found",
                order_id=order_id,
            )
        return order

    async def _dispatch(
        self,
        request: TransitionRequest,
        operation: Callable[[], Awaitable[Any]],
    ) -> bool:
        if not self.confirmer.confirm(request.prompt):
            logger.info(
                "Action declined by operator",
                order_id=request.order_id,
                action=request.action.value,
            )
            return False

        try:
            await operation()
        except OrderNotFoundError:
            raise
        except OrderGatewayError as e:
            logger.error(
                "Order action failed",
                order_id=request.order_id,
                action=request.action.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OrderMutationError(
                f"Failed to {request.action.value.replace('_', ' ')} order",
                order_id=request.order_id,
                action=request.action.value,
                error=str(e),
            ) from e

        logger.info(
            "Order action applied",
            order_id=request.order_id,
            action=request.action.value,
            transition=(
                f"{request.current_status.value}->{request.target_status.value}"
                if request.target_status
                else f"{request.current_status.value}->deleted"
            ),
        )
        await self._after_write()
        return True
