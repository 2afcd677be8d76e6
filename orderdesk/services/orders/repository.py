"""
Order persistence gateway.

This module defines the OrderGateway protocol the lifecycle coordinator
depends on, and HttpOrderGateway, its implementation against the order REST
backend using httpx. Transport failures and error responses are translated
into OrderGatewayError subclasses with structured context; no retries are
attempted here.
"""

from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from orderdesk.core.config import Settings, get_settings
from orderdesk.core.logging import get_logger
from orderdesk.core.security import SessionTokenStore
from orderdesk.schemas.orders import Order, OrderPatch

logger = get_logger(__name__)


class OrderGatewayError(Exception):
    """Base exception for order gateway errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderGatewayTransportError(OrderGatewayError):
    """Raised when the backend cannot be reached or times out."""

    pass


class OrderGatewayResponseError(OrderGatewayError):
    """Raised when the backend answers with an error or a malformed body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class OrderNotFoundError(OrderGatewayError):
    """Raised when order is not found."""

    pass


@runtime_checkable
class OrderGateway(Protocol):
    """Persistence operations the order core consumes."""

    async def fetch_pending_orders(self) -> list[Order]:
        ...

    async def fetch_confirmed_orders(self) -> list[Order]:
        ...

    async def update_order(
        self, order_id: str, patch: OrderPatch
    ) -> Optional[Order]:
        ...

    async def delete_order(self, order_id: str) -> None:
        ...


class HttpOrderGateway:
    """
    Order gateway backed by the admin REST API.

    Attributes:
        PENDING_PATH: Listing of orders awaiting review
        CONFIRMED_PATH: Listing of orders that left review
        ORDER_PATH: Single order resource
    """

    PENDING_PATH = "/admin/orders/pending"
    CONFIRMED_PATH = "/admin/orders/confirmed"
    ORDER_PATH = "/admin/orders/{order_id}"

    def __init__(
        self,
        token_store: SessionTokenStore,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the gateway.

        Args:
            token_store: Session token holder supplying the bearer token
            client: Optional preconfigured httpx client (owned by the caller)
            settings: Optional settings, defaults to the cached settings
        """
        self.token_store = token_store
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout_seconds,
        )

        logger.info(
            "HttpOrderGateway initialized",
            base_url=str(self._client.base_url),
            owns_client=self._owns_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpOrderGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def fetch_pending_orders(self) -> list[Order]:
        body = await self._request("GET", self.PENDING_PATH)
        return self._parse_order_list(body, self.PENDING_PATH)

    async def fetch_confirmed_orders(self) -> list[Order]:
        body = await self._request("GET", self.CONFIRMED_PATH)
        return self._parse_order_list(body, self.CONFIRMED_PATH)

    async def update_order(
        self, order_id: str, patch: OrderPatch
    ) -> Optional[Order]:
        """
        Apply a patch to an order.

        A 2xx answer is a successful write whatever its body. The body is only
        parsed when it carries an order document, directly or under ``data``.

        Args:
            order_id: Order identifier
            patch: Status-only or full content patch

        Returns:
            The order as stored after the update, or None when the backend
            only acknowledged the write

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderGatewayResponseError: If the returned order is malformed
            OrderGatewayError: If the request fails
        """
        path = self.ORDER_PATH.format(order_id=order_id)
        payload = patch.to_payload()

        logger.info(
            "Updating order",
            order_id=order_id,
            patch_type=type(patch).__name__,
            fields=sorted(payload),
        )

        body = await self._request("PUT", path, json=payload, order_id=order_id)
        document = body.get("data", body) if isinstance(body, dict) else body
        if not self._is_order_document(document):
            logger.debug(
                "Order update acknowledged without a document",
                order_id=order_id,
                response_type=type(body).__name__,
            )
            return None

        try:
            return Order.model_validate(document)
        except ValidationError as e:
            raise OrderGatewayResponseError(
                "Malformed order in update response",
                path=path,
                order_id=order_id,
                error=str(e),
            ) from e

    async def delete_order(self, order_id: str) -> None:
        """
        Delete an order.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderGatewayError: If the request fails
        """
        path = self.ORDER_PATH.format(order_id=order_id)
        logger.info("Deleting order", order_id=order_id)
        await self._request("DELETE", path, order_id=order_id)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        order_id: Optional[str] = None,
    ) -> Any:
        if self.token_store.is_authenticated and self.token_store.is_expired():
            logger.warning("Session token expired", path=path)

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                headers=self.token_store.authorization_header(),
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Order backend request timed out",
                method=method,
                path=path,
                error=str(e),
            )
            raise OrderGatewayTransportError(
                "Request to order backend timed out",
                method=method,
                path=path,
                error=str(e),
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Order backend unreachable",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OrderGatewayTransportError(
                "Order backend unreachable",
                method=method,
                path=path,
                error=str(e),
            ) from e

        logger.debug(
            "Order backend responded",
            method=method,
            path=path,
            status_code=response.status_code,
        )

        if response.status_code == httpx.codes.NOT_FOUND and order_id is not None:
            raise OrderNotFoundError(
                "Order not found",
                order_id=order_id,
            )

        if response.is_error:
            detail = self._error_detail(response)
            logger.error(
                "Order backend returned an error",
                method=method,
                path=path,
                status_code=response.status_code,
                detail=detail,
            )
            raise OrderGatewayResponseError(
                f"Order backend returned {response.status_code}",
                status_code=response.status_code,
                method=method,
                path=path,
                detail=detail,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise OrderGatewayResponseError(
                "Order backend returned malformed JSON",
                status_code=response.status_code,
                method=method,
                path=path,
            ) from e

    def _parse_order_list(self, body: Any, path: str) -> list[Order]:
        documents = body.get("data") if isinstance(body, dict) else body
        if not documents:
            return []
        if not isinstance(documents, list):
            raise OrderGatewayResponseError(
                "Expected a list of orders",
                path=path,
                received=type(documents).__name__,
            )

        try:
            orders = [Order.model_validate(document) for document in documents]
        except ValidationError as e:
            raise OrderGatewayResponseError(
                "Malformed order in listing",
                path=path,
                error=str(e),
            ) from e

        logger.debug("Orders fetched", path=path, count=len(orders))
        return orders

    @staticmethod
    def _is_order_document(document: Any) -> bool:
        return isinstance(document, dict) and (
            "_id" in document or "id" in document
        )

    @staticmethod
    def _error_detail(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            return body.get("message") or body.get("error")
        return None
