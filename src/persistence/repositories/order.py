from typing import Optional

from persistence.core.logging import get_logger
from persistence.models.order import Order, OrderStatusEnum
from persistence.repositories.base import BaseRepository
from persistence.repositories.exceptions import InvalidArgumentError
from persistence.repositories.filters import Filter, eq
from persistence.repositories.pagination import PaginatedResult, PaginationParams

logger = get_logger(__name__)

# Statuses an order never leaves, keyed to the transitions still allowed
TERMINAL_STATUSES: dict[OrderStatusEnum, frozenset[OrderStatusEnum]] = {
    OrderStatusEnum.COMPLETED: frozenset({OrderStatusEnum.REFUNDED}),
    OrderStatusEnum.CANCELLED: frozenset(),
    OrderStatusEnum.REFUNDED: frozenset(),
    OrderStatusEnum.FAILED: frozenset(),
}

VERB_STATUS_CHANGED = "status_changed"


class OrderRepository:
    """Repository for Order entities using composition pattern.

    Standard operations are delegated to BaseRepository[Order]; order-specific
    lookups and the status transition are built on top of them.
    """

    def __init__(self, base_repo: BaseRepository[Order] | None = None) -> None:
        """Initialize OrderRepository.

        Args:
            base_repo: Preconfigured base repository (default: one wired to
                the process-wide store, cache and emitter)
        """
        # COMPOSITION: Inject BaseRepository as dependency, not inheritance
        self._base_repo = base_repo or BaseRepository(Order)
        self._logger = get_logger(f"{__name__}.OrderRepository")

    # ========================================================================
    # DELEGATED CRUD METHODS
    # ========================================================================

    async def create(self, order: Order) -> Order:
        """Create a new order.

        Raises:
            ConflictError: If the insert conflicts with existing data
            RepositoryError: For other persistence errors
        """
        return await self._base_repo.create(order)

    async def get(self, order_id: str) -> Optional[Order]:
        """Get a live order by id, or None."""
        return await self._base_repo.get(order_id)

    async def get_or_raise(self, order_id: str) -> Order:
        """Get a live order by id.

        Raises:
            NotFoundError: If the order does not exist or is deleted
        """
        return await self._base_repo.get_or_raise(order_id)

    async def list(
        self,
        filter: Filter | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Order]:
        return await self._base_repo.list(filter=filter, pagination=pagination)

    async def update(self, order: Order) -> Order:
        """Replace a live order.

        Raises:
            NotFoundError: If the order does not exist or is deleted
        """
        return await self._base_repo.update(order)

    async def delete(self, order_id: str) -> bool:
        return await self._base_repo.delete(order_id)

    async def count(self, filter: Filter | None = None) -> int:
        return await self._base_repo.count(filter)

    # ========================================================================
    # CUSTOM ORDER METHODS
    # ========================================================================

    async def get_by_order_number(self, order_number: int) -> Optional[Order]:
        """Get the first live order with the given order number.

        Args:
            order_number: Store-facing order number

        Returns:
            Order instance or None if not found
        """
        self._logger.debug("Getting order by number", order_number=order_number)
        page = await self._base_repo.list(
            filter=[eq("orderNumber", order_number)],
            pagination=PaginationParams(first=1),
        )
        return page.items[0] if page.items else None

    async def list_for_customer(
        self,
        customer_id: str,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResult[Order]:
        """List a customer's live orders, oldest first."""
        return await self._base_repo.list(
            filter=[eq("customerID", customer_id)],
            pagination=pagination,
        )

    async def transition_status(self, order_id: str, status: OrderStatusEnum) -> Order:
        """Move an order to a new status and publish ``order.status_changed``.

        Transitioning to the current status is a no-op and publishes nothing.

        Args:
            order_id: Order id
            status: Target status

        Returns:
            The order as stored after the transition

        Raises:
            NotFoundError: If the order does not exist or is deleted
            InvalidArgumentError: If the order is in a terminal status that
                does not allow the target status
        """
        status = OrderStatusEnum(status)
        order = await self._base_repo.get_or_raise(order_id)
        previous = order.order_status
        if previous == status:
            return order

        allowed = TERMINAL_STATUSES.get(previous)
        if allowed is not None and status not in allowed:
            raise InvalidArgumentError(
                f"Order {order.id} cannot move from {previous.value} to {status.value}"
            )

        updated = await self._base_repo.update(order.model_copy(update={"order_status": status}))

        self._logger.info(
            "Order status changed",
            order_id=updated.id,
            previous_status=previous.value,
            order_status=status.value,
        )
        self._base_repo.publish(
            VERB_STATUS_CHANGED,
            {
                "orderId": updated.id,
                "previousStatus": previous.value,
                "orderStatus": status.value,
            },
        )
        return updated
