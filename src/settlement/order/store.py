"""Loading and saving orders with an optimistic revision check."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.domain import logger
from settlement.exceptions import ConcurrentOrderUpdate, OrderNotFound
from settlement.order.order import Order


class OrderStore:
    def __init__(self) -> None:
        self.repo = current_domain.repository_for(Order)

    def load(self, order_id) -> Order:
        try:
            return self.repo.get(order_id)
        except ObjectNotFoundError as exc:
            raise OrderNotFound(f"Order {order_id} not found", order_id=order_id) from exc

    def save(self, order: Order) -> Order:
        """Persist ``order`` if nobody else wrote it since it was loaded."""
        try:
            stored = self.repo.get(order.id)
        except ObjectNotFoundError:
            stored = None

        if stored is not None and stored is not order and (stored.revision or 0) != (order.revision or 0):
            logger.warning(
                "order_revision_conflict",
                order_id=str(order.id),
                loaded_revision=order.revision,
                stored_revision=stored.revision,
            )
            raise ConcurrentOrderUpdate(
                f"Order {order.id} was modified concurrently",
                order_id=str(order.id),
                loaded_revision=order.revision,
                stored_revision=stored.revision,
            )

        order.bump_revision()
        self.repo.add(order)
        return order

    def orders_for_reference(self, ref_id, target=None):
        """Orders whose own reference, or one of whose lines, points at ``ref_id``.

        With ``target``, line references are only followed on lines of that target.
        """
        found = {str(order.id): order for order in self.repo._dao.query.filter(ref_id=ref_id).all().items}
        for order in self.repo._dao.query.limit(None).all().items:
            if str(order.id) not in found and any(
                order.line_points_at(line, ref_id)
                for line in order.lines
                if target is None or line.target == target.value
            ):
                found[str(order.id)] = order
        return list(found.values())
