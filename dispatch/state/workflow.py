"""Order status state machine."""

from dispatch.models.order import OrderStatus


class OrderTransitions:
    """Valid order status transitions."""

    TRANSITIONS = {
        OrderStatus.NEW: [
            OrderStatus.ASSIGNED,
            OrderStatus.CANCELLED,
            OrderStatus.ARCHIVED,
        ],
        OrderStatus.ASSIGNED: [
            OrderStatus.PICKEDUP,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.ARCHIVED,
        ],
        OrderStatus.PICKEDUP: [
            OrderStatus.ARRIVED,
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.ARCHIVED,
        ],
        OrderStatus.ARRIVED: [
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.ARCHIVED,
        ],
        OrderStatus.COMPLETED: [OrderStatus.ARCHIVED],
        OrderStatus.CANCELLED: [OrderStatus.ARCHIVED],
        OrderStatus.ARCHIVED: [],
    }

    # Proximity-triggered arrival may skip the pickup step
    AUTO_ARRIVAL_FROM = (OrderStatus.NEW, OrderStatus.ASSIGNED, OrderStatus.PICKEDUP)

    @classmethod
    def can_transition(cls, from_state: OrderStatus, to_state: OrderStatus) -> bool:
        """Check if a state transition is valid."""
        return to_state in cls.TRANSITIONS.get(from_state, [])

    @classmethod
    def can_auto_arrive(cls, from_state: OrderStatus) -> bool:
        return from_state in cls.AUTO_ARRIVAL_FROM
