"""Order execution: submission with retries, pending-order tracking, emergency exits"""

from martingrid.execution.order_gateway import (
    ExecutionStats,
    FailedOrder,
    OrderExecutionGateway,
    OrderResult,
    PendingOrder,
)

__all__ = [
    "OrderExecutionGateway",
    "OrderResult",
    "PendingOrder",
    "FailedOrder",
    "ExecutionStats",
]
