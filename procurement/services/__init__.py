"""Service layer for the procurement app."""

from . import (
    approval_service,
    item_decision_service,
    notification_service,
    permissions,
    recall_service,
    request_service,
    stock_service,
    warehouse_supply_service,
)

__all__ = [
    "approval_service",
    "item_decision_service",
    "notification_service",
    "permissions",
    "recall_service",
    "request_service",
    "stock_service",
    "warehouse_supply_service",
]
