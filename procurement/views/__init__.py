from .api import (
    ApprovalViewSet,
    ItemRecallViewSet,
    RequestViewSet,
    WarehouseStockLevelViewSet,
    WarehouseStockMovementViewSet,
)

__all__ = [
    "RequestViewSet",
    "ApprovalViewSet",
    "WarehouseStockLevelViewSet",
    "WarehouseStockMovementViewSet",
    "ItemRecallViewSet",
]
