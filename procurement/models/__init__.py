from .fields import LedgerDecimalField
from .org import Department, Section, StaffProfile, Warehouse
from .recalls import BLOCKING_RECALL_STATUSES, ItemRecall, RecallStatus, RecallType
from .requests import (
    Approval,
    ApprovalRoute,
    ApprovalStatus,
    ItemApprovalStatus,
    Request,
    RequestedItem,
    RequestLog,
    RequestStatus,
    RequestType,
    WarehouseSuppliedItem,
    WarehouseSupplyItem,
)
from .stock import StockItem, WarehouseStockLevel, WarehouseStockMovement

__all__ = [
    "LedgerDecimalField",
    "Department",
    "Section",
    "Warehouse",
    "StaffProfile",
    "StockItem",
    "WarehouseStockLevel",
    "WarehouseStockMovement",
    "Request",
    "RequestType",
    "RequestStatus",
    "Approval",
    "ApprovalStatus",
    "ApprovalRoute",
    "RequestedItem",
    "ItemApprovalStatus",
    "WarehouseSupplyItem",
    "WarehouseSuppliedItem",
    "RequestLog",
    "ItemRecall",
    "RecallType",
    "RecallStatus",
    "BLOCKING_RECALL_STATUSES",
]
