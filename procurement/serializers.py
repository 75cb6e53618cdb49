from rest_framework import serializers

from .models import (
    Approval,
    ItemRecall,
    Request,
    RequestedItem,
    RequestLog,
    WarehouseStockLevel,
    WarehouseStockMovement,
    WarehouseSupplyItem,
)


class WarehouseStockLevelSerializer(serializers.ModelSerializer):
    """Current balance of one item in one warehouse."""

    warehouse_name = serializers.CharField(source="warehouse.name", read_only=True)

    class Meta:
        model = WarehouseStockLevel
        fields = [
            "id",
            "warehouse",
            "warehouse_name",
            "stock_item",
            "item_name",
            "quantity",
            "updated_by",
            "updated_at",
        ]


class WarehouseStockMovementSerializer(serializers.ModelSerializer):
    class Meta:
        model = WarehouseStockMovement
        fields = [
            "id",
            "warehouse",
            "stock_item",
            "item_name",
            "direction",
            "quantity",
            "reference_request",
            "to_department",
            "to_section",
            "notes",
            "created_by",
            "created_at",
        ]


class ApprovalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Approval
        fields = [
            "id",
            "approver",
            "approval_level",
            "status",
            "is_active",
            "is_urgent",
            "comments",
            "approved_at",
            "route_role",
        ]


class RequestedItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = RequestedItem
        fields = [
            "id",
            "item_name",
            "brand",
            "quantity",
            "available_quantity",
            "purchased_quantity",
            "unit_cost",
            "total_cost",
            "approval_status",
            "approval_comments",
            "approved_by",
            "approved_at",
            "is_received",
        ]


class WarehouseSupplyItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = WarehouseSupplyItem
        fields = ["id", "stock_item", "item_name", "quantity"]


class RequestLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = RequestLog
        fields = ["id", "action", "actor", "comments", "created_at"]


class RequestSerializer(serializers.ModelSerializer):
    """Request with its approval chain and line items."""

    department_name = serializers.CharField(source="department.name", read_only=True)
    approvals = ApprovalSerializer(many=True, read_only=True)
    items = RequestedItemSerializer(many=True, read_only=True)
    warehouse_items = WarehouseSupplyItemSerializer(many=True, read_only=True)

    class Meta:
        model = Request
        fields = [
            "id",
            "request_type",
            "status",
            "is_urgent",
            "requester",
            "assigned_to",
            "department",
            "department_name",
            "section",
            "supply_warehouse",
            "justification",
            "estimated_cost",
            "created_at",
            "updated_at",
            "completed_at",
            "approvals",
            "items",
            "warehouse_items",
        ]


class ItemRecallSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(
        source="department.name", read_only=True, default=None
    )

    class Meta:
        model = ItemRecall
        fields = [
            "id",
            "stock_item",
            "item_name",
            "lot_number",
            "quantity",
            "reason",
            "notes",
            "recall_type",
            "status",
            "department",
            "department_name",
            "initiated_by",
            "escalated_to_procurement",
            "escalated_at",
            "escalated_by",
            "warehouse_notes",
            "quarantine_active",
            "quarantine_reason",
            "quarantine_started_at",
            "created_at",
            "updated_at",
        ]
