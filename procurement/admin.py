from django.contrib import admin

from .models import (
    Approval,
    ApprovalRoute,
    Department,
    ItemRecall,
    Request,
    RequestedItem,
    RequestLog,
    Section,
    StaffProfile,
    StockItem,
    Warehouse,
    WarehouseStockLevel,
    WarehouseStockMovement,
    WarehouseSuppliedItem,
    WarehouseSupplyItem,
)


for model in [
    Department,
    Section,
    Warehouse,
    StaffProfile,
    StockItem,
    WarehouseStockLevel,
    Request,
    Approval,
    ApprovalRoute,
    RequestedItem,
    WarehouseSupplyItem,
    WarehouseSuppliedItem,
    RequestLog,
    ItemRecall,
]:
    admin.site.register(model)


@admin.register(WarehouseStockMovement)
class WarehouseStockMovementAdmin(admin.ModelAdmin):
    """Movements are write-once; the admin only lists them."""

    list_display = ("created_at", "warehouse", "item_name", "direction", "quantity")
    list_filter = ("direction", "warehouse")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
