from decimal import Decimal

from django.conf import settings
from django.db import models

from .fields import LedgerDecimalField
from .org import Department, Section, Warehouse


class StockItem(models.Model):
    """A catalog item whose physical balances live in warehouse ledgers."""

    name = models.CharField(max_length=255, unique=True)
    unit = models.CharField(max_length=50, blank=True, default="")
    # Sum of all warehouse balances, recomputed after every ledger mutation.
    available_quantity = LedgerDecimalField(default=Decimal("0"))
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return self.name

    class Meta:
        db_table = "stock_items"
        ordering = ["name"]


class WarehouseStockLevel(models.Model):
    """Authoritative balance of one stock item inside one warehouse."""

    warehouse = models.ForeignKey(
        Warehouse, models.PROTECT, related_name="stock_levels"
    )
    stock_item = models.ForeignKey(
        StockItem, models.PROTECT, related_name="stock_levels"
    )
    item_name = models.CharField(max_length=255)
    quantity = LedgerDecimalField(default=Decimal("0"))
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.warehouse} - {self.item_name}: {self.quantity}"

    class Meta:
        db_table = "warehouse_stock_levels"
        permissions = [
            ("manage_warehouse_stock", "Can add and issue warehouse stock"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["warehouse", "stock_item"], name="uniq_stock_level_per_item"
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0), name="stock_level_non_negative"
            ),
        ]


class WarehouseStockMovement(models.Model):
    """Append-only ledger entry for one increment or decrement of a balance."""

    DIRECTION_IN = "in"
    DIRECTION_OUT = "out"
    DIRECTION_CHOICES = [(DIRECTION_IN, "In"), (DIRECTION_OUT, "Out")]

    warehouse = models.ForeignKey(
        Warehouse, models.PROTECT, related_name="stock_movements"
    )
    stock_item = models.ForeignKey(
        StockItem, models.PROTECT, related_name="stock_movements"
    )
    item_name = models.CharField(max_length=255)
    direction = models.CharField(max_length=3, choices=DIRECTION_CHOICES)
    quantity = LedgerDecimalField()
    reference_request = models.ForeignKey(
        "procurement.Request",
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="stock_movements",
    )
    to_department = models.ForeignKey(
        Department, models.SET_NULL, blank=True, null=True, related_name="+"
    )
    to_section = models.ForeignKey(
        Section, models.SET_NULL, blank=True, null=True, related_name="+"
    )
    notes = models.TextField(blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Stock movements are write-once")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Stock movements cannot be deleted")

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.direction} {self.quantity} {self.item_name} @ {self.warehouse}"

    class Meta:
        db_table = "warehouse_stock_movements"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["warehouse", "stock_item"], name="stock_mv_wh_item_idx"),
            models.Index(
                fields=["direction", "created_at"], name="stock_mv_dir_created_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0), name="movement_quantity_positive"
            ),
        ]
