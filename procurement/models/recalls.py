from django.conf import settings
from django.db import models

from .org import Department
from .stock import StockItem


class RecallType(models.TextChoices):
    DEPARTMENT_TO_WAREHOUSE = "department_to_warehouse", "Department to Warehouse"
    WAREHOUSE_TO_PROCUREMENT = "warehouse_to_procurement", "Warehouse to Procurement"


class RecallStatus(models.TextChoices):
    PENDING_WAREHOUSE_REVIEW = "Pending Warehouse Review", "Pending Warehouse Review"
    PENDING_PROCUREMENT_ACTION = (
        "Pending Procurement Action",
        "Pending Procurement Action",
    )
    QUARANTINED = "Quarantined - Block Issuance", "Quarantined - Block Issuance"
    REJECTED = "Rejected", "Rejected"
    CLOSED = "Closed", "Closed"


# A recall in one of these statuses with an active quarantine cannot be quarantined again.
BLOCKING_RECALL_STATUSES = (RecallStatus.QUARANTINED,)


class ItemRecall(models.Model):
    """A defective or expired lot reported for recall."""

    stock_item = models.ForeignKey(
        StockItem, models.SET_NULL, blank=True, null=True, related_name="recalls"
    )
    item_name = models.CharField(max_length=255)
    lot_number = models.CharField(max_length=100, blank=True, null=True)
    quantity = models.PositiveIntegerField(blank=True, null=True)
    reason = models.TextField()
    notes = models.TextField(blank=True, null=True)
    recall_type = models.CharField(max_length=30, choices=RecallType.choices)
    status = models.CharField(max_length=40, choices=RecallStatus.choices)
    department = models.ForeignKey(
        Department, models.SET_NULL, blank=True, null=True, related_name="recalls"
    )
    initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    escalated_to_procurement = models.BooleanField(default=False)
    escalated_at = models.DateTimeField(blank=True, null=True)
    escalated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    warehouse_notes = models.TextField(blank=True, null=True)
    quarantine_active = models.BooleanField(default=False)
    quarantine_reason = models.TextField(blank=True, null=True)
    quarantine_started_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def blocks_issuance(self) -> bool:
        return self.quarantine_active

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"Recall {self.pk}: {self.item_name} ({self.status})"

    class Meta:
        db_table = "item_recalls"
        ordering = ["-id"]
        permissions = [
            ("manage_recalls", "Can create warehouse recalls and review department recalls"),
            ("escalate_recalls", "Can escalate recalls to procurement"),
            ("quarantine_recalls", "Can quarantine recalled lots"),
        ]
        indexes = [
            models.Index(fields=["stock_item", "lot_number"], name="recall_item_lot_idx"),
            models.Index(fields=["status"], name="recall_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quarantine_active=False)
                | models.Q(quarantine_started_at__isnull=False),
                name="quarantine_has_start_time",
            ),
        ]
