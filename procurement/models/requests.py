from decimal import Decimal

from django.conf import settings
from django.db import models

from .fields import LedgerDecimalField
from .org import Department, Section, Warehouse
from .stock import StockItem


class RequestType(models.TextChoices):
    STOCK_SUPPLY = "Stock", "Stock Supply"
    NON_STOCK = "Non-Stock", "Non-Stock"
    MAINTENANCE = "Maintenance", "Maintenance"
    WAREHOUSE_SUPPLY = "Warehouse Supply", "Warehouse Supply"
    MEDICAL_DEVICE = "Medical Device", "Medical Device"
    MEDICATION = "Medication", "Medication"
    IT_ITEM = "IT Item", "IT Item"


class RequestStatus(models.TextChoices):
    SUBMITTED = "Submitted", "Submitted"
    PENDING = "Pending", "Pending"
    ON_HOLD = "On Hold", "On Hold"
    APPROVED = "Approved", "Approved"
    REJECTED = "Rejected", "Rejected"
    COMPLETED = "Completed", "Completed"


class ApprovalStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    ON_HOLD = "On Hold", "On Hold"
    APPROVED = "Approved", "Approved"
    REJECTED = "Rejected", "Rejected"


class ItemApprovalStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    APPROVED = "Approved", "Approved"
    REJECTED = "Rejected", "Rejected"


class Request(models.Model):
    """A unit of work raised by a department that requires approval."""

    request_type = models.CharField(max_length=30, choices=RequestType.choices)
    status = models.CharField(
        max_length=20, choices=RequestStatus.choices, default=RequestStatus.SUBMITTED
    )
    is_urgent = models.BooleanField(default=False)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL, models.PROTECT, related_name="requests"
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="assigned_requests",
    )
    department = models.ForeignKey(
        Department, models.PROTECT, related_name="requests"
    )
    section = models.ForeignKey(
        Section, models.SET_NULL, blank=True, null=True, related_name="requests"
    )
    supply_warehouse = models.ForeignKey(
        Warehouse,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="supply_requests",
    )
    justification = models.TextField(blank=True, default="")
    estimated_cost = LedgerDecimalField(default=Decimal("0"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(blank=True, null=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.request_type} request {self.pk}"

    class Meta:
        db_table = "requests"
        ordering = ["-created_at"]
        permissions = [
            ("record_warehouse_supply", "Can record supplied warehouse items"),
            ("mark_urgent", "Can flag a request as urgent while approving"),
            ("override_cost", "Can override a request's estimated cost"),
            ("decide_items", "Can decide requested items without an active step"),
        ]
        indexes = [
            models.Index(fields=["request_type", "status"], name="requests_type_status_idx")
        ]


class Approval(models.Model):
    """One step in a request's approval chain."""

    request = models.ForeignKey(Request, models.CASCADE, related_name="approvals")
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL, models.PROTECT, related_name="approvals"
    )
    approval_level = models.PositiveIntegerField()
    status = models.CharField(
        max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.PENDING
    )
    is_active = models.BooleanField(default=False)
    is_urgent = models.BooleanField(default=False)
    comments = models.TextField(blank=True, null=True)
    approved_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    # Role the configured route expects at this step; blank for explicit chains.
    route_role = models.CharField(max_length=50, blank=True, default="")

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"Request {self.request_id} L{self.approval_level}: {self.status}"

    class Meta:
        db_table = "approvals"
        ordering = ["request", "approval_level"]
        constraints = [
            models.UniqueConstraint(
                fields=["request"],
                condition=models.Q(is_active=True),
                name="one_active_approval_per_request",
            ),
        ]


class ApprovalRoute(models.Model):
    """Configured approval level for a request type, department type and cost band."""

    request_type = models.CharField(max_length=30, choices=RequestType.choices)
    department_type = models.CharField(max_length=50)
    approval_level = models.PositiveIntegerField()
    role = models.CharField(max_length=50)
    min_amount = LedgerDecimalField(default=Decimal("0"))
    max_amount = LedgerDecimalField(default=Decimal("999999999999"))

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.request_type}/{self.department_type} L{self.approval_level}: {self.role}"

    class Meta:
        db_table = "approval_routes"
        ordering = ["request_type", "department_type", "approval_level"]


class RequestedItem(models.Model):
    """A priced line item on a non-warehouse request."""

    request = models.ForeignKey(Request, models.CASCADE, related_name="items")
    item_name = models.CharField(max_length=255)
    brand = models.CharField(max_length=255, blank=True, null=True)
    quantity = models.PositiveIntegerField()
    available_quantity = models.IntegerField(blank=True, null=True)
    purchased_quantity = models.IntegerField(blank=True, null=True)
    unit_cost = LedgerDecimalField(default=Decimal("0"))
    total_cost = LedgerDecimalField(default=Decimal("0"))
    approval_status = models.CharField(
        max_length=20,
        choices=ItemApprovalStatus.choices,
        default=ItemApprovalStatus.PENDING,
    )
    approval_comments = models.TextField(blank=True, null=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    approved_at = models.DateTimeField(blank=True, null=True)
    is_received = models.BooleanField(default=False)

    def is_locked_for(self, user) -> bool:
        """Rejected items may only be changed again by the user who rejected them."""
        return (
            self.approval_status == ItemApprovalStatus.REJECTED
            and self.approved_by_id is not None
            and self.approved_by_id != getattr(user, "pk", None)
        )

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.item_name} x{self.quantity}"

    class Meta:
        db_table = "requested_items"
        ordering = ["request", "id"]


class WarehouseSupplyItem(models.Model):
    """A requested line on a warehouse supply request."""

    request = models.ForeignKey(
        Request, models.CASCADE, related_name="warehouse_items"
    )
    stock_item = models.ForeignKey(
        StockItem, models.SET_NULL, blank=True, null=True, related_name="+"
    )
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.item_name} x{self.quantity}"

    class Meta:
        db_table = "warehouse_supply_items"
        ordering = ["request", "id"]


class WarehouseSuppliedItem(models.Model):
    """How much of a warehouse supply line was handed out in one run."""

    request = models.ForeignKey(
        Request, models.CASCADE, related_name="supplied_items"
    )
    item = models.ForeignKey(
        WarehouseSupplyItem, models.CASCADE, related_name="supplies"
    )
    supplied_quantity = models.PositiveIntegerField()
    supplied_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    supplied_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.item} supplied {self.supplied_quantity}"

    class Meta:
        db_table = "warehouse_supplied_items"
        ordering = ["supplied_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(supplied_quantity__gt=0),
                name="supplied_quantity_positive",
            ),
        ]


class RequestLog(models.Model):
    """Human-readable audit trail entry for a request."""

    request = models.ForeignKey(Request, models.CASCADE, related_name="logs")
    action = models.CharField(max_length=255)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    comments = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"Request {self.request_id}: {self.action}"

    class Meta:
        db_table = "request_logs"
        ordering = ["created_at", "id"]
