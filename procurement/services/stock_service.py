"""Warehouse stock ledger.

Each (warehouse, stock item) pair has one ``WarehouseStockLevel`` balance and
an append-only trail of ``WarehouseStockMovement`` rows. Every mutation locks
the balance row, writes exactly one movement and recomputes the item's
denormalised ``available_quantity`` inside a single transaction. Calls made
inside an outer ``transaction.atomic()`` join that transaction, so a
multi-line caller either commits every ledger write or none of them.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.db import IntegrityError, models, transaction
from django.db.models import Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from procurement.exceptions import (
    InsufficientStock,
    NotFoundError,
    UninitializedInventory,
    ValidationError,
)
from procurement.models import (
    Department,
    Section,
    StockItem,
    Warehouse,
    WarehouseStockLevel,
    WarehouseStockMovement,
)

from . import permissions

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_QUANTITY_FIELD = WarehouseStockMovement._meta.get_field("quantity")
QUANTITY_PLACES = _QUANTITY_FIELD.decimal_places
QUANTITY_LIMIT = Decimal(10) ** (_QUANTITY_FIELD.max_digits - QUANTITY_PLACES)


@dataclass
class LedgerResult:
    balance: Optional[WarehouseStockLevel]
    movement: Optional[WarehouseStockMovement]
    available_quantity: Optional[Decimal]
    warning: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.movement is not None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"applied": self.applied, "warning": self.warning}
        if self.balance is not None:
            data["balance"] = {
                "id": self.balance.pk,
                "warehouse_id": self.balance.warehouse_id,
                "stock_item_id": self.balance.stock_item_id,
                "item_name": self.balance.item_name,
                "quantity": self.balance.quantity,
                "updated_at": self.balance.updated_at,
            }
        if self.available_quantity is not None:
            data["available_quantity"] = self.available_quantity
        return data


def parse_quantity(value: Any) -> Decimal:
    """Return ``value`` as a positive Decimal or raise ``ValidationError``.

    Quantities are stored with ``QUANTITY_PLACES`` decimals; finer input is
    rejected rather than rounded.
    """

    if isinstance(value, bool) or value is None:
        raise ValidationError("Quantity must be a positive number")
    try:
        quantity = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Quantity must be a positive number")
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("Quantity must be a positive number")
    if quantity >= QUANTITY_LIMIT:
        raise ValidationError("Quantity is too large", quantity=str(quantity))
    step = Decimal(1).scaleb(-QUANTITY_PLACES)
    if quantity != quantity.quantize(step):
        raise ValidationError(
            f"Quantity allows at most {QUANTITY_PLACES} decimal places",
            quantity=str(quantity),
        )
    return quantity.quantize(step)


def _actor(user):
    return user if getattr(user, "pk", None) else None


def _lock_level(warehouse_id: int, stock_item_id: int) -> Optional[WarehouseStockLevel]:
    return (
        WarehouseStockLevel.objects.select_for_update()
        .filter(warehouse_id=warehouse_id, stock_item_id=stock_item_id)
        .first()
    )


def get_stock_item_name(stock_item_id: int) -> Optional[str]:
    return (
        StockItem.objects.filter(pk=stock_item_id).values_list("name", flat=True).first()
    )


def get_balance(warehouse_id: int, stock_item_id: int) -> Optional[Decimal]:
    """Current balance, or ``None`` when the pair has never been stocked."""

    return (
        WarehouseStockLevel.objects.filter(
            warehouse_id=warehouse_id, stock_item_id=stock_item_id
        )
        .values_list("quantity", flat=True)
        .first()
    )


def recalculate_available_quantity(stock_item_id: int) -> Decimal:
    """Persist the sum of every warehouse balance for the item and return it."""

    total = WarehouseStockLevel.objects.filter(stock_item_id=stock_item_id).aggregate(
        total=Coalesce(
            Sum("quantity"),
            Value(_ZERO),
            output_field=models.DecimalField(max_digits=14, decimal_places=2),
        )
    )["total"]
    StockItem.objects.filter(pk=stock_item_id).update(
        available_quantity=total, updated_at=timezone.now()
    )
    return total


def increase_stock(
    warehouse_id: int,
    stock_item_id: int,
    quantity: Any,
    actor=None,
    notes: Optional[str] = None,
) -> LedgerResult:
    """Add ``quantity`` to the balance, creating it on first allocation."""

    qty = parse_quantity(quantity)
    with transaction.atomic():
        try:
            stock_item = StockItem.objects.get(pk=stock_item_id)
        except StockItem.DoesNotExist:
            raise NotFoundError("Stock item not found", stock_item_id=stock_item_id)
        if not Warehouse.objects.filter(pk=warehouse_id).exists():
            raise NotFoundError("Warehouse not found", warehouse_id=warehouse_id)

        level = _lock_level(warehouse_id, stock_item_id)
        if level is None:
            try:
                with transaction.atomic():
                    level = WarehouseStockLevel.objects.create(
                        warehouse_id=warehouse_id,
                        stock_item=stock_item,
                        item_name=stock_item.name,
                        quantity=_ZERO,
                        updated_by=_actor(actor),
                    )
            except IntegrityError:
                # Another transaction created the row first; wait for its lock.
                level = _lock_level(warehouse_id, stock_item_id)

        level.quantity = level.quantity + qty
        level.item_name = stock_item.name
        level.updated_by = _actor(actor)
        level.save(update_fields=["quantity", "item_name", "updated_by", "updated_at"])

        movement = WarehouseStockMovement.objects.create(
            warehouse_id=warehouse_id,
            stock_item=stock_item,
            item_name=stock_item.name,
            direction=WarehouseStockMovement.DIRECTION_IN,
            quantity=qty,
            notes=notes or None,
            created_by=_actor(actor),
        )
        available = recalculate_available_quantity(stock_item_id)

    logger.info(
        "Stock in: warehouse=%s item=%s qty=%s balance=%s",
        warehouse_id,
        stock_item_id,
        qty,
        level.quantity,
    )
    return LedgerResult(level, movement, available)


def decrease_stock(
    warehouse_id: int,
    stock_item_id: int,
    quantity: Any,
    actor=None,
    *,
    request=None,
    department=None,
    section=None,
    notes: Optional[str] = None,
    skip_missing: bool = False,
) -> LedgerResult:
    """Remove ``quantity`` from the balance.

    A missing balance row raises ``UninitializedInventory`` unless
    ``skip_missing`` is set, in which case nothing is written and the result
    carries a warning instead.
    """

    qty = parse_quantity(quantity)
    with transaction.atomic():
        level = _lock_level(warehouse_id, stock_item_id)
        if level is None:
            message = (
                f"No inventory recorded for stock item {stock_item_id} "
                f"in warehouse {warehouse_id}"
            )
            if skip_missing:
                logger.warning("Skipping stock decrease: %s", message)
                return LedgerResult(None, None, None, warning=message)
            raise UninitializedInventory(
                message, warehouse_id=warehouse_id, stock_item_id=stock_item_id
            )

        if level.quantity < qty:
            raise InsufficientStock(
                f"Insufficient stock for {level.item_name}: "
                f"available {level.quantity}, requested {qty}",
                warehouse_id=warehouse_id,
                stock_item_id=stock_item_id,
                available=str(level.quantity),
                requested=str(qty),
            )

        level.quantity = level.quantity - qty
        level.updated_by = _actor(actor)
        level.save(update_fields=["quantity", "updated_by", "updated_at"])

        movement = WarehouseStockMovement.objects.create(
            warehouse_id=warehouse_id,
            stock_item_id=stock_item_id,
            item_name=level.item_name,
            direction=WarehouseStockMovement.DIRECTION_OUT,
            quantity=qty,
            reference_request=request,
            to_department=department,
            to_section=section,
            notes=notes or None,
            created_by=_actor(actor),
        )
        available = recalculate_available_quantity(stock_item_id)

    logger.info(
        "Stock out: warehouse=%s item=%s qty=%s balance=%s",
        warehouse_id,
        stock_item_id,
        qty,
        level.quantity,
    )
    return LedgerResult(level, movement, available)


def _resolve_warehouse_id(actor, warehouse_id: Optional[int]) -> int:
    if warehouse_id in (None, ""):
        profile = permissions.staff_profile(actor)
        warehouse_id = profile.warehouse_id if profile else None
    if warehouse_id is None:
        raise ValidationError("A valid warehouse must be specified")
    try:
        return int(warehouse_id)
    except (TypeError, ValueError):
        raise ValidationError("A valid warehouse must be specified")


def add_stock(
    actor,
    stock_item_id: int,
    quantity: Any,
    warehouse_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> LedgerResult:
    """Receive stock into a warehouse (defaults to the actor's warehouse)."""

    permissions.require_permission(
        actor,
        "manage_warehouse_stock",
        "You do not have permission to manage warehouse stock",
    )
    parse_quantity(quantity)
    return increase_stock(
        _resolve_warehouse_id(actor, warehouse_id), stock_item_id, quantity, actor, notes
    )


def issue_stock(
    actor,
    stock_item_id: int,
    quantity: Any,
    department_id: int,
    warehouse_id: Optional[int] = None,
    section_id: Optional[int] = None,
    notes: Optional[str] = None,
    lot_number: Optional[str] = None,
) -> LedgerResult:
    """Issue stock from a warehouse directly to a department."""

    from . import recall_service

    permissions.require_permission(
        actor,
        "manage_warehouse_stock",
        "You do not have permission to manage warehouse stock",
    )
    parse_quantity(quantity)
    warehouse_id = _resolve_warehouse_id(actor, warehouse_id)
    department = Department.objects.filter(pk=department_id).first()
    if department is None:
        raise NotFoundError("Department not found", department_id=department_id)
    section = None
    if section_id is not None:
        section = Section.objects.filter(pk=section_id, department=department).first()
        if section is None:
            raise NotFoundError("Section not found", section_id=section_id)
    with transaction.atomic():
        # Lock the balance before the lot check so issues of the item serialize.
        _lock_level(warehouse_id, stock_item_id)
        if lot_number:
            recall_service.ensure_lot_issuable(stock_item_id, None, lot_number)
        return decrease_stock(
            warehouse_id,
            stock_item_id,
            quantity,
            actor,
            department=department,
            section=section,
            notes=notes,
        )


def reconcile(warehouse_id: int, stock_item_id: int) -> Dict[str, Any]:
    """Compare the stored balance with the signed sum of its movements."""

    totals = {
        row["direction"]: row["total"] or _ZERO
        for row in WarehouseStockMovement.objects.filter(
            warehouse_id=warehouse_id, stock_item_id=stock_item_id
        )
        .values("direction")
        .annotate(total=Sum("quantity"))
    }
    movement_total = totals.get(WarehouseStockMovement.DIRECTION_IN, _ZERO) - totals.get(
        WarehouseStockMovement.DIRECTION_OUT, _ZERO
    )
    balance = get_balance(warehouse_id, stock_item_id)
    return {
        "warehouse_id": warehouse_id,
        "stock_item_id": stock_item_id,
        "balance": balance if balance is not None else _ZERO,
        "movement_total": movement_total,
        "consistent": (balance if balance is not None else _ZERO) == movement_total,
    }
