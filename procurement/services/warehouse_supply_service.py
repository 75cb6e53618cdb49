"""Partial fulfilment of approved warehouse supply requests.

A supply run records how much of each requested line was handed out and
draws the matching stock down from the request's warehouse. The whole run is
one transaction: an over-supplied line or a quarantined lot undoes every
ledger write and supplied row of the run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from procurement.exceptions import (
    AuthorizationError,
    InvalidApprovalState,
    NotFoundError,
    OverSupply,
    ValidationError,
)
from procurement.models import (
    Request,
    RequestStatus,
    RequestType,
    StockItem,
    WarehouseSuppliedItem,
    WarehouseSupplyItem,
)

from . import permissions, recall_service, request_service, stock_service
from .validators import optional_text, parse_id, parse_positive_int

logger = logging.getLogger(__name__)

SUPPLIABLE_STATUSES = (RequestStatus.APPROVED, RequestStatus.COMPLETED)

APPLIED = "applied"
SKIPPED = "skipped"


@dataclass
class SupplyLine:
    item_id: int
    item_name: str
    supplied_quantity: int
    stock_item_id: Optional[int]
    # ``skipped`` means the supply was recorded but the ledger was not touched.
    outcome: str = APPLIED
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "supplied_quantity": self.supplied_quantity,
            "stock_item_id": self.stock_item_id,
            "outcome": self.outcome,
            "reason": self.reason,
        }


@dataclass
class SupplyResult:
    request_id: int
    status: str
    completed: bool
    lines: List[SupplyLine] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    totals: Dict[int, Dict[str, int]] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "status": self.status,
            "completed": self.completed,
            "lines": [line.as_dict() for line in self.lines],
            "warnings": list(self.warnings),
            "totals": {str(k): v for k, v in self.totals.items()},
        }


def _clean_lines(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not items or not isinstance(items, list):
        raise ValidationError("At least one supplied item is required")
    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Supplied item {idx} is malformed")
        stock_item_id = raw.get("stock_item_id")
        cleaned.append(
            {
                "item_id": parse_id(raw.get("item_id"), f"items[{idx}].item_id"),
                "quantity": parse_positive_int(
                    raw.get("quantity"), f"items[{idx}].quantity"
                ),
                "stock_item_id": (
                    parse_id(stock_item_id, f"items[{idx}].stock_item_id")
                    if stock_item_id not in (None, "")
                    else None
                ),
                "lot_number": optional_text(raw.get("lot_number")),
            }
        )
    return cleaned


def _check_request(request: Request, actor) -> None:
    if request.request_type != RequestType.WAREHOUSE_SUPPLY:
        raise ValidationError(
            "Only warehouse supply requests can be fulfilled from stock",
            request_id=request.pk,
            request_type=request.request_type,
        )
    if request.status not in SUPPLIABLE_STATUSES:
        raise InvalidApprovalState(
            f"Request must be approved before supplying items (status {request.status})",
            request_id=request.pk,
            status=request.status,
        )
    if request.supply_warehouse_id is None:
        raise ValidationError(
            "Request has no fulfilment warehouse assigned", request_id=request.pk
        )
    profile = permissions.staff_profile(actor)
    if profile is None or profile.warehouse_id != request.supply_warehouse_id:
        raise AuthorizationError(
            "You can only supply requests assigned to your warehouse",
            request_id=request.pk,
        )


def _supplied_totals(request_id: int) -> Dict[int, int]:
    return {
        row["item_id"]: row["total"] or 0
        for row in WarehouseSuppliedItem.objects.filter(request_id=request_id)
        .values("item_id")
        .annotate(total=Sum("supplied_quantity"))
    }


def _match_stock_item(line: Dict[str, Any], supply_item: WarehouseSupplyItem):
    """Explicit id first, then the line's catalog link, then its name."""
    stock_item_id = line["stock_item_id"] or supply_item.stock_item_id
    if stock_item_id is not None:
        match = StockItem.objects.filter(pk=stock_item_id).first()
        if match is not None:
            return match
    return (
        StockItem.objects.filter(name__iexact=supply_item.item_name.strip())
        .order_by("id")
        .first()
    )


def record_supplied_items(
    request_id: int, items: List[Dict[str, Any]], actor
) -> SupplyResult:
    """Record ``[{item_id, quantity, stock_item_id?, lot_number?}]`` as supplied."""

    permissions.require_permission(
        actor,
        "record_warehouse_supply",
        "You do not have permission to record warehouse supplies",
    )
    lines = _clean_lines(items)
    request = Request.objects.filter(pk=request_id).first()
    if request is None:
        raise NotFoundError("Request not found", request_id=request_id)
    _check_request(request, actor)

    with transaction.atomic():
        request = (
            Request.objects.select_for_update()
            .select_related("department", "section", "supply_warehouse")
            .get(pk=request_id)
        )
        _check_request(request, actor)

        requested = {si.pk: si for si in request.warehouse_items.all()}
        running = _supplied_totals(request.pk)
        result = SupplyResult(request_id=request.pk, status=request.status, completed=False)

        for line in lines:
            supply_item = requested.get(line["item_id"])
            if supply_item is None:
                raise NotFoundError(
                    "Item does not belong to this request",
                    request_id=request.pk,
                    item_id=line["item_id"],
                )
            already = running.get(supply_item.pk, 0)
            if already + line["quantity"] > supply_item.quantity:
                raise OverSupply(
                    f"Cannot supply {line['quantity']} of {supply_item.item_name}: "
                    f"{already} of {supply_item.quantity} already supplied",
                    item_id=supply_item.pk,
                    requested=supply_item.quantity,
                    already_supplied=already,
                    attempted=line["quantity"],
                )

            stock_item = _match_stock_item(line, supply_item)
            supply_line = SupplyLine(
                item_id=supply_item.pk,
                item_name=supply_item.item_name,
                supplied_quantity=line["quantity"],
                stock_item_id=stock_item.pk if stock_item else None,
            )
            recall_service.ensure_lot_issuable(
                supply_line.stock_item_id, supply_item.item_name, line["lot_number"]
            )
            if stock_item is None:
                warning = (
                    f"No stock item matches '{supply_item.item_name}'; "
                    "stock ledger not updated"
                )
                logger.warning("Request %s: %s", request.pk, warning)
                supply_line.outcome, supply_line.reason = SKIPPED, warning
                result.warnings.append(warning)
            else:
                ledger = stock_service.decrease_stock(
                    request.supply_warehouse_id,
                    stock_item.pk,
                    line["quantity"],
                    actor,
                    request=request,
                    department=request.department,
                    section=request.section,
                    notes=f"Warehouse supply for request #{request.pk}",
                    skip_missing=True,
                )
                if ledger.warning:
                    supply_line.outcome, supply_line.reason = SKIPPED, ledger.warning
                    result.warnings.append(ledger.warning)

            WarehouseSuppliedItem.objects.create(
                request=request,
                item=supply_item,
                supplied_quantity=line["quantity"],
                supplied_by=actor,
            )
            running[supply_item.pk] = already + line["quantity"]
            result.lines.append(supply_line)

        result.completed = all(
            running.get(pk, 0) >= si.quantity for pk, si in requested.items()
        )
        if result.completed and request.status != RequestStatus.COMPLETED:
            request.status = RequestStatus.COMPLETED
            request.completed_at = timezone.now()
            request.save(update_fields=["status", "completed_at", "updated_at"])
        result.status = request.status
        result.totals = {
            pk: {
                "requested": si.quantity,
                "supplied": running.get(pk, 0),
                "remaining": max(si.quantity - running.get(pk, 0), 0),
            }
            for pk, si in requested.items()
        }

        summary = ", ".join(
            f"{line.item_name} x{line.supplied_quantity}" for line in result.lines
        )
        request_service.log_action(
            request,
            "Warehouse Items Supplied",
            actor,
            f"Supplied {summary} from {request.supply_warehouse.name} "
            f"to {request.department.name}",
        )

    logger.info(
        "Recorded %s supplied line(s) on request %s (completed=%s)",
        len(result.lines),
        request_id,
        result.completed,
    )
    return result


def supply_progress(request_id: int) -> List[Dict[str, Any]]:
    if not Request.objects.filter(pk=request_id).exists():
        raise NotFoundError("Request not found", request_id=request_id)
    supplied = _supplied_totals(request_id)
    return [
        {
            "item_id": si.pk,
            "item_name": si.item_name,
            "stock_item_id": si.stock_item_id,
            "requested": si.quantity,
            "supplied": supplied.get(si.pk, 0),
            "remaining": max(si.quantity - supplied.get(si.pk, 0), 0),
        }
        for si in WarehouseSupplyItem.objects.filter(request_id=request_id).order_by("id")
    ]


def list_supply_requests(actor) -> List[Dict[str, Any]]:
    """Approved warehouse supply requests waiting on the actor's warehouse."""

    profile = permissions.staff_profile(actor)
    if profile is None or profile.warehouse_id is None:
        return []
    requests = (
        Request.objects.filter(
            request_type=RequestType.WAREHOUSE_SUPPLY,
            status=RequestStatus.APPROVED,
            supply_warehouse_id=profile.warehouse_id,
        )
        .select_related("department", "section", "requester")
        .order_by("-is_urgent", "created_at")
    )
    return [
        {
            "id": r.pk,
            "department_name": r.department.name,
            "section_name": r.section.name if r.section else None,
            "requester_name": r.requester.get_full_name() or r.requester.get_username(),
            "is_urgent": r.is_urgent,
            "created_at": r.created_at,
            "items": supply_progress(r.pk),
        }
        for r in requests
    ]
