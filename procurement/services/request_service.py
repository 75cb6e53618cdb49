import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Sum

from procurement.exceptions import NotFoundError, ValidationError
from procurement.models import (
    Department,
    Request,
    RequestedItem,
    RequestLog,
    RequestStatus,
    RequestType,
    Section,
    StockItem,
    Warehouse,
    WarehouseSupplyItem,
)

from . import approval_service, item_decision_service
from .validators import (
    optional_text,
    parse_amount,
    parse_choice,
    parse_id,
    parse_flag,
    parse_positive_int,
    require_text,
)

logger = logging.getLogger(__name__)


def log_action(request, action: str, actor=None, comments: Optional[str] = None) -> RequestLog:
    """Append one human-readable entry to the request's audit trail."""

    return RequestLog.objects.create(
        request=request,
        action=action,
        actor=actor if getattr(actor, "pk", None) else None,
        comments=comments or None,
    )


def _clean_requested_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx} is malformed")
        quantity = parse_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        unit_cost = parse_amount(raw.get("unit_cost", 0), f"items[{idx}].unit_cost")
        cleaned.append(
            {
                "item_name": require_text(raw.get("item_name"), f"items[{idx}].item_name"),
                "brand": optional_text(raw.get("brand")),
                "quantity": quantity,
                "unit_cost": unit_cost,
                "total_cost": unit_cost * quantity,
            }
        )
    return cleaned


def _clean_supply_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx} is malformed")
        stock_item_id = raw.get("stock_item_id")
        name = optional_text(raw.get("item_name"))
        if stock_item_id in (None, "") and not name:
            raise ValidationError(f"Item {idx} needs a stock item or a name")
        cleaned.append(
            {
                "stock_item_id": (
                    parse_id(stock_item_id, f"items[{idx}].stock_item_id")
                    if stock_item_id not in (None, "")
                    else None
                ),
                "item_name": name,
                "quantity": parse_positive_int(
                    raw.get("quantity"), f"items[{idx}].quantity"
                ),
            }
        )
    return cleaned


def create_request(
    actor,
    request_type: str,
    department_id: int,
    items: List[Dict[str, Any]],
    section_id: Optional[int] = None,
    supply_warehouse_id: Optional[int] = None,
    justification: str = "",
    is_urgent: bool = False,
    approvers: Optional[List[int]] = None,
    initialize: bool = False,
) -> Request:
    """Create a request with its lines and optionally start its approval chain.

    ``approvers`` seeds an explicit chain; ``initialize`` seeds it from the
    configured approval routes instead.
    """

    request_type = parse_choice(request_type, RequestType, "request_type")
    urgent = False if is_urgent is None else parse_flag(is_urgent, "is_urgent")
    if not items or not isinstance(items, list):
        raise ValidationError("A request must contain at least one item")
    is_warehouse = request_type == RequestType.WAREHOUSE_SUPPLY
    cleaned = _clean_supply_items(items) if is_warehouse else _clean_requested_items(items)
    if is_warehouse and supply_warehouse_id in (None, ""):
        raise ValidationError("Warehouse supply requests need a supply warehouse")

    with transaction.atomic():
        department = Department.objects.filter(pk=department_id).first()
        if department is None:
            raise NotFoundError("Department not found", department_id=department_id)
        section = None
        if section_id not in (None, ""):
            section = Section.objects.filter(pk=section_id, department=department).first()
            if section is None:
                raise NotFoundError("Section not found", section_id=section_id)
        warehouse = None
        if supply_warehouse_id not in (None, ""):
            warehouse = Warehouse.objects.filter(pk=supply_warehouse_id).first()
            if warehouse is None:
                raise NotFoundError("Warehouse not found", warehouse_id=supply_warehouse_id)

        request = Request.objects.create(
            request_type=request_type,
            requester=actor,
            department=department,
            section=section,
            supply_warehouse=warehouse,
            justification=justification or "",
            is_urgent=urgent,
        )

        if is_warehouse:
            for line in cleaned:
                stock_item = None
                if line["stock_item_id"] is not None:
                    stock_item = StockItem.objects.filter(pk=line["stock_item_id"]).first()
                    if stock_item is None:
                        raise NotFoundError(
                            "Stock item not found", stock_item_id=line["stock_item_id"]
                        )
                WarehouseSupplyItem.objects.create(
                    request=request,
                    stock_item=stock_item,
                    item_name=line["item_name"] or stock_item.name,
                    quantity=line["quantity"],
                )
        else:
            RequestedItem.objects.bulk_create(
                [RequestedItem(request=request, **line) for line in cleaned]
            )
            request.estimated_cost = sum(
                (line["total_cost"] for line in cleaned), Decimal("0")
            )
            request.save(update_fields=["estimated_cost", "updated_at"])

        log_action(request, "Request Created", actor, justification or None)

        if approvers:
            approval_service.start_workflow(request.pk, approvers, actor)
        elif initialize:
            approval_service.initialize_approvals(request.pk, actor)

    logger.info(
        "Created %s request %s for department %s", request_type, request.pk, department.pk
    )
    request.refresh_from_db()
    return request


def get_request_summary(request_id: int) -> Dict[str, Any]:
    """Read model with item-status aggregates and the workflow state."""

    request = (
        Request.objects.select_related(
            "department", "section", "supply_warehouse", "requester"
        )
        .filter(pk=request_id)
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found", request_id=request_id)

    summary: Dict[str, Any] = {
        "id": request.pk,
        "request_type": request.request_type,
        "status": request.status,
        "is_urgent": request.is_urgent,
        "requester_id": request.requester_id,
        "requester_name": request.requester.get_full_name() or request.requester.get_username(),
        "department_id": request.department_id,
        "department_name": request.department.name,
        "section_name": request.section.name if request.section else None,
        "supply_warehouse_id": request.supply_warehouse_id,
        "supply_warehouse_name": (
            request.supply_warehouse.name if request.supply_warehouse else None
        ),
        "justification": request.justification,
        "estimated_cost": request.estimated_cost,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
        "completed_at": request.completed_at,
        "workflow_state": str(approval_service.workflow_state(request.pk)),
    }
    summary.update(item_decision_service.item_status_summary(request.pk))
    if request.request_type == RequestType.WAREHOUSE_SUPPLY:
        summary["requested_quantity"] = (
            request.warehouse_items.aggregate(total=Sum("quantity"))["total"] or 0
        )
        summary["supplied_quantity"] = (
            request.supplied_items.aggregate(total=Sum("supplied_quantity"))["total"]
            or 0
        )
    summary["is_open"] = request.status not in (
        RequestStatus.REJECTED,
        RequestStatus.COMPLETED,
    )
    return summary
