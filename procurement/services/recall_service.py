"""Recall escalation and lot quarantine.

Department recalls wait for warehouse review; warehouse recalls go straight
to procurement with the lot quarantined. Quarantine is tracked separately
from the review status and blocks issuance of the lot until the recall is
closed or rejected.
"""

import logging
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from procurement.exceptions import (
    AlreadyEscalated,
    AlreadyQuarantined,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    QuarantinedLot,
    ValidationError,
)
from procurement.models import (
    BLOCKING_RECALL_STATUSES,
    ItemRecall,
    RecallStatus,
    RecallType,
)

from . import notification_service, permissions, stock_service
from .validators import (
    optional_text,
    parse_choice,
    parse_id,
    parse_positive_int,
    require_text,
)

logger = logging.getLogger(__name__)

WAREHOUSE_RECALL_SUBJECT = "Warehouse recall requires supplier action"
ESCALATED_RECALL_SUBJECT = "Escalated recall requires supplier follow-up"
QUARANTINE_SUBJECT = "Recalled lot quarantined - issuance blocked"

CLOSED_STATUSES = (RecallStatus.REJECTED, RecallStatus.CLOSED)


def _recall_body(recall: ItemRecall, header: str) -> str:
    lines = [header, f"Item: {recall.item_name}"]
    if recall.lot_number:
        lines.append(f"Lot number: {recall.lot_number}")
    lines.append(f"Reason: {recall.reason}")
    if recall.quantity is not None:
        lines.append(f"Quantity affected: {recall.quantity}")
    if recall.warehouse_notes:
        lines.append(f"Warehouse notes: {recall.warehouse_notes}")
    if recall.quarantine_active:
        lines.append(f"Quarantine reason: {recall.quarantine_reason}")
    return "\n".join(lines)


def _notify_procurement(recall: ItemRecall, subject: str, header: str) -> None:
    notification_service.send_email_on_commit(
        notification_service.procurement_recipients(),
        subject,
        _recall_body(recall, header),
    )


def _resolve_item(item_id: Any, item_name: Optional[str]):
    """Return ``(stock_item_id, name)`` for a recall."""
    name = optional_text(item_name)
    if item_id in (None, ""):
        if not name:
            raise ValidationError("An item or item name is required")
        return None, name
    item_id = parse_id(item_id, "item_id")
    catalog_name = stock_service.get_stock_item_name(item_id)
    if catalog_name is None:
        if not name:
            raise NotFoundError("Stock item not found", stock_item_id=item_id)
        logger.warning(
            "Recall references unknown stock item %s; using name %r", item_id, name
        )
        return None, name
    return item_id, catalog_name


def _clean_quantity(quantity: Any) -> Optional[int]:
    if quantity in (None, ""):
        return None
    return parse_positive_int(quantity, "quantity")


def _lock_recall(recall_id: int) -> ItemRecall:
    recall = ItemRecall.objects.select_for_update().filter(pk=recall_id).first()
    if recall is None:
        raise NotFoundError("Recall not found", recall_id=recall_id)
    return recall


def create_department_recall(
    actor,
    reason: str,
    item_id: Any = None,
    item_name: Optional[str] = None,
    lot_number: Optional[str] = None,
    quantity: Any = None,
    notes: Optional[str] = None,
) -> ItemRecall:
    if actor is None or not getattr(actor, "is_active", False):
        raise AuthorizationError("An active user is required to report a recall")
    reason = require_text(reason, "reason")
    quantity = _clean_quantity(quantity)
    stock_item_id, name = _resolve_item(item_id, item_name)
    profile = permissions.staff_profile(actor)

    recall = ItemRecall.objects.create(
        stock_item_id=stock_item_id,
        item_name=name,
        lot_number=optional_text(lot_number),
        quantity=quantity,
        reason=reason,
        notes=optional_text(notes),
        recall_type=RecallType.DEPARTMENT_TO_WAREHOUSE,
        status=RecallStatus.PENDING_WAREHOUSE_REVIEW,
        department_id=profile.department_id if profile else None,
        initiated_by=actor,
    )
    logger.info("Department recall %s created for %s", recall.pk, name)
    return recall


def create_warehouse_recall(
    actor,
    reason: str,
    item_id: Any = None,
    item_name: Optional[str] = None,
    lot_number: Optional[str] = None,
    quantity: Any = None,
    notes: Optional[str] = None,
) -> ItemRecall:
    """Raise a recall from the warehouse, escalated and quarantined at once."""

    permissions.require_permission(
        actor, "manage_recalls", "You are not allowed to raise warehouse recalls"
    )
    reason = require_text(reason, "reason")
    quantity = _clean_quantity(quantity)
    stock_item_id, name = _resolve_item(item_id, item_name)
    profile = permissions.staff_profile(actor)
    now = timezone.now()

    with transaction.atomic():
        recall = ItemRecall.objects.create(
            stock_item_id=stock_item_id,
            item_name=name,
            lot_number=optional_text(lot_number),
            quantity=quantity,
            reason=reason,
            notes=optional_text(notes),
            recall_type=RecallType.WAREHOUSE_TO_PROCUREMENT,
            status=RecallStatus.QUARANTINED,
            department_id=profile.department_id if profile else None,
            initiated_by=actor,
            escalated_to_procurement=True,
            escalated_at=now,
            escalated_by=actor,
            quarantine_active=True,
            quarantine_reason=reason,
            quarantine_started_at=now,
        )
        _notify_procurement(
            recall,
            WAREHOUSE_RECALL_SUBJECT,
            "The warehouse has quarantined a lot and needs supplier action.",
        )
    logger.info("Warehouse recall %s created and quarantined for %s", recall.pk, name)
    return recall


def escalate_recall(
    recall_id: int, actor, warehouse_notes: Optional[str] = None
) -> ItemRecall:
    """Promote a recall to procurement. Escalation happens at most once."""

    permissions.require_permission(
        actor, "escalate_recalls", "You are not allowed to escalate recalls"
    )
    warehouse_notes = optional_text(warehouse_notes)
    with transaction.atomic():
        recall = _lock_recall(recall_id)
        if recall.escalated_to_procurement:
            raise AlreadyEscalated(
                "Recall has already been escalated to procurement",
                recall_id=recall.pk,
                escalated_at=recall.escalated_at.isoformat() if recall.escalated_at else None,
            )
        if recall.status in CLOSED_STATUSES:
            raise ConflictError(
                f"Recall is {recall.status.lower()} and cannot be escalated",
                recall_id=recall.pk,
                status=recall.status,
            )
        recall.status = RecallStatus.PENDING_PROCUREMENT_ACTION
        recall.escalated_to_procurement = True
        recall.escalated_at = timezone.now()
        recall.escalated_by = actor
        if warehouse_notes:
            recall.warehouse_notes = warehouse_notes
        recall.save()
        _notify_procurement(
            recall,
            ESCALATED_RECALL_SUBJECT,
            "A department recall was escalated by the warehouse.",
        )
    logger.info("Recall %s escalated to procurement", recall.pk)
    return recall


def quarantine_recall(recall_id: int, actor, reason: str) -> ItemRecall:
    """Block issuance of the recalled lot; the first start time is kept."""

    permissions.require_any_permission(
        actor,
        ["quarantine_recalls", "manage_recalls"],
        "You are not allowed to quarantine recalled items",
    )
    reason = require_text(reason, "reason")
    with transaction.atomic():
        recall = _lock_recall(recall_id)
        if recall.quarantine_active and recall.status in BLOCKING_RECALL_STATUSES:
            raise AlreadyQuarantined(
                "Recall is already quarantined",
                recall_id=recall.pk,
                quarantine_started_at=recall.quarantine_started_at.isoformat(),
            )
        if recall.status in CLOSED_STATUSES:
            raise ConflictError(
                f"Recall is {recall.status.lower()} and cannot be quarantined",
                recall_id=recall.pk,
                status=recall.status,
            )
        recall.status = RecallStatus.QUARANTINED
        recall.quarantine_active = True
        recall.quarantine_reason = reason
        if recall.quarantine_started_at is None:
            recall.quarantine_started_at = timezone.now()
        recall.save()
        _notify_procurement(
            recall, QUARANTINE_SUBJECT, "Issuance of the following lot is blocked."
        )
    logger.info("Recall %s quarantined", recall.pk)
    return recall


def close_recall(
    recall_id: int, actor, status: str, notes: Optional[str] = None
) -> ItemRecall:
    """Finish the review as Rejected or Closed and lift any quarantine."""

    permissions.require_permission(
        actor, "manage_recalls", "You are not allowed to close recalls"
    )
    status = parse_choice(status, RecallStatus, allowed=list(CLOSED_STATUSES))
    notes = optional_text(notes)
    with transaction.atomic():
        recall = _lock_recall(recall_id)
        if recall.status in CLOSED_STATUSES:
            raise ConflictError(
                f"Recall is already {recall.status.lower()}",
                recall_id=recall.pk,
                status=recall.status,
            )
        recall.status = status
        recall.quarantine_active = False
        if notes:
            recall.warehouse_notes = notes
        recall.save()
    logger.info("Recall %s %s", recall.pk, status.lower())
    return recall


def is_lot_quarantined(
    stock_item_id: Optional[int], item_name: Optional[str], lot_number: Optional[str]
) -> bool:
    lot = optional_text(lot_number)
    if not lot:
        return False
    match = Q()
    if stock_item_id is not None:
        match |= Q(stock_item_id=stock_item_id)
    if item_name:
        match |= Q(item_name__iexact=item_name.strip())
    if not match:
        return False
    return (
        ItemRecall.objects.filter(quarantine_active=True, lot_number__iexact=lot)
        .filter(match)
        .exists()
    )


def ensure_lot_issuable(
    stock_item_id: Optional[int], item_name: Optional[str], lot_number: Optional[str]
) -> None:
    if is_lot_quarantined(stock_item_id, item_name, lot_number):
        raise QuarantinedLot(
            f"Lot {lot_number} is quarantined and cannot be issued",
            stock_item_id=stock_item_id,
            item_name=item_name,
            lot_number=lot_number,
        )


def _as_row(recall: ItemRecall) -> Dict[str, Any]:
    return {
        "id": recall.pk,
        "stock_item_id": recall.stock_item_id,
        "item_name": recall.item_name,
        "lot_number": recall.lot_number,
        "quantity": recall.quantity,
        "reason": recall.reason,
        "notes": recall.notes,
        "recall_type": recall.recall_type,
        "status": recall.status,
        "department_id": recall.department_id,
        "department_name": recall.department.name if recall.department else None,
        "initiated_by": recall.initiated_by_id,
        "escalated_to_procurement": recall.escalated_to_procurement,
        "escalated_at": recall.escalated_at,
        "warehouse_notes": recall.warehouse_notes,
        "quarantine_active": recall.quarantine_active,
        "quarantine_reason": recall.quarantine_reason,
        "quarantine_started_at": recall.quarantine_started_at,
        "created_at": recall.created_at,
    }


def visible_recalls_queryset(actor):
    """Recalls ``actor`` may see; department staff only see their own department."""
    recalls = ItemRecall.objects.select_related("department")
    if permissions.has_permission(actor, "manage_recalls"):
        return recalls
    if permissions.has_any_permission(actor, ["escalate_recalls", "quarantine_recalls"]):
        return recalls.filter(
            Q(recall_type=RecallType.WAREHOUSE_TO_PROCUREMENT)
            | Q(escalated_to_procurement=True)
        )
    profile = permissions.staff_profile(actor)
    if profile is None or profile.department_id is None:
        return recalls.filter(initiated_by_id=getattr(actor, "pk", None))
    return recalls.filter(department_id=profile.department_id)


def list_visible_recalls(actor) -> List[Dict[str, Any]]:
    return [_as_row(r) for r in visible_recalls_queryset(actor)]
