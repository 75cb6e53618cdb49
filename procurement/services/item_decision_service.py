"""Per-item approval decisions on a request.

Batches are partial-success: a rejection-locked line is skipped and an
unknown line fails, but neither stops the remaining lines from being saved.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from procurement.exceptions import AuthorizationError, NotFoundError, ValidationError
from procurement.models import Approval, ItemApprovalStatus, Request, RequestedItem

from . import permissions, request_service
from .validators import optional_text, parse_choice, parse_id, parse_positive_int

logger = logging.getLogger(__name__)

APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class LineResult:
    item_id: int
    outcome: str
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "outcome": self.outcome, "reason": self.reason}


@dataclass
class ItemDecisionResult:
    request_id: int
    lines: List[LineResult] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    calculated_total_cost: Decimal = Decimal("0")
    estimated_cost: Decimal = Decimal("0")
    cost_increased: bool = False
    estimated_cost_updated: bool = False

    def _with(self, outcome: str) -> List[LineResult]:
        return [line for line in self.lines if line.outcome == outcome]

    @property
    def applied(self) -> List[LineResult]:
        return self._with(APPLIED)

    @property
    def skipped(self) -> List[LineResult]:
        return self._with(SKIPPED)

    @property
    def failed(self) -> List[LineResult]:
        return self._with(FAILED)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "lines": [line.as_dict() for line in self.lines],
            "summary": self.summary,
            "calculated_total_cost": self.calculated_total_cost,
            "estimated_cost": self.estimated_cost,
            "cost_increased": self.cost_increased,
            "estimated_cost_updated": self.estimated_cost_updated,
        }


def _clean_decisions(decisions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not decisions or not isinstance(decisions, list):
        raise ValidationError("At least one item decision is required")
    cleaned = []
    for idx, raw in enumerate(decisions, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Decision {idx} is malformed")
        entry = {
            "item_id": parse_id(raw.get("item_id"), f"decisions[{idx}].item_id"),
            "status": parse_choice(
                raw.get("status"), ItemApprovalStatus, f"decisions[{idx}].status"
            ),
            "comments": optional_text(raw.get("comments")),
            "quantity": None,
        }
        if raw.get("quantity") not in (None, ""):
            entry["quantity"] = parse_positive_int(
                raw.get("quantity"), f"decisions[{idx}].quantity"
            )
        cleaned.append(entry)
    return cleaned


def _can_decide(request_id: int, actor) -> bool:
    if permissions.has_permission(actor, "decide_items"):
        return True
    return Approval.objects.filter(
        request_id=request_id, approver_id=getattr(actor, "pk", None), is_active=True
    ).exists()


def _status_counts(items) -> Dict[str, int]:
    counts = {"approved": 0, "rejected": 0, "pending": 0}
    for item in items:
        counts[item.approval_status.lower()] += 1
    counts["total"] = sum(counts.values())
    return counts


def apply_item_decisions(
    request_id: int,
    decisions: List[Dict[str, Any]],
    actor,
    update_estimated_cost: bool = False,
) -> ItemDecisionResult:
    """Apply ``[{item_id, status, comments, quantity?}]`` to a request's items."""

    cleaned = _clean_decisions(decisions)
    if not Request.objects.filter(pk=request_id).exists():
        raise NotFoundError("Request not found", request_id=request_id)
    if not _can_decide(request_id, actor):
        raise AuthorizationError("You are not allowed to decide items on this request")

    result = ItemDecisionResult(request_id=request_id)
    with transaction.atomic():
        request = Request.objects.select_for_update().get(pk=request_id)
        items = {
            item.pk: item
            for item in RequestedItem.objects.select_for_update().filter(request=request)
        }
        now = timezone.now()

        for entry in cleaned:
            item = items.get(entry["item_id"])
            if item is None:
                result.lines.append(LineResult(entry["item_id"], FAILED, "not_found"))
                continue
            if item.is_locked_for(actor):
                logger.warning(
                    "Item %s on request %s is locked by user %s",
                    item.pk,
                    request_id,
                    item.approved_by_id,
                )
                result.lines.append(LineResult(item.pk, SKIPPED, "locked"))
                continue

            if entry["quantity"] is not None:
                item.quantity = entry["quantity"]
                item.total_cost = item.unit_cost * entry["quantity"]
            item.approval_status = entry["status"]
            if entry["comments"] is not None:
                item.approval_comments = entry["comments"]
            if entry["status"] == ItemApprovalStatus.PENDING:
                item.approved_by = None
                item.approved_at = None
            else:
                item.approved_by = actor
                item.approved_at = now
            item.save()
            result.lines.append(LineResult(item.pk, APPLIED))

        result.summary = _status_counts(items.values())
        result.calculated_total_cost = sum(
            (item.total_cost for item in items.values()), Decimal("0")
        )
        result.cost_increased = result.calculated_total_cost > request.estimated_cost
        if update_estimated_cost and result.cost_increased:
            request.estimated_cost = result.calculated_total_cost
            request.save(update_fields=["estimated_cost", "updated_at"])
            result.estimated_cost_updated = True
            request_service.log_action(
                request,
                "Estimated cost updated",
                actor,
                f"New estimated cost {result.calculated_total_cost}",
            )
        result.estimated_cost = request.estimated_cost

        request_service.log_action(
            request,
            "Item decisions updated",
            actor,
            f"applied {len(result.applied)}, skipped {len(result.skipped)}, "
            f"failed {len(result.failed)}",
        )

    return result


def item_status_summary(request_id: int) -> Dict[str, Any]:
    data = RequestedItem.objects.filter(request_id=request_id).aggregate(
        approved=Count("id", filter=Q(approval_status=ItemApprovalStatus.APPROVED)),
        rejected=Count("id", filter=Q(approval_status=ItemApprovalStatus.REJECTED)),
        pending=Count("id", filter=Q(approval_status=ItemApprovalStatus.PENDING)),
        total=Count("id"),
        calculated_total_cost=Sum("total_cost"),
    )
    data["calculated_total_cost"] = data["calculated_total_cost"] or Decimal("0")
    return data
