"""Per-request approval chain.

A request's approvals are numbered levels of which at most one is active.
Every transition locks the request row first and then its approvals, and
commits the approval change together with the request status.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from procurement.exceptions import (
    AuthorizationError,
    InvalidApprovalState,
    NotFoundError,
    ValidationError,
)
from procurement.models import (
    Approval,
    ApprovalRoute,
    ApprovalStatus,
    Request,
    RequestStatus,
    StaffProfile,
)

from . import notification_service, permissions, request_service
from .validators import optional_text, parse_amount, parse_choice, parse_flag

logger = logging.getLogger(__name__)

REVIEW_SUBJECT = "Purchase Request Needs Your Review"

# Route role that stands for the person who raised the request.
REQUESTER_ROLE = "requester"
FALLBACK_ROLE = "SCM"
# Department heads may only decide requests raised in their own department.
DEPARTMENT_SCOPED_ROLES = ("HOD",)


@dataclass(frozen=True)
class WorkflowState:
    NO_ACTIVE_APPROVAL = "NoActiveApproval"
    PENDING_AT_LEVEL = "PendingAtLevel"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ON_HOLD = "OnHold"

    kind: str
    level: Optional[int] = None

    def __str__(self) -> str:
        if self.level is not None:
            return f"{self.kind}({self.level})"
        return self.kind


@dataclass
class Decision:
    approval: Approval
    request_status: str
    next_approval: Optional[Approval] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "approval_id": self.approval.pk,
            "approval_status": self.approval.status,
            "request_id": self.approval.request_id,
            "request_status": self.request_status,
            "next_approval_id": self.next_approval.pk if self.next_approval else None,
            "next_approval_level": (
                self.next_approval.approval_level if self.next_approval else None
            ),
        }


def _display_name(user) -> str:
    if user is None:
        return ""
    return user.get_full_name() or user.get_username()


def _lock_request(request_id: int) -> Request:
    request = (
        Request.objects.select_for_update()
        .select_related("department", "requester")
        .filter(pk=request_id)
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found", request_id=request_id)
    return request


def _lock_approval(approval_id: int):
    """Lock the owning request, then the approval itself."""
    request_id = (
        Approval.objects.filter(pk=approval_id).values_list("request_id", flat=True).first()
    )
    if request_id is None:
        raise NotFoundError("Approval not found", approval_id=approval_id)
    request = _lock_request(request_id)
    approval = (
        Approval.objects.select_for_update()
        .select_related("approver")
        .get(pk=approval_id)
    )
    return request, approval


def _require_approver(approval: Approval, actor) -> None:
    if getattr(actor, "pk", None) != approval.approver_id:
        raise AuthorizationError(
            "Only the assigned approver can act on this approval",
            approval_id=approval.pk,
        )


def _require_step_role(approval: Approval, request: Request, actor) -> None:
    role = permissions.role_of(actor)
    if permissions.role_in(actor, DEPARTMENT_SCOPED_ROLES):
        profile = permissions.staff_profile(actor)
        if profile is None or profile.department_id != request.department_id:
            raise AuthorizationError(
                f"Only the {role} of the requesting department can decide this request",
                approval_id=approval.pk,
            )
    expected = (approval.route_role or "").strip()
    if expected and expected.lower() != role.lower():
        raise AuthorizationError(
            f"Only users with role '{expected}' can decide at this level",
            approval_id=approval.pk,
            expected_role=expected,
        )


def _notify_reviewer(approval: Approval, request: Request) -> None:
    body = "\n".join(
        [
            f"Request #{request.pk} ({request.request_type}) from "
            f"{request.department.name} is waiting for your review.",
            f"Approval level: {approval.approval_level}",
            f"Urgent: {'Yes' if request.is_urgent else 'No'}",
        ]
    )
    notification_service.send_email_on_commit(
        [approval.approver.email], REVIEW_SUBJECT, body
    )


def _notify_requester(request: Request, comments: Optional[str]) -> None:
    lines = [f"Your request #{request.pk} ({request.request_type}) was {request.status.lower()}."]
    if comments:
        lines.append(f"Comments: {comments}")
    notification_service.send_email_on_commit(
        [request.requester.email], f"Request #{request.pk} {request.status}", "\n".join(lines)
    )


def _resolve_users(approvers: Iterable[Any]) -> List[Any]:
    User = get_user_model()
    ids = [getattr(a, "pk", a) for a in approvers]
    try:
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        raise ValidationError("Approvers must be user ids")
    users = User.objects.in_bulk(ids)
    missing = [i for i in ids if i not in users or not users[i].is_active]
    if missing:
        raise NotFoundError("Unknown or inactive approver", user_ids=missing)
    return [users[i] for i in ids]


def start_workflow(request_id: int, approvers: Iterable[Any], actor=None) -> List[Approval]:
    """Seed levels 1..N from an explicit approver list and activate level 1."""

    approvers = list(approvers or [])
    if not approvers:
        raise ValidationError("At least one approver is required")
    users = _resolve_users(approvers)

    with transaction.atomic():
        request = _lock_request(request_id)
        if request.approvals.exists():
            raise InvalidApprovalState(
                "Approval workflow already started", request_id=request.pk
            )
        created = [
            Approval.objects.create(
                request=request,
                approver=user,
                approval_level=level,
                status=ApprovalStatus.PENDING,
                is_active=level == 1,
                is_urgent=request.is_urgent,
            )
            for level, user in enumerate(users, start=1)
        ]
        request.status = RequestStatus.PENDING
        request.save(update_fields=["status", "updated_at"])
        request_service.log_action(
            request, "Approval workflow started", actor, f"{len(created)} level(s)"
        )
        _notify_reviewer(created[0], request)

    logger.info("Started %s-level workflow for request %s", len(created), request_id)
    return created


def _find_user_for_role(role: str, department=None):
    profiles = (
        StaffProfile.objects.select_related("user")
        .filter(role__iexact=role, user__is_active=True)
        .order_by("user_id")
    )
    if department is not None:
        match = profiles.filter(department=department).first()
        if match is not None:
            return match.user
    match = profiles.first()
    return match.user if match else None


def initialize_approvals(request_id: int, actor=None) -> List[Approval]:
    """Seed the chain from the configured routes for the request.

    Steps owned by the requester are recorded as already approved. When no
    route matches, a single SCM step is created.
    """

    with transaction.atomic():
        request = _lock_request(request_id)
        if request.approvals.exists():
            raise InvalidApprovalState(
                "Approval workflow already started", request_id=request.pk
            )
        cost = request.estimated_cost or Decimal("0")
        routes = ApprovalRoute.objects.filter(
            request_type=request.request_type,
            department_type__iexact=request.department.type,
            min_amount__lte=cost,
            max_amount__gte=cost,
        ).order_by("approval_level", "id")
        requester_role = permissions.role_of(request.requester).lower()
        now = timezone.now()

        created: List[Approval] = []
        for route in routes:
            role = route.role.strip()
            self_step = role.lower() == REQUESTER_ROLE or (
                route.approval_level == 1 and role.lower() == requester_role
            )
            if self_step:
                approver = request.requester
            else:
                approver = _find_user_for_role(role, request.department)
            if approver is None:
                logger.warning(
                    "No active user with role %s for request %s; skipping level %s",
                    role,
                    request.pk,
                    route.approval_level,
                )
                continue
            created.append(
                Approval.objects.create(
                    request=request,
                    approver=approver,
                    approval_level=route.approval_level,
                    status=ApprovalStatus.APPROVED if self_step else ApprovalStatus.PENDING,
                    approved_at=now if self_step else None,
                    is_urgent=request.is_urgent,
                    route_role="" if self_step else role,
                )
            )

        if not created:
            approver = _find_user_for_role(FALLBACK_ROLE)
            if approver is None:
                raise ValidationError(
                    "No approvers are configured for this request", request_id=request.pk
                )
            created.append(
                Approval.objects.create(
                    request=request,
                    approver=approver,
                    approval_level=1,
                    is_urgent=request.is_urgent,
                    route_role=FALLBACK_ROLE,
                )
            )

        first = (
            request.approvals.filter(status=ApprovalStatus.PENDING)
            .select_related("approver")
            .order_by("approval_level")
            .first()
        )
        if first is None:
            request.status = RequestStatus.APPROVED
        else:
            first.is_active = True
            first.save(update_fields=["is_active"])
            request.status = RequestStatus.PENDING
            _notify_reviewer(first, request)
        request.save(update_fields=["status", "updated_at"])
        request_service.log_action(
            request, "Approvals initialized", actor, f"{len(created)} level(s)"
        )

    return created


def decide(
    approval_id: int,
    status: str,
    actor,
    comments: Optional[str] = None,
    is_urgent: Optional[bool] = None,
    estimated_cost: Any = None,
) -> Decision:
    """Approve or reject the active approval and advance the chain."""

    status = parse_choice(
        status,
        ApprovalStatus,
        allowed=[ApprovalStatus.APPROVED, ApprovalStatus.REJECTED],
    )
    if estimated_cost is not None:
        estimated_cost = parse_amount(estimated_cost, "estimated_cost")
        permissions.require_permission(
            actor, "override_cost", "You are not allowed to change the estimated cost"
        )
    if is_urgent is not None:
        is_urgent = parse_flag(is_urgent, "is_urgent")
    comments = optional_text(comments)

    with transaction.atomic():
        request, approval = _lock_approval(approval_id)
        _require_approver(approval, actor)
        _require_step_role(approval, request, actor)
        if not approval.is_active or approval.status != ApprovalStatus.PENDING:
            raise InvalidApprovalState(
                f"Approval is not awaiting a decision (status {approval.status})",
                approval_id=approval.pk,
                status=approval.status,
                is_active=approval.is_active,
            )

        approval.status = status
        approval.comments = comments
        approval.approved_at = timezone.now()
        approval.is_active = False
        # Only a change to the urgent flag needs mark_urgent.
        if is_urgent is not None and is_urgent != request.is_urgent:
            permissions.require_permission(
                actor, "mark_urgent", "You are not allowed to change the urgent flag"
            )
            request.is_urgent = is_urgent
            approval.is_urgent = is_urgent
        approval.save()

        if estimated_cost is not None:
            request.estimated_cost = estimated_cost
        request_service.log_action(request, f"Approval {status}", actor, comments)

        next_approval = None
        if status == ApprovalStatus.APPROVED:
            next_approval = (
                request.approvals.select_for_update()
                .filter(
                    approval_level__gt=approval.approval_level,
                    status=ApprovalStatus.PENDING,
                )
                .select_related("approver")
                .order_by("approval_level")
                .first()
            )
        else:
            request.approvals.filter(
                approval_level__gt=approval.approval_level
            ).update(is_active=False)

        if next_approval is not None:
            next_approval.is_active = True
            if request.is_urgent:
                next_approval.is_urgent = True
            next_approval.save(update_fields=["is_active", "is_urgent"])
            request.status = RequestStatus.PENDING
            request_service.log_action(
                request, f"Level {next_approval.approval_level} activated", actor
            )
            _notify_reviewer(next_approval, request)
        else:
            request.status = status
            _notify_requester(request, comments)
        request.save()

    logger.info(
        "Approval %s on request %s %s by %s",
        approval.pk,
        request.pk,
        status,
        getattr(actor, "pk", None),
    )
    return Decision(approval, request.status, next_approval)


def hold(approval_id: int, actor, comments: Optional[str] = None) -> Decision:
    """Put the active approval on hold without advancing the chain."""

    comments = optional_text(comments)
    with transaction.atomic():
        request, approval = _lock_approval(approval_id)
        _require_approver(approval, actor)
        if not approval.is_active or approval.status != ApprovalStatus.PENDING:
            raise InvalidApprovalState(
                "Only a pending active approval can be put on hold",
                approval_id=approval.pk,
                status=approval.status,
            )
        approval.status = ApprovalStatus.ON_HOLD
        if comments:
            approval.comments = comments
        approval.save(update_fields=["status", "comments"])
        request.status = RequestStatus.ON_HOLD
        request.save(update_fields=["status", "updated_at"])
        request_service.log_action(request, "Approval On Hold", actor, comments)
    return Decision(approval, request.status)


def resume(approval_id: int, actor, comments: Optional[str] = None) -> Decision:
    comments = optional_text(comments)
    with transaction.atomic():
        request, approval = _lock_approval(approval_id)
        _require_approver(approval, actor)
        if not approval.is_active or approval.status != ApprovalStatus.ON_HOLD:
            raise InvalidApprovalState(
                "Only an approval on hold can be resumed",
                approval_id=approval.pk,
                status=approval.status,
            )
        approval.status = ApprovalStatus.PENDING
        if comments:
            approval.comments = comments
        approval.save(update_fields=["status", "comments"])
        request.status = RequestStatus.PENDING
        request.save(update_fields=["status", "updated_at"])
        request_service.log_action(request, "Approval Resumed", actor, comments)
    return Decision(approval, request.status)


def forward(
    approval_id: int, target_user_id: int, actor, comments: Optional[str] = None
) -> Decision:
    """Approve the current step and insert a new active step for ``target_user_id``."""

    if not permissions.role_in(actor, settings.PROCUREMENT_FORWARDING_ROLES):
        raise AuthorizationError("Your role is not allowed to forward approvals")
    (target,) = _resolve_users([target_user_id])
    if target.pk == getattr(actor, "pk", None):
        raise ValidationError("An approval cannot be forwarded to yourself")
    comments = optional_text(comments)

    with transaction.atomic():
        request, approval = _lock_approval(approval_id)
        _require_approver(approval, actor)
        if not approval.is_active or approval.status != ApprovalStatus.PENDING:
            raise InvalidApprovalState(
                "Only a pending active approval can be forwarded",
                approval_id=approval.pk,
                status=approval.status,
            )
        approval.status = ApprovalStatus.APPROVED
        approval.is_active = False
        approval.approved_at = timezone.now()
        approval.comments = comments
        approval.save()

        request.approvals.filter(approval_level__gt=approval.approval_level).update(
            approval_level=F("approval_level") + 1
        )
        inserted = Approval.objects.create(
            request=request,
            approver=target,
            approval_level=approval.approval_level + 1,
            status=ApprovalStatus.PENDING,
            is_active=True,
            is_urgent=request.is_urgent,
        )
        request.status = RequestStatus.PENDING
        request.save(update_fields=["status", "updated_at"])
        request_service.log_action(
            request,
            f"Forwarded to {_display_name(target)}",
            actor,
            comments,
        )
        _notify_reviewer(inserted, request)

    logger.info(
        "Approval %s forwarded to user %s at level %s",
        approval.pk,
        target.pk,
        inserted.approval_level,
    )
    return Decision(approval, request.status, inserted)


def workflow_state(request_id: int) -> WorkflowState:
    request = Request.objects.filter(pk=request_id).only("status").first()
    if request is None:
        raise NotFoundError("Request not found", request_id=request_id)
    if request.status == RequestStatus.REJECTED:
        return WorkflowState(WorkflowState.REJECTED)
    if request.status in (RequestStatus.APPROVED, RequestStatus.COMPLETED):
        return WorkflowState(WorkflowState.APPROVED)
    active = Approval.objects.filter(request_id=request_id, is_active=True).first()
    if active is None:
        return WorkflowState(WorkflowState.NO_ACTIVE_APPROVAL)
    if active.status == ApprovalStatus.ON_HOLD:
        return WorkflowState(WorkflowState.ON_HOLD, active.approval_level)
    return WorkflowState(WorkflowState.PENDING_AT_LEVEL, active.approval_level)


def approval_timeline(request_id: int) -> List[Dict[str, Any]]:
    if not Request.objects.filter(pk=request_id).exists():
        raise NotFoundError("Request not found", request_id=request_id)
    approvals = (
        Approval.objects.filter(request_id=request_id)
        .select_related("approver")
        .order_by("approval_level", "id")
    )
    return [
        {
            "id": a.pk,
            "approval_level": a.approval_level,
            "approver_id": a.approver_id,
            "approver_name": _display_name(a.approver),
            "status": a.status,
            "is_active": a.is_active,
            "is_urgent": a.is_urgent,
            "comments": a.comments,
            "approved_at": a.approved_at,
        }
        for a in approvals
    ]
