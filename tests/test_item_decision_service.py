from decimal import Decimal

import pytest

from procurement.exceptions import AuthorizationError, ValidationError
from procurement.models import (
    ItemApprovalStatus,
    Request,
    RequestedItem,
    RequestType,
)
from procurement.services import approval_service, item_decision_service


@pytest.fixture
def reviewers(user_factory, department):
    return (
        user_factory("alice", role="HOD", department=department),
        user_factory("bob", role="SCM", perms=["decide_items"]),
    )


@pytest.fixture
def priced_request(requester, department, reviewers):
    request = Request.objects.create(
        request_type=RequestType.MEDICAL_DEVICE,
        requester=requester,
        department=department,
        estimated_cost=Decimal("300"),
    )
    RequestedItem.objects.create(
        request=request, item_name="Monitor", quantity=1, unit_cost=200, total_cost=200
    )
    RequestedItem.objects.create(
        request=request, item_name="Cable", quantity=10, unit_cost=10, total_cost=100
    )
    approval_service.start_workflow(request.pk, list(reviewers))
    return request


def _item(request, name):
    return RequestedItem.objects.get(request=request, item_name=name)


@pytest.mark.django_db
def test_rejected_item_is_locked_for_other_users(priced_request, reviewers):
    alice, bob = reviewers
    monitor = _item(priced_request, "Monitor")
    cable = _item(priced_request, "Cable")

    item_decision_service.apply_item_decisions(
        priced_request.pk,
        [{"item_id": monitor.pk, "status": "Rejected", "comments": "damaged"}],
        alice,
    )
    result = item_decision_service.apply_item_decisions(
        priced_request.pk,
        [
            {"item_id": monitor.pk, "status": "Approved"},
            {"item_id": cable.pk, "status": "Approved"},
        ],
        bob,
    )

    assert [(line.item_id, line.outcome, line.reason) for line in result.lines] == [
        (monitor.pk, "skipped", "locked"),
        (cable.pk, "applied", None),
    ]
    monitor.refresh_from_db()
    assert monitor.approval_status == ItemApprovalStatus.REJECTED
    assert monitor.approved_by == alice
    assert monitor.approval_comments == "damaged"
    assert result.summary == {"approved": 1, "rejected": 1, "pending": 0, "total": 2}


@pytest.mark.django_db
def test_rejecting_user_can_change_their_decision(priced_request, reviewers):
    alice, _ = reviewers
    monitor = _item(priced_request, "Monitor")
    item_decision_service.apply_item_decisions(
        priced_request.pk, [{"item_id": monitor.pk, "status": "Rejected"}], alice
    )
    result = item_decision_service.apply_item_decisions(
        priced_request.pk, [{"item_id": monitor.pk, "status": "Approved"}], alice
    )
    assert result.lines[0].outcome == "applied"
    monitor.refresh_from_db()
    assert monitor.approval_status == ItemApprovalStatus.APPROVED


@pytest.mark.django_db
def test_quantity_change_recomputes_cost_without_saving_estimate(priced_request, reviewers):
    alice, _ = reviewers
    cable = _item(priced_request, "Cable")

    result = item_decision_service.apply_item_decisions(
        priced_request.pk,
        [{"item_id": cable.pk, "status": "Approved", "quantity": 20}],
        alice,
    )

    cable.refresh_from_db()
    assert cable.quantity == 20
    assert cable.total_cost == Decimal("200")
    assert result.calculated_total_cost == Decimal("400")
    assert result.cost_increased
    assert not result.estimated_cost_updated
    priced_request.refresh_from_db()
    assert priced_request.estimated_cost == Decimal("300")


@pytest.mark.django_db
def test_estimated_cost_persisted_on_opt_in(priced_request, reviewers):
    alice, _ = reviewers
    cable = _item(priced_request, "Cable")

    result = item_decision_service.apply_item_decisions(
        priced_request.pk,
        [{"item_id": cable.pk, "status": "Approved", "quantity": "20"}],
        alice,
        update_estimated_cost=True,
    )

    assert result.estimated_cost_updated
    priced_request.refresh_from_db()
    assert priced_request.estimated_cost == Decimal("400")


@pytest.mark.django_db
def test_lower_total_never_updates_estimate(priced_request, reviewers):
    alice, _ = reviewers
    cable = _item(priced_request, "Cable")
    result = item_decision_service.apply_item_decisions(
        priced_request.pk,
        [{"item_id": cable.pk, "status": "Approved", "quantity": 5}],
        alice,
        update_estimated_cost=True,
    )
    assert not result.cost_increased
    priced_request.refresh_from_db()
    assert priced_request.estimated_cost == Decimal("300")


@pytest.mark.django_db
@pytest.mark.parametrize("quantity", [0, -1, 2.5, "two"])
def test_invalid_quantity_rejects_whole_batch(priced_request, reviewers, quantity):
    alice, _ = reviewers
    monitor = _item(priced_request, "Monitor")
    cable = _item(priced_request, "Cable")

    with pytest.raises(ValidationError):
        item_decision_service.apply_item_decisions(
            priced_request.pk,
            [
                {"item_id": monitor.pk, "status": "Approved"},
                {"item_id": cable.pk, "status": "Approved", "quantity": quantity},
            ],
            alice,
        )
    monitor.refresh_from_db()
    assert monitor.approval_status == ItemApprovalStatus.PENDING


@pytest.mark.django_db
def test_unknown_item_fails_without_blocking_batch(priced_request, reviewers):
    alice, _ = reviewers
    monitor = _item(priced_request, "Monitor")
    result = item_decision_service.apply_item_decisions(
        priced_request.pk,
        [
            {"item_id": 999999, "status": "Approved"},
            {"item_id": monitor.pk, "status": "approved"},
        ],
        alice,
    )
    assert [line.outcome for line in result.lines] == ["failed", "applied"]
    assert result.failed[0].reason == "not_found"


@pytest.mark.django_db
def test_actor_needs_active_step_or_permission(priced_request, user_factory):
    stranger = user_factory("stranger")
    monitor = _item(priced_request, "Monitor")
    with pytest.raises(AuthorizationError):
        item_decision_service.apply_item_decisions(
            priced_request.pk, [{"item_id": monitor.pk, "status": "Approved"}], stranger
        )


@pytest.mark.django_db
def test_item_status_summary(priced_request, reviewers):
    _, bob = reviewers
    monitor = _item(priced_request, "Monitor")
    item_decision_service.apply_item_decisions(
        priced_request.pk, [{"item_id": monitor.pk, "status": "Approved"}], bob
    )
    summary = item_decision_service.item_status_summary(priced_request.pk)
    assert summary["approved"] == 1
    assert summary["pending"] == 1
    assert summary["rejected"] == 0
    assert summary["calculated_total_cost"] == Decimal("300")
