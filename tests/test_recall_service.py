from unittest.mock import patch

import pytest

from procurement.exceptions import (
    AlreadyEscalated,
    AlreadyQuarantined,
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from procurement.models import ItemRecall, RecallStatus, RecallType
from procurement.services import recall_service


@pytest.fixture
def procurement_officer(user_factory):
    return user_factory(
        "buyer", role="ProcurementSpecialist", perms=["quarantine_recalls"]
    )


@pytest.fixture
def syringe(stock_item_factory):
    return stock_item_factory(name="Syringe")


@pytest.fixture
def department_recall(requester, syringe):
    return recall_service.create_department_recall(
        requester, "contamination", item_id=syringe.pk, lot_number="L100", quantity=20
    )


@pytest.mark.django_db
def test_department_recall_escalates_once(department_recall, storekeeper, department):
    assert department_recall.status == RecallStatus.PENDING_WAREHOUSE_REVIEW
    assert department_recall.recall_type == RecallType.DEPARTMENT_TO_WAREHOUSE
    assert department_recall.department == department
    assert department_recall.item_name == "Syringe"

    recall = recall_service.escalate_recall(
        department_recall.pk, storekeeper, "supplier lot confirmed"
    )
    assert recall.status == RecallStatus.PENDING_PROCUREMENT_ACTION
    assert recall.escalated_to_procurement
    assert recall.escalated_by == storekeeper
    assert recall.warehouse_notes == "supplier lot confirmed"

    with pytest.raises(AlreadyEscalated):
        recall_service.escalate_recall(department_recall.pk, storekeeper)


@pytest.mark.django_db
def test_escalation_notifies_procurement(
    department_recall,
    storekeeper,
    procurement_officer,
    mailoutbox,
    django_capture_on_commit_callbacks,
):
    with django_capture_on_commit_callbacks(execute=True):
        recall_service.escalate_recall(department_recall.pk, storekeeper, "urgent")

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.subject == recall_service.ESCALATED_RECALL_SUBJECT
    assert message.to == ["buyer@example.com"]
    assert "Reason: contamination" in message.body
    assert "Quantity affected: 20" in message.body
    assert "Warehouse notes: urgent" in message.body


@pytest.mark.django_db
def test_notification_failure_keeps_escalation(
    department_recall, storekeeper, procurement_officer, django_capture_on_commit_callbacks
):
    with patch(
        "procurement.services.notification_service.send_mail",
        side_effect=ConnectionError("smtp down"),
    ):
        with django_capture_on_commit_callbacks(execute=True):
            recall_service.escalate_recall(department_recall.pk, storekeeper)

    department_recall.refresh_from_db()
    assert department_recall.escalated_to_procurement


@pytest.mark.django_db
def test_escalation_requires_permission(department_recall, requester):
    with pytest.raises(AuthorizationError):
        recall_service.escalate_recall(department_recall.pk, requester)


@pytest.mark.django_db
def test_quarantine_twice_keeps_first_start_time(department_recall, procurement_officer):
    first = recall_service.quarantine_recall(
        department_recall.pk, procurement_officer, "lab confirmed"
    )
    started = first.quarantine_started_at
    assert first.quarantine_active
    assert first.status == RecallStatus.QUARANTINED
    assert recall_service.is_lot_quarantined(None, "syringe", "L100")

    with pytest.raises(AlreadyQuarantined):
        recall_service.quarantine_recall(
            department_recall.pk, procurement_officer, "again"
        )

    department_recall.refresh_from_db()
    assert department_recall.quarantine_started_at == started
    assert department_recall.quarantine_reason == "lab confirmed"


@pytest.mark.django_db
def test_quarantine_after_escalation_keeps_start_time(department_recall, storekeeper):
    quarantined = recall_service.quarantine_recall(
        department_recall.pk, storekeeper, "lab confirmed"
    )
    escalated = recall_service.escalate_recall(department_recall.pk, storekeeper)
    assert escalated.status == RecallStatus.PENDING_PROCUREMENT_ACTION
    assert escalated.blocks_issuance

    again = recall_service.quarantine_recall(department_recall.pk, storekeeper, "still bad")
    assert again.status == RecallStatus.QUARANTINED
    assert again.quarantine_started_at == quarantined.quarantine_started_at


@pytest.mark.django_db
def test_warehouse_recall_is_quarantined_and_escalated(
    storekeeper, syringe, procurement_officer, mailoutbox, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        recall = recall_service.create_warehouse_recall(
            storekeeper, "expired", item_id=syringe.pk, lot_number="L200"
        )

    assert recall.recall_type == RecallType.WAREHOUSE_TO_PROCUREMENT
    assert recall.status == RecallStatus.QUARANTINED
    assert recall.escalated_to_procurement
    assert recall.quarantine_active
    assert recall.quarantine_started_at is not None
    assert recall_service.is_lot_quarantined(syringe.pk, None, "L200")
    assert [m.subject for m in mailoutbox] == [recall_service.WAREHOUSE_RECALL_SUBJECT]


@pytest.mark.django_db
def test_warehouse_recall_requires_permission(requester, syringe):
    with pytest.raises(AuthorizationError):
        recall_service.create_warehouse_recall(requester, "expired", item_id=syringe.pk)


@pytest.mark.django_db
def test_close_lifts_quarantine(department_recall, storekeeper):
    recall_service.quarantine_recall(department_recall.pk, storekeeper, "lab confirmed")
    closed = recall_service.close_recall(
        department_recall.pk, storekeeper, "closed", "supplier replaced lot"
    )

    assert closed.status == RecallStatus.CLOSED
    assert not closed.quarantine_active
    assert closed.quarantine_started_at is not None
    assert not recall_service.is_lot_quarantined(None, "Syringe", "L100")
    with pytest.raises(ConflictError):
        recall_service.close_recall(department_recall.pk, storekeeper, "Rejected")


@pytest.mark.django_db
def test_recall_needs_reason_and_item(requester, syringe):
    with pytest.raises(ValidationError):
        recall_service.create_department_recall(requester, "  ", item_id=syringe.pk)
    with pytest.raises(ValidationError):
        recall_service.create_department_recall(requester, "broken")
    assert not ItemRecall.objects.exists()


@pytest.mark.django_db
def test_unknown_stock_item_falls_back_to_name(requester):
    recall = recall_service.create_department_recall(
        requester, "broken", item_id=424242, item_name="Old pump"
    )
    assert recall.stock_item_id is None
    assert recall.item_name == "Old pump"


@pytest.mark.django_db
def test_visibility_by_capability(
    department_recall, storekeeper, procurement_officer, requester, user_factory
):
    warehouse_recall = recall_service.create_warehouse_recall(
        storekeeper, "expired", item_name="Bandage"
    )

    warehouse_view = {row["id"] for row in recall_service.list_visible_recalls(storekeeper)}
    assert warehouse_view == {department_recall.pk, warehouse_recall.pk}

    procurement_view = recall_service.list_visible_recalls(procurement_officer)
    assert [row["id"] for row in procurement_view] == [warehouse_recall.pk]
    assert procurement_view[0]["department_name"] == "Cardiology"

    department_view = recall_service.list_visible_recalls(requester)
    assert {row["id"] for row in department_view} == {
        department_recall.pk,
        warehouse_recall.pk,
    }

    outsider = user_factory("outsider")
    assert recall_service.list_visible_recalls(outsider) == []
