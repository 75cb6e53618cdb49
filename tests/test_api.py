from decimal import Decimal

import pytest

from procurement.models import RecallStatus
from procurement.services import approval_service, stock_service


def _post(client, url, data=None):
    return client.post(url, data or {}, content_type="application/json")


@pytest.mark.django_db
def test_api_requires_login(client):
    response = client.get("/api/requests/")
    assert response.status_code == 403
    assert response.json()["status_code"] == 403


@pytest.mark.django_db
def test_add_and_issue_stock(logged_in_client, stock_item_factory, department, warehouse):
    item = stock_item_factory()

    added = _post(
        logged_in_client, "/api/stock-levels/add/", {"stock_item": item.pk, "quantity": 10}
    )
    assert added.status_code == 201
    assert added.json()["balance"]["warehouse_id"] == warehouse.pk

    issued = _post(
        logged_in_client,
        "/api/stock-levels/issue/",
        {"stock_item": item.pk, "quantity": 7, "department": department.pk},
    )
    assert issued.status_code == 200

    refused = _post(
        logged_in_client,
        "/api/stock-levels/issue/",
        {"stock_item": item.pk, "quantity": 7, "department": department.pk},
    )
    assert refused.status_code == 409
    body = refused.json()
    assert body["code"] == "insufficient_stock"
    assert body["status_code"] == 409
    assert stock_service.get_balance(warehouse.pk, item.pk) == Decimal("3")


@pytest.mark.django_db
def test_validation_errors_map_to_400(logged_in_client, stock_item_factory):
    item = stock_item_factory()
    response = _post(
        logged_in_client, "/api/stock-levels/add/", {"stock_item": item.pk, "quantity": 0}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


@pytest.mark.django_db
def test_create_request_and_decide(client, requester, department, user_factory):
    hod = user_factory("hod", role="HOD", department=department)
    client.force_login(requester)

    created = _post(
        client,
        "/api/requests/",
        {
            "request_type": "Non-Stock",
            "department": department.pk,
            "items": [{"item_name": "Desk", "quantity": 1, "unit_cost": "120"}],
            "approvers": [hod.pk],
        },
    )
    assert created.status_code == 201
    request_id = created.json()["id"]
    approval_id = created.json()["approvals"][0]["id"]

    forbidden = _post(client, f"/api/approvals/{approval_id}/decide/", {"status": "Approved"})
    assert forbidden.status_code == 403

    client.force_login(hod)
    decided = _post(client, f"/api/approvals/{approval_id}/decide/", {"status": "Approved"})
    assert decided.status_code == 200
    assert decided.json()["request_status"] == "Approved"

    summary = client.get(f"/api/requests/{request_id}/summary/").json()
    assert summary["workflow_state"] == "Approved"
    assert approval_service.workflow_state(request_id).kind == "Approved"


@pytest.mark.django_db
def test_recall_create_and_escalate(client, requester, storekeeper, stock_item_factory):
    item = stock_item_factory(name="Syringe")
    client.force_login(requester)
    created = _post(
        client,
        "/api/recalls/",
        {"reason": "contamination", "stock_item": item.pk, "lot_number": "L100"},
    )
    assert created.status_code == 201
    recall_id = created.json()["id"]

    client.force_login(storekeeper)
    first = _post(client, f"/api/recalls/{recall_id}/escalate/", {"warehouse_notes": "confirmed"})
    assert first.status_code == 200
    assert first.json()["status"] == RecallStatus.PENDING_PROCUREMENT_ACTION

    second = _post(client, f"/api/recalls/{recall_id}/escalate/")
    assert second.status_code == 409
    assert second.json()["code"] == "already_escalated"


@pytest.mark.django_db
def test_unknown_request_is_404(logged_in_client):
    response = logged_in_client.get("/api/requests/999999/summary/")
    assert response.status_code == 404
    assert response.json()["status_code"] == 404
