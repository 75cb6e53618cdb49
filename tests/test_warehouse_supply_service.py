import threading
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import connection
from django.utils import timezone

from procurement.exceptions import (
    AuthorizationError,
    InvalidApprovalState,
    NotFoundError,
    OverSupply,
    QuarantinedLot,
    ValidationError,
)
from procurement.models import (
    ItemRecall,
    RecallStatus,
    RecallType,
    Request,
    RequestLog,
    RequestStatus,
    RequestType,
    Warehouse,
    WarehouseStockMovement,
    WarehouseSuppliedItem,
)
from procurement.services import stock_service, warehouse_supply_service


@pytest.fixture
def gloves(stock_item_factory, warehouse):
    item = stock_item_factory(name="Gloves")
    stock_service.increase_stock(warehouse.pk, item.pk, 500)
    return item


def _line(request, name):
    return request.warehouse_items.get(item_name=name)


@pytest.mark.django_db
def test_oversupply_is_refused_and_nothing_written(
    supply_request_factory, storekeeper, gloves, warehouse
):
    request = supply_request_factory({"Gloves": 100})
    line = _line(request, "Gloves")

    first = warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": line.pk, "quantity": 60}], storekeeper
    )
    assert first.totals[line.pk] == {"requested": 100, "supplied": 60, "remaining": 40}
    assert not first.completed

    with pytest.raises(OverSupply):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": line.pk, "quantity": 50}], storekeeper
        )

    assert WarehouseSuppliedItem.objects.filter(item=line).count() == 1
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("440")
    request.refresh_from_db()
    assert request.status == RequestStatus.APPROVED


@pytest.mark.django_db
def test_full_supply_completes_request(supply_request_factory, storekeeper, gloves, warehouse):
    request = supply_request_factory({"Gloves": 100})
    line = _line(request, "Gloves")

    warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": line.pk, "quantity": 60}], storekeeper
    )
    result = warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": line.pk, "quantity": 40}], storekeeper
    )

    assert result.completed
    assert result.status == RequestStatus.COMPLETED
    request.refresh_from_db()
    assert request.status == RequestStatus.COMPLETED
    assert request.completed_at is not None
    movement = WarehouseStockMovement.objects.filter(
        direction=WarehouseStockMovement.DIRECTION_OUT
    ).last()
    assert movement.reference_request == request
    assert movement.to_department == request.department
    log = RequestLog.objects.filter(request=request, action="Warehouse Items Supplied").last()
    assert "Gloves x40" in log.comments
    assert "Main Store" in log.comments


@pytest.mark.django_db
def test_later_line_failure_rolls_back_earlier_lines(
    supply_request_factory, storekeeper, gloves, stock_item_factory, warehouse
):
    masks = stock_item_factory(name="Masks")
    stock_service.increase_stock(warehouse.pk, masks.pk, 50)
    request = supply_request_factory({"Gloves": 10, "Masks": 5})

    with pytest.raises(OverSupply):
        warehouse_supply_service.record_supplied_items(
            request.pk,
            [
                {"item_id": _line(request, "Gloves").pk, "quantity": 10},
                {"item_id": _line(request, "Masks").pk, "quantity": 6},
            ],
            storekeeper,
        )

    assert not WarehouseSuppliedItem.objects.exists()
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("500")
    assert stock_service.get_balance(warehouse.pk, masks.pk) == Decimal("50")


@pytest.mark.django_db
def test_missing_inventory_is_a_warning(supply_request_factory, storekeeper, stock_item_factory):
    stock_item_factory(name="Gauze")
    request = supply_request_factory({"Gauze": 3})

    result = warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": _line(request, "Gauze").pk, "quantity": 3}], storekeeper
    )

    assert result.completed
    assert result.lines[0].outcome == "skipped"
    assert "No inventory recorded" in result.warnings[0]
    assert WarehouseSuppliedItem.objects.count() == 1


@pytest.mark.django_db
def test_unmatched_catalog_item_is_a_warning(supply_request_factory, storekeeper):
    request = supply_request_factory({"Custom splint": 1})

    result = warehouse_supply_service.record_supplied_items(
        request.pk,
        [{"item_id": _line(request, "Custom splint").pk, "quantity": 1}],
        storekeeper,
    )

    assert result.lines[0].stock_item_id is None
    assert "No stock item matches" in result.warnings[0]
    assert not WarehouseStockMovement.objects.filter(
        direction=WarehouseStockMovement.DIRECTION_OUT
    ).exists()


@pytest.mark.django_db
def test_stock_item_matched_case_insensitively(supply_request_factory, storekeeper, gloves, warehouse):
    request = supply_request_factory({"GLOVES": 5})
    result = warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": _line(request, "GLOVES").pk, "quantity": 5}], storekeeper
    )
    assert result.lines[0].stock_item_id == gloves.pk
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("495")


@pytest.mark.django_db
def test_quarantined_lot_is_refused(supply_request_factory, storekeeper, gloves, warehouse):
    ItemRecall.objects.create(
        stock_item=gloves,
        item_name="Gloves",
        lot_number="G-7",
        reason="torn",
        recall_type=RecallType.WAREHOUSE_TO_PROCUREMENT,
        status=RecallStatus.QUARANTINED,
        quarantine_active=True,
        quarantine_started_at=timezone.now(),
    )
    request = supply_request_factory({"Gloves": 5})

    with pytest.raises(QuarantinedLot):
        warehouse_supply_service.record_supplied_items(
            request.pk,
            [{"item_id": _line(request, "Gloves").pk, "quantity": 5, "lot_number": "G-7"}],
            storekeeper,
        )
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("500")


@pytest.mark.django_db
def test_request_must_be_approved(supply_request_factory, storekeeper):
    request = supply_request_factory(status=RequestStatus.PENDING)
    with pytest.raises(InvalidApprovalState):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": _line(request, "Gloves").pk, "quantity": 1}], storekeeper
        )


@pytest.mark.django_db
def test_request_must_be_warehouse_supply(supply_request_factory, storekeeper):
    request = supply_request_factory(request_type=RequestType.NON_STOCK)
    with pytest.raises(ValidationError):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": _line(request, "Gloves").pk, "quantity": 1}], storekeeper
        )


@pytest.mark.django_db
def test_actor_must_belong_to_supply_warehouse(supply_request_factory, user_factory):
    annex = Warehouse.objects.create(name="Annex")
    keeper = user_factory("annex", warehouse=annex, perms=["record_warehouse_supply"])
    request = supply_request_factory()
    with pytest.raises(AuthorizationError):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": _line(request, "Gloves").pk, "quantity": 1}], keeper
        )


@pytest.mark.django_db
def test_permission_required(supply_request_factory, user_factory, warehouse):
    keeper = user_factory("nopem", warehouse=warehouse)
    request = supply_request_factory()
    with pytest.raises(AuthorizationError):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": _line(request, "Gloves").pk, "quantity": 1}], keeper
        )


@pytest.mark.django_db
@pytest.mark.parametrize("items", [[], [{"item_id": 1, "quantity": 0}], "Gloves"])
def test_malformed_payload_rejected(supply_request_factory, storekeeper, items):
    request = supply_request_factory()
    with pytest.raises(ValidationError):
        warehouse_supply_service.record_supplied_items(request.pk, items, storekeeper)


@pytest.mark.django_db
def test_item_from_another_request_not_found(supply_request_factory, storekeeper):
    request = supply_request_factory()
    other = supply_request_factory()
    with pytest.raises(NotFoundError):
        warehouse_supply_service.record_supplied_items(
            request.pk, [{"item_id": _line(other, "Gloves").pk, "quantity": 1}], storekeeper
        )


@pytest.mark.django_db
def test_supply_progress_and_queue(supply_request_factory, storekeeper, gloves):
    request = supply_request_factory({"Gloves": 10})
    line = _line(request, "Gloves")
    warehouse_supply_service.record_supplied_items(
        request.pk, [{"item_id": line.pk, "quantity": 4}], storekeeper
    )

    progress = warehouse_supply_service.supply_progress(request.pk)
    assert progress == [
        {
            "item_id": line.pk,
            "item_name": "Gloves",
            "stock_item_id": None,
            "requested": 10,
            "supplied": 4,
            "remaining": 6,
        }
    ]

    queue = warehouse_supply_service.list_supply_requests(storekeeper)
    assert [entry["id"] for entry in queue] == [request.pk]
    assert queue[0]["department_name"] == "Cardiology"


@pytest.mark.django_db
def test_request_is_rechecked_once_locked(supply_request_factory, storekeeper, gloves, warehouse):
    request = supply_request_factory({"Gloves": 10})
    line = _line(request, "Gloves")
    check_request = warehouse_supply_service._check_request
    seen = []

    def check_then_reopen(locked, actor):
        check_request(locked, actor)
        seen.append(locked.status)
        if len(seen) == 1:
            Request.objects.filter(pk=locked.pk).update(status=RequestStatus.PENDING)

    with patch.object(
        warehouse_supply_service, "_check_request", side_effect=check_then_reopen
    ):
        with pytest.raises(InvalidApprovalState):
            warehouse_supply_service.record_supplied_items(
                request.pk, [{"item_id": line.pk, "quantity": 5}], storekeeper
            )

    assert seen == [RequestStatus.APPROVED]
    assert not WarehouseSuppliedItem.objects.exists()
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("500")


@pytest.mark.django_db(transaction=True)
def test_concurrent_supply_never_exceeds_requested(
    supply_request_factory, storekeeper, gloves, warehouse
):
    if connection.vendor != "postgresql":
        pytest.skip("row locks are only enforced on PostgreSQL")

    request = supply_request_factory({"Gloves": 100})
    line = _line(request, "Gloves")
    barrier = threading.Barrier(2)
    outcomes = []

    def worker():
        barrier.wait()
        try:
            warehouse_supply_service.record_supplied_items(
                request.pk, [{"item_id": line.pk, "quantity": 60}], storekeeper
            )
            outcomes.append("ok")
        except OverSupply:
            outcomes.append("over")
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok", "over"]
    assert warehouse_supply_service.supply_progress(request.pk)[0]["supplied"] == 60
    assert stock_service.get_balance(warehouse.pk, gloves.pk) == Decimal("440")
