import os
import sys

import django
import pytest

# Ensure project root is on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "procurement_app.settings")
django.setup()

from django.contrib.auth import get_user_model  # noqa: E402
from django.contrib.auth.models import Permission  # noqa: E402

from procurement.models import (  # noqa: E402
    Department,
    Request,
    RequestStatus,
    RequestType,
    StaffProfile,
    StockItem,
    Warehouse,
    WarehouseSupplyItem,
)


@pytest.fixture
def department(db):
    return Department.objects.create(name="Cardiology", type="medical")


@pytest.fixture
def warehouse(db, department):
    return Warehouse.objects.create(name="Main Store", department=department)


@pytest.fixture
def stock_item_factory(db):
    def create_stock_item(**kwargs):
        defaults = {"name": "Gloves", "unit": "box"}
        defaults.update(kwargs)
        return StockItem.objects.create(**defaults)

    return create_stock_item


@pytest.fixture
def user_factory(db):
    """Create a user with a staff profile and the given procurement permissions."""

    User = get_user_model()

    def create_user(
        username, role="", department=None, warehouse=None, perms=(), email=None
    ):
        user = User.objects.create_user(
            username=username,
            email=f"{username}@example.com" if email is None else email,
            password="secret",
        )
        StaffProfile.objects.create(
            user=user, role=role, department=department, warehouse=warehouse
        )
        if perms:
            granted = Permission.objects.filter(
                content_type__app_label="procurement", codename__in=perms
            )
            assert granted.count() == len(set(perms))
            user.user_permissions.add(*granted)
        # Re-fetch so the permission cache starts empty.
        return User.objects.get(pk=user.pk)

    return create_user


@pytest.fixture
def storekeeper(user_factory, department, warehouse):
    return user_factory(
        "storekeeper",
        role="WarehouseManager",
        department=department,
        warehouse=warehouse,
        perms=[
            "manage_warehouse_stock",
            "record_warehouse_supply",
            "manage_recalls",
            "escalate_recalls",
            "quarantine_recalls",
        ],
    )


@pytest.fixture
def requester(user_factory, department):
    return user_factory("nurse", role="Nurse", department=department)


@pytest.fixture
def supply_request_factory(db, department, warehouse, requester):
    """Approved warehouse supply request with ``{name: quantity}`` lines."""

    def create_supply_request(lines=None, status=RequestStatus.APPROVED, **kwargs):
        defaults = {
            "request_type": RequestType.WAREHOUSE_SUPPLY,
            "status": status,
            "requester": requester,
            "department": department,
            "supply_warehouse": warehouse,
        }
        defaults.update(kwargs)
        request = Request.objects.create(**defaults)
        for name, quantity in (lines or {"Gloves": 100}).items():
            WarehouseSupplyItem.objects.create(
                request=request, item_name=name, quantity=quantity
            )
        return request

    return create_supply_request


@pytest.fixture
def logged_in_client(client, storekeeper):
    """Client logged in as the warehouse manager."""

    client.force_login(storekeeper)
    yield client
    client.logout()
