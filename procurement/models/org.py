from django.conf import settings
from django.db import models


class Department(models.Model):
    """An organisational unit that raises requests and receives stock."""

    name = models.CharField(max_length=150, unique=True)
    type = models.CharField(max_length=50, blank=True, default="operational")
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return self.name

    class Meta:
        db_table = "departments"
        ordering = ["name"]


class Section(models.Model):
    department = models.ForeignKey(
        Department, models.CASCADE, related_name="sections"
    )
    name = models.CharField(max_length=150)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.department} / {self.name}"

    class Meta:
        db_table = "sections"
        unique_together = [("department", "name")]


class Warehouse(models.Model):
    """A physical store holding per-item stock balances."""

    name = models.CharField(max_length=150, unique=True)
    department = models.ForeignKey(
        Department, models.SET_NULL, blank=True, null=True, related_name="warehouses"
    )
    location = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return self.name

    class Meta:
        db_table = "warehouses"
        ordering = ["name"]


class StaffProfile(models.Model):
    """Links an auth user to their role, department and warehouse assignment."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, models.CASCADE, related_name="staff_profile"
    )
    role = models.CharField(max_length=50, blank=True, default="")
    department = models.ForeignKey(
        Department, models.SET_NULL, blank=True, null=True, related_name="staff"
    )
    warehouse = models.ForeignKey(
        Warehouse, models.SET_NULL, blank=True, null=True, related_name="staff"
    )

    def __str__(self) -> str:  # pragma: no cover - simple representation
        return f"{self.user} ({self.role})"

    class Meta:
        db_table = "staff_profiles"
