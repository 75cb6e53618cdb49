from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import procurement.models.fields


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Department",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=150, unique=True)),
                ("type", models.CharField(blank=True, default="operational", max_length=50)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"db_table": "departments", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="StockItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, unique=True)),
                ("unit", models.CharField(blank=True, default="", max_length=50)),
                ("available_quantity", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"db_table": "stock_items", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Section",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=150)),
                ("department", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sections", to="procurement.department")),
            ],
            options={"db_table": "sections", "unique_together": {("department", "name")}},
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=150, unique=True)),
                ("location", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="warehouses", to="procurement.department")),
            ],
            options={"db_table": "warehouses", "ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="StaffProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(blank=True, default="", max_length=50)),
                ("department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="staff", to="procurement.department")),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="staff_profile", to=settings.AUTH_USER_MODEL)),
                ("warehouse", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="staff", to="procurement.warehouse")),
            ],
            options={"db_table": "staff_profiles"},
        ),
        migrations.CreateModel(
            name="Request",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("request_type", models.CharField(choices=[("Stock", "Stock Supply"), ("Non-Stock", "Non-Stock"), ("Maintenance", "Maintenance"), ("Warehouse Supply", "Warehouse Supply"), ("Medical Device", "Medical Device"), ("Medication", "Medication"), ("IT Item", "IT Item")], max_length=30)),
                ("status", models.CharField(choices=[("Submitted", "Submitted"), ("Pending", "Pending"), ("On Hold", "On Hold"), ("Approved", "Approved"), ("Rejected", "Rejected"), ("Completed", "Completed")], default="Submitted", max_length=20)),
                ("is_urgent", models.BooleanField(default=False)),
                ("justification", models.TextField(blank=True, default="")),
                ("estimated_cost", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("assigned_to", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="assigned_requests", to=settings.AUTH_USER_MODEL)),
                ("department", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="requests", to="procurement.department")),
                ("requester", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="requests", to=settings.AUTH_USER_MODEL)),
                ("section", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="requests", to="procurement.section")),
                ("supply_warehouse", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="supply_requests", to="procurement.warehouse")),
            ],
            options={
                "db_table": "requests",
                "ordering": ["-created_at"],
                "permissions": [
                    ("record_warehouse_supply", "Can record supplied warehouse items"),
                    ("mark_urgent", "Can flag a request as urgent while approving"),
                    ("override_cost", "Can override a request's estimated cost"),
                    ("decide_items", "Can decide requested items without an active step"),
                ],
                "indexes": [models.Index(fields=["request_type", "status"], name="requests_type_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="WarehouseStockLevel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_name", models.CharField(max_length=255)),
                ("quantity", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("stock_item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_levels", to="procurement.stockitem")),
                ("updated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_levels", to="procurement.warehouse")),
            ],
            options={
                "db_table": "warehouse_stock_levels",
                "permissions": [("manage_warehouse_stock", "Can add and issue warehouse stock")],
                "constraints": [
                    models.UniqueConstraint(fields=("warehouse", "stock_item"), name="uniq_stock_level_per_item"),
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="stock_level_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WarehouseStockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_name", models.CharField(max_length=255)),
                ("direction", models.CharField(choices=[("in", "In"), ("out", "Out")], max_length=3)),
                ("quantity", procurement.models.fields.LedgerDecimalField(decimal_places=2, max_digits=14)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("reference_request", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="stock_movements", to="procurement.request")),
                ("stock_item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to="procurement.stockitem")),
                ("to_department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="procurement.department")),
                ("to_section", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="procurement.section")),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to="procurement.warehouse")),
            ],
            options={
                "db_table": "warehouse_stock_movements",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["warehouse", "stock_item"], name="stock_mv_wh_item_idx"),
                    models.Index(fields=["direction", "created_at"], name="stock_mv_dir_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="movement_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Approval",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("approval_level", models.PositiveIntegerField()),
                ("status", models.CharField(choices=[("Pending", "Pending"), ("On Hold", "On Hold"), ("Approved", "Approved"), ("Rejected", "Rejected")], default="Pending", max_length=20)),
                ("is_active", models.BooleanField(default=False)),
                ("is_urgent", models.BooleanField(default=False)),
                ("comments", models.TextField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("approver", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="approvals", to=settings.AUTH_USER_MODEL)),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="approvals", to="procurement.request")),
            ],
            options={
                "db_table": "approvals",
                "ordering": ["request", "approval_level"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("is_active", True)), fields=("request",), name="one_active_approval_per_request"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ApprovalRoute",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("request_type", models.CharField(choices=[("Stock", "Stock Supply"), ("Non-Stock", "Non-Stock"), ("Maintenance", "Maintenance"), ("Warehouse Supply", "Warehouse Supply"), ("Medical Device", "Medical Device"), ("Medication", "Medication"), ("IT Item", "IT Item")], max_length=30)),
                ("department_type", models.CharField(max_length=50)),
                ("approval_level", models.PositiveIntegerField()),
                ("role", models.CharField(max_length=50)),
                ("min_amount", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("max_amount", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("999999999999"), max_digits=14)),
            ],
            options={
                "db_table": "approval_routes",
                "ordering": ["request_type", "department_type", "approval_level"],
            },
        ),
        migrations.CreateModel(
            name="RequestedItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_name", models.CharField(max_length=255)),
                ("brand", models.CharField(blank=True, max_length=255, null=True)),
                ("quantity", models.PositiveIntegerField()),
                ("available_quantity", models.IntegerField(blank=True, null=True)),
                ("purchased_quantity", models.IntegerField(blank=True, null=True)),
                ("unit_cost", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("total_cost", procurement.models.fields.LedgerDecimalField(decimal_places=2, default=Decimal("0"), max_digits=14)),
                ("approval_status", models.CharField(choices=[("Pending", "Pending"), ("Approved", "Approved"), ("Rejected", "Rejected")], default="Pending", max_length=20)),
                ("approval_comments", models.TextField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("is_received", models.BooleanField(default=False)),
                ("approved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="procurement.request")),
            ],
            options={"db_table": "requested_items", "ordering": ["request", "id"]},
        ),
        migrations.CreateModel(
            name="WarehouseSupplyItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_name", models.CharField(max_length=255)),
                ("quantity", models.PositiveIntegerField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="warehouse_items", to="procurement.request")),
                ("stock_item", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="procurement.stockitem")),
            ],
            options={"db_table": "warehouse_supply_items", "ordering": ["request", "id"]},
        ),
        migrations.CreateModel(
            name="WarehouseSuppliedItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("supplied_quantity", models.PositiveIntegerField()),
                ("supplied_at", models.DateTimeField(auto_now_add=True)),
                ("item", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="supplies", to="procurement.warehousesupplyitem")),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="supplied_items", to="procurement.request")),
                ("supplied_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "warehouse_supplied_items",
                "ordering": ["supplied_at", "id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("supplied_quantity__gt", 0)), name="supplied_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RequestLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=255)),
                ("comments", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="logs", to="procurement.request")),
            ],
            options={"db_table": "request_logs", "ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="ItemRecall",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_name", models.CharField(max_length=255)),
                ("lot_number", models.CharField(blank=True, max_length=100, null=True)),
                ("quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("reason", models.TextField()),
                ("notes", models.TextField(blank=True, null=True)),
                ("recall_type", models.CharField(choices=[("department_to_warehouse", "Department to Warehouse"), ("warehouse_to_procurement", "Warehouse to Procurement")], max_length=30)),
                ("status", models.CharField(choices=[("Pending Warehouse Review", "Pending Warehouse Review"), ("Pending Procurement Action", "Pending Procurement Action"), ("Quarantined - Block Issuance", "Quarantined - Block Issuance"), ("Rejected", "Rejected"), ("Closed", "Closed")], max_length=40)),
                ("escalated_to_procurement", models.BooleanField(default=False)),
                ("escalated_at", models.DateTimeField(blank=True, null=True)),
                ("warehouse_notes", models.TextField(blank=True, null=True)),
                ("quarantine_active", models.BooleanField(default=False)),
                ("quarantine_reason", models.TextField(blank=True, null=True)),
                ("quarantine_started_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("department", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="recalls", to="procurement.department")),
                ("escalated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("initiated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("stock_item", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="recalls", to="procurement.stockitem")),
            ],
            options={
                "db_table": "item_recalls",
                "ordering": ["-id"],
                "permissions": [
                    ("manage_recalls", "Can create warehouse recalls and review department recalls"),
                    ("escalate_recalls", "Can escalate recalls to procurement"),
                    ("quarantine_recalls", "Can quarantine recalled lots"),
                ],
                "indexes": [
                    models.Index(fields=["stock_item", "lot_number"], name="recall_item_lot_idx"),
                    models.Index(fields=["status"], name="recall_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quarantine_active", False), ("quarantine_started_at__isnull", False), _connector="OR"), name="quarantine_has_start_time"),
                ],
            },
        ),
    ]
