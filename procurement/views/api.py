from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import (
    Approval,
    Request,
    WarehouseStockLevel,
    WarehouseStockMovement,
)
from ..serializers import (
    ApprovalSerializer,
    ItemRecallSerializer,
    RequestLogSerializer,
    RequestSerializer,
    WarehouseStockLevelSerializer,
    WarehouseStockMovementSerializer,
)
from ..services import (
    approval_service,
    item_decision_service,
    recall_service,
    request_service,
    stock_service,
    warehouse_supply_service,
)

ID_REGEX = r"\d+"


class RequestViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Requests with workflow, item decision and supply actions.

    Query params:
        status: exact status match.
        request_type: exact request type match.
    """

    queryset = Request.objects.all().select_related("department").prefetch_related(
        "approvals", "items", "warehouse_items"
    )
    serializer_class = RequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = ID_REGEX

    def get_queryset(self):
        queryset = super().get_queryset()
        for param in ("status", "request_type"):
            value = self.request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        return queryset

    def create(self, request, *args, **kwargs):
        data = request.data
        created = request_service.create_request(
            request.user,
            data.get("request_type"),
            data.get("department"),
            data.get("items"),
            section_id=data.get("section"),
            supply_warehouse_id=data.get("supply_warehouse"),
            justification=data.get("justification", ""),
            is_urgent=data.get("is_urgent", False),
            approvers=data.get("approvers"),
            initialize=bool(data.get("initialize_approvals", False)),
        )
        return Response(
            self.get_serializer(created).data, status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=["get"])
    def summary(self, request, pk=None):
        return Response(request_service.get_request_summary(int(pk)))

    @action(detail=True, methods=["get"])
    def timeline(self, request, pk=None):
        return Response(approval_service.approval_timeline(int(pk)))

    @action(detail=True, methods=["get"])
    def logs(self, request, pk=None):
        obj = self.get_object()
        return Response(RequestLogSerializer(obj.logs.all(), many=True).data)

    @action(detail=True, methods=["post"], url_path="initialize-approvals")
    def initialize_approvals(self, request, pk=None):
        approvals = approval_service.initialize_approvals(int(pk), request.user)
        return Response(
            ApprovalSerializer(approvals, many=True).data, status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=["post"], url_path="item-decisions")
    def item_decisions(self, request, pk=None):
        result = item_decision_service.apply_item_decisions(
            int(pk),
            request.data.get("decisions"),
            request.user,
            update_estimated_cost=bool(request.data.get("update_estimated_cost", False)),
        )
        return Response(result.as_dict())

    @action(detail=True, methods=["post"])
    def supply(self, request, pk=None):
        result = warehouse_supply_service.record_supplied_items(
            int(pk), request.data.get("items"), request.user
        )
        return Response(result.as_dict())

    @action(detail=True, methods=["get"], url_path="supply-progress")
    def supply_progress(self, request, pk=None):
        return Response(warehouse_supply_service.supply_progress(int(pk)))

    @action(detail=False, methods=["get"], url_path="supply-queue")
    def supply_queue(self, request):
        return Response(warehouse_supply_service.list_supply_requests(request.user))


class ApprovalViewSet(viewsets.ReadOnlyModelViewSet):
    """Approval steps; decisions are taken through the detail actions."""

    queryset = Approval.objects.all().select_related("request")
    serializer_class = ApprovalSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = ID_REGEX

    @action(detail=True, methods=["post"])
    def decide(self, request, pk=None):
        decision = approval_service.decide(
            int(pk),
            request.data.get("status"),
            request.user,
            comments=request.data.get("comments"),
            is_urgent=request.data.get("is_urgent"),
            estimated_cost=request.data.get("estimated_cost"),
        )
        return Response(decision.as_dict())

    @action(detail=True, methods=["post"])
    def hold(self, request, pk=None):
        decision = approval_service.hold(
            int(pk), request.user, request.data.get("comments")
        )
        return Response(decision.as_dict())

    @action(detail=True, methods=["post"])
    def resume(self, request, pk=None):
        decision = approval_service.resume(
            int(pk), request.user, request.data.get("comments")
        )
        return Response(decision.as_dict())

    @action(detail=True, methods=["post"])
    def forward(self, request, pk=None):
        decision = approval_service.forward(
            int(pk),
            request.data.get("approver"),
            request.user,
            request.data.get("comments"),
        )
        return Response(decision.as_dict())


class WarehouseStockLevelViewSet(viewsets.ReadOnlyModelViewSet):
    """Warehouse balances with add/issue/reconcile actions.

    Query params:
        warehouse: filter by warehouse id.
        stock_item: filter by stock item id.
    """

    queryset = WarehouseStockLevel.objects.all().select_related("warehouse")
    serializer_class = WarehouseStockLevelSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = ID_REGEX

    def get_queryset(self):
        queryset = super().get_queryset()
        for param in ("warehouse", "stock_item"):
            value = self.request.query_params.get(param)
            if value and value.isdigit():
                queryset = queryset.filter(**{f"{param}_id": int(value)})
        return queryset

    @action(detail=False, methods=["post"])
    def add(self, request):
        result = stock_service.add_stock(
            request.user,
            request.data.get("stock_item"),
            request.data.get("quantity"),
            warehouse_id=request.data.get("warehouse"),
            notes=request.data.get("notes"),
        )
        return Response(result.as_dict(), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def issue(self, request):
        result = stock_service.issue_stock(
            request.user,
            request.data.get("stock_item"),
            request.data.get("quantity"),
            request.data.get("department"),
            warehouse_id=request.data.get("warehouse"),
            section_id=request.data.get("section"),
            notes=request.data.get("notes"),
            lot_number=request.data.get("lot_number"),
        )
        return Response(result.as_dict())

    @action(detail=True, methods=["get"])
    def reconcile(self, request, pk=None):
        level = self.get_object()
        return Response(stock_service.reconcile(level.warehouse_id, level.stock_item_id))


class WarehouseStockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = WarehouseStockMovement.objects.all()
    serializer_class = WarehouseStockMovementSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = ID_REGEX

    def get_queryset(self):
        queryset = super().get_queryset()
        for param in ("warehouse", "stock_item"):
            value = self.request.query_params.get(param)
            if value and value.isdigit():
                queryset = queryset.filter(**{f"{param}_id": int(value)})
        return queryset


class ItemRecallViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    """Recalls visible to the current user, plus the recall transitions."""

    serializer_class = ItemRecallSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = ID_REGEX

    def get_queryset(self):
        return recall_service.visible_recalls_queryset(self.request.user)

    def _recall_kwargs(self):
        data = self.request.data
        return {
            "reason": data.get("reason"),
            "item_id": data.get("stock_item"),
            "item_name": data.get("item_name"),
            "lot_number": data.get("lot_number"),
            "quantity": data.get("quantity"),
            "notes": data.get("notes"),
        }

    def create(self, request, *args, **kwargs):
        recall = recall_service.create_department_recall(
            request.user, **self._recall_kwargs()
        )
        return Response(
            self.get_serializer(recall).data, status=status.HTTP_201_CREATED
        )

    @action(detail=False, methods=["post"])
    def warehouse(self, request):
        recall = recall_service.create_warehouse_recall(
            request.user, **self._recall_kwargs()
        )
        return Response(
            self.get_serializer(recall).data, status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=["post"])
    def escalate(self, request, pk=None):
        recall = recall_service.escalate_recall(
            int(pk), request.user, request.data.get("warehouse_notes")
        )
        return Response(self.get_serializer(recall).data)

    @action(detail=True, methods=["post"])
    def quarantine(self, request, pk=None):
        recall = recall_service.quarantine_recall(
            int(pk), request.user, request.data.get("reason")
        )
        return Response(self.get_serializer(recall).data)

    @action(detail=True, methods=["post"])
    def close(self, request, pk=None):
        recall = recall_service.close_recall(
            int(pk),
            request.user,
            request.data.get("status"),
            request.data.get("notes"),
        )
        return Response(self.get_serializer(recall).data)
