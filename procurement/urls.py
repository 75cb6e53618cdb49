"""API routes for the procurement app."""

from rest_framework.routers import DefaultRouter

from .views import (
    ApprovalViewSet,
    ItemRecallViewSet,
    RequestViewSet,
    WarehouseStockLevelViewSet,
    WarehouseStockMovementViewSet,
)

router = DefaultRouter()
router.register(r"requests", RequestViewSet)
router.register(r"approvals", ApprovalViewSet)
router.register(r"stock-levels", WarehouseStockLevelViewSet)
router.register(r"stock-movements", WarehouseStockMovementViewSet)
router.register(r"recalls", ItemRecallViewSet, basename="recall")

urlpatterns = router.urls
