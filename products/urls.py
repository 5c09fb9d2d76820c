from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import ImportRunViewSet, ProductViewSet
from .views_import import ImportAbortView, ImportTriggerView, ImportWatchdogView
from .views_reset import CatalogBackupView, CatalogResetProgressView

router = DefaultRouter()
router.routes[0].mapping["delete"] = "reset_catalog"
router.register(r"products", ProductViewSet, basename="product")
router.register(r"imports/runs", ImportRunViewSet, basename="import-run")

urlpatterns = [
    path("imports/", ImportTriggerView.as_view(), name="import-trigger"),
    path("imports/abort/", ImportAbortView.as_view(), name="import-abort"),
    path("imports/watchdog/", ImportWatchdogView.as_view(), name="import-watchdog"),
    path("products/backup/", CatalogBackupView.as_view(), name="catalog-backup"),
    path("products/reset/<int:job_id>/progress/", CatalogResetProgressView.as_view(), name="catalog-reset-progress"),
] + router.urls
