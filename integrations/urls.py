from rest_framework.routers import DefaultRouter

from .views import InventoryIntegrationViewSet

router = DefaultRouter()
router.register(r"integrations", InventoryIntegrationViewSet, basename="integration")

urlpatterns = router.urls
