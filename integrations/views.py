import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import InventoryIntegration
from .serializers import InventoryIntegrationSerializer
from .square import SquareAPIError, client_for_integration

logger = logging.getLogger(__name__)


class InventoryIntegrationViewSet(viewsets.ModelViewSet):
    queryset = InventoryIntegration.objects.all().order_by("-created_at")
    serializer_class = InventoryIntegrationSerializer
    permission_classes = [permissions.AllowAny]

    @action(detail=True, methods=["post"], url_path="test-connection")
    def test_connection(self, request, pk=None):
        integration = self.get_object()
        try:
            client = client_for_integration(integration)
            locations = client.list_locations()
        except SquareAPIError as exc:
            logger.warning("Connection test failed for integration=%s: %s", integration.pk, exc)
            integration.record_error(str(exc))
            return Response(
                {
                    "ok": False,
                    "error": str(exc),
                    "environment": integration.environment,
                    "baseUrl": integration.api_base_url,
                },
                status=status.HTTP_200_OK,
            )

        integration.record_success()
        logger.info(
            "Connection test succeeded for integration=%s (%s locations)",
            integration.pk,
            len(locations),
        )
        return Response(
            {
                "ok": True,
                "environment": integration.environment,
                "baseUrl": integration.api_base_url,
                "maskedToken": integration.masked_token,
                "locations": locations,
            }
        )
