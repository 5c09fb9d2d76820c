from django.urls import path

from .consumers import CatalogResetProgressConsumer, ImportProgressConsumer

websocket_urlpatterns = [
    path("ws/imports/<str:run_id>/", ImportProgressConsumer.as_asgi(), name="import-progress"),
    path("ws/resets/<str:job_id>/", CatalogResetProgressConsumer.as_asgi(), name="reset-progress"),
]
