import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

SQUARE_PRODUCTION_BASE = "https://connect.squareup.com/v2"
SQUARE_SANDBOX_BASE = "https://connect.squareupsandbox.com/v2"
MAX_ERROR_LENGTH = 1000


class InventoryIntegration(models.Model):
    class Provider(models.TextChoices):
        SQUARE = "SQUARE", "Square"

    class Environment(models.TextChoices):
        PRODUCTION = "PRODUCTION", "Production"
        SANDBOX = "SANDBOX", "Sandbox"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.CharField(
        max_length=32, choices=Provider.choices, default=Provider.SQUARE
    )
    environment = models.CharField(
        max_length=32, choices=Environment.choices, default=Environment.PRODUCTION
    )
    display_name = models.CharField(max_length=255, default="Square")
    access_token = models.TextField(blank=True)
    last_success_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.environment})"

    @property
    def api_base_url(self) -> str:
        override = getattr(settings, "SQUARE_API_BASE", "")
        if override:
            return override.rstrip("/")
        if self.environment == self.Environment.SANDBOX:
            return SQUARE_SANDBOX_BASE
        return SQUARE_PRODUCTION_BASE

    @property
    def masked_token(self) -> str:
        token = (self.access_token or "").strip()
        if len(token) <= 8:
            return "short"
        return f"{token[:4]}...{token[-4:]}"

    def record_success(self) -> None:
        self.last_success_at = timezone.now()
        self.last_error = ""
        self.save(update_fields=["last_success_at", "last_error", "updated_at"])

    def record_error(self, message: str) -> None:
        self.last_error = (message or "")[:MAX_ERROR_LENGTH]
        self.save(update_fields=["last_error", "updated_at"])
