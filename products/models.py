import uuid
from typing import Optional

from django.conf import settings
from django.db import models
from django.utils import timezone

from integrations.models import InventoryIntegration


class Product(models.Model):
    class Origin(models.TextChoices):
        MANUAL = "MANUAL", "Manual"
        SQUARE = "SQUARE", "Square"

    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=255, blank=True)
    upc = models.CharField(max_length=64, blank=True)
    retail_price_cents = models.BigIntegerField(null=True, blank=True)
    origin = models.CharField(max_length=16, choices=Origin.choices, default=Origin.MANUAL)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["sku"], name="products_pr_sku_f2bfc3_idx"),
            models.Index(fields=["upc"], name="products_pr_upc_8d1c2e_idx"),
            models.Index(fields=["created_at"], name="products_pr_create_66fda3_idx"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.sku or '-'} - {self.name}"


class ProductPosLink(models.Model):
    class Source(models.TextChoices):
        SQUARE = "SQUARE", "Square"

    product = models.ForeignKey(Product, related_name="pos_links", on_delete=models.CASCADE)
    integration = models.ForeignKey(
        InventoryIntegration, related_name="pos_links", on_delete=models.CASCADE
    )
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.SQUARE)
    pos_item_id = models.CharField(max_length=255)
    # Empty when the upstream item has no variations.
    pos_variation_id = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["integration", "source", "pos_item_id", "pos_variation_id"],
                name="uniq_pos_link_per_integration",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.source}:{self.pos_item_id}/{self.pos_variation_id or '-'} -> {self.product_id}"


class ImportRunQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=ImportRun.ACTIVE_STATUSES)

    def for_integration(self, integration_id):
        return self.filter(integration_id=integration_id)


class ImportRun(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        RUNNING = "RUNNING", "Running"
        PARTIAL = "PARTIAL", "Partial"
        SUCCESS = "SUCCESS", "Success"
        FAILED = "FAILED", "Failed"

    ACTIVE_STATUSES = (Status.PENDING, Status.RUNNING)
    TERMINAL_STATUSES = (Status.PARTIAL, Status.SUCCESS, Status.FAILED)

    ERROR_PAGE_FETCH = "PAGE_FETCH"
    ERROR_UPSERT = "UPSERT"
    ERROR_CREDENTIALS = "CREDENTIALS"
    ERROR_CONTINUATION = "CONTINUATION"
    ERROR_DISPATCH = "DISPATCH"
    ERROR_FATAL = "FATAL"
    ERROR_USER_CANCELLED = "USER_CANCELLED"
    ERROR_WATCHDOG_TIMEOUT = "WATCHDOG_TIMEOUT"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    integration = models.ForeignKey(
        InventoryIntegration, related_name="import_runs", on_delete=models.CASCADE
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    cursor = models.TextField(null=True, blank=True)
    processed_count = models.IntegerField(default=0)
    created_count = models.IntegerField(default=0)
    updated_count = models.IntegerField(default=0)
    failed_count = models.IntegerField(default=0)
    errors = models.JSONField(blank=True, default=list)
    task_id = models.CharField(max_length=64, blank=True)
    segments = models.IntegerField(default=0)
    started_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)
    last_progress_at = models.DateTimeField(default=timezone.now)

    objects = ImportRunQuerySet.as_manager()

    class Meta:
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["integration", "status"], name="products_im_integra_4b7e1a_idx"),
            models.Index(fields=["status", "last_progress_at"], name="products_im_status_9c3f2d_idx"),
        ]
        constraints = [
            # At most one PENDING/RUNNING run per integration.
            models.UniqueConstraint(
                fields=["integration"],
                condition=models.Q(status__in=["PENDING", "RUNNING"]),
                name="uniq_active_import_per_integration",
            ),
        ]

    def __str__(self) -> str:
        return f"ImportRun {self.pk} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def last_error(self) -> Optional[dict]:
        return self.errors[-1] if self.errors else None

    def append_error(self, code: str, message: str) -> None:
        """Record an error entry in memory; callers persist ``errors``."""
        limit = getattr(settings, "IMPORT_MAX_ERROR_RECORDS", 50)
        entries = list(self.errors or [])
        entries.append({"ts": timezone.now().isoformat(), "code": code, "message": message})
        self.errors = entries[-limit:]

    def progress_payload(self) -> dict:
        last = self.last_error
        return {
            "run_id": str(self.pk),
            "status": self.status,
            "processed": self.processed_count,
            "created": self.created_count,
            "updated": self.updated_count,
            "failed": self.failed_count,
            "errors": len(self.errors or []),
            "error": last.get("message") if last else None,
        }


class CatalogResetJob(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    task_id = models.CharField(max_length=64, blank=True, null=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="catalog_reset_jobs",
    )
    status = models.CharField(
        max_length=32, choices=Status.choices, default=Status.PENDING
    )
    include_history = models.BooleanField(default=False)
    total_count = models.IntegerField(default=0)
    deleted_count = models.IntegerField(default=0)
    errors_json = models.JSONField(blank=True, default=list)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"CatalogResetJob #{self.pk} ({self.status})"
