import logging
from typing import Optional

from django.conf import settings
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import CatalogResetJob, ImportRun, Product, ProductPosLink
from .serializers import ImportRunSerializer, ProductBackupSerializer, ProductPosLinkBackupSerializer
from .tasks import (
    _calculate_percent,
    catalog_reset_task,
    catalog_size,
    delete_catalog,
    publish_reset_progress,
)

logger = logging.getLogger(__name__)


class CatalogResetView(APIView):
    permission_classes = [permissions.AllowAny]

    def delete(self, request, *args, **kwargs):
        confirm = request.data.get("confirm")
        confirm_phrase = request.data.get("confirm_phrase")
        include_history = request.data.get("include_history") is True

        if confirm is not True:
            return Response({"detail": "Confirmation required."}, status=status.HTTP_400_BAD_REQUEST)

        expected_phrase = getattr(settings, "CATALOG_RESET_CONFIRM_PHRASE", "")
        if expected_phrase and (confirm_phrase or "").strip() != expected_phrase:
            return Response(
                {"detail": f"Invalid confirmation phrase. Expected '{expected_phrase}'."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if ImportRun.objects.active().exists():
            return Response(
                {"detail": "An import is in progress; abort it before resetting the catalog."},
                status=status.HTTP_409_CONFLICT,
            )

        total = catalog_size(include_history)
        threshold = getattr(settings, "PRODUCT_BULK_DELETE_THRESHOLD", 10000)

        if total == 0:
            return Response({"status": "completed", "deleted": 0})

        if total < threshold:
            deleted = delete_catalog(include_history)
            logger.info("Reset catalog synchronously (deleted=%s, include_history=%s)", deleted, include_history)
            return Response({"status": "completed", "deleted": deleted})

        user = request.user if request.user.is_authenticated else None
        job = CatalogResetJob.objects.create(
            user=user,
            status=CatalogResetJob.Status.PENDING,
            include_history=include_history,
            total_count=total,
            deleted_count=0,
        )

        task = catalog_reset_task.delay(job.id, user_id=user.id if user else None)
        job.task_id = task.id
        job.save(update_fields=["task_id"])

        publish_reset_progress(
            job.id,
            status="pending",
            processed=0,
            total=total,
            percent=0,
            errors=0,
        )

        return Response(
            {
                "status": "queued",
                "job_id": job.id,
                "task_id": job.task_id,
                "total": total,
            },
            status=status.HTTP_202_ACCEPTED,
        )


class CatalogResetProgressView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request, job_id: int, *args, **kwargs):
        job = CatalogResetJob.objects.filter(pk=job_id).first()
        if not job:
            return Response({"job_id": job_id, "progress": None}, status=status.HTTP_404_NOT_FOUND)

        errors = job.errors_json or []
        error_message: Optional[str] = errors[0].get("message") if errors else None

        payload = {
            "status": job.status,
            "processed": job.deleted_count,
            "total": job.total_count,
            "percent": 100
            if job.status == CatalogResetJob.Status.COMPLETED
            else _calculate_percent(job.deleted_count, job.total_count),
            "errors": len(errors),
            "error": error_message,
            "include_history": job.include_history,
        }
        return Response({"job_id": job_id, "progress": payload})


class CatalogBackupView(APIView):
    """JSON export of everything a catalog reset deletes."""

    permission_classes = [permissions.AllowAny]

    tables = (
        ("products", Product.objects.order_by("pk"), ProductBackupSerializer),
        ("product_pos_links", ProductPosLink.objects.order_by("pk"), ProductPosLinkBackupSerializer),
        ("import_runs", ImportRun.objects.order_by("started_at"), ImportRunSerializer),
    )

    def get(self, request, *args, **kwargs):
        timestamp = timezone.now().isoformat()
        data = {}
        for name, queryset, serializer_class in self.tables:
            records = serializer_class(queryset.all(), many=True).data
            data[name] = {"records": records, "count": len(records)}

        total = sum(table["count"] for table in data.values())
        logger.info("Exported catalog backup with %s records", total)
        return Response(
            {
                "success": True,
                "backup": {"timestamp": timestamp, "data": data},
                "summary": {
                    "total_records": total,
                    "tables_backed_up": len(data),
                    "timestamp": timestamp,
                },
            }
        )
