import logging
import traceback
from typing import Callable, Dict, List, Optional

from asgiref.sync import async_to_sync
from celery import shared_task
from channels.layers import get_channel_layer
from django.conf import settings

from .importer import (
    OUTCOME_CONTINUE,
    fail_run,
    mark_stale_runs,
    run_segment,
)
from .models import CatalogResetJob, ImportRun, Product, ProductPosLink

logger = logging.getLogger(__name__)

_channel_layer = None

ProgressPayload = Dict[str, Optional[object]]


def _get_channel_layer():
    global _channel_layer
    if _channel_layer is None:
        _channel_layer = get_channel_layer()
    return _channel_layer


def _calculate_percent(processed: int, total: int) -> int:
    if total <= 0:
        return 100 if processed > 0 else 0
    return min(100, int((processed / total) * 100))


def _publish_progress(
    identifier: str,
    namespace: str,
    event_type: str,
    payload: ProgressPayload,
) -> ProgressPayload:
    try:
        channel_layer = _get_channel_layer()
        if channel_layer is not None:
            async_to_sync(channel_layer.group_send)(
                f"{namespace}_{identifier}",
                {"type": event_type, "payload": payload},
            )
    except Exception:
        logger.exception("Failed to publish progress via Channels for %s %s", namespace, identifier)
    return payload


def publish_import_progress(run: ImportRun) -> ProgressPayload:
    return _publish_progress(str(run.pk), "import", "import.progress", run.progress_payload())


def publish_reset_progress(
    job_id: int,
    *,
    status: str,
    processed: int,
    total: int,
    percent: int,
    errors: int,
    error: Optional[str] = None,
) -> ProgressPayload:
    payload: ProgressPayload = {
        "status": status,
        "processed": processed,
        "total": total,
        "percent": percent,
        "errors": errors,
        "error": error,
    }
    return _publish_progress(str(job_id), "reset", "reset.progress", payload)


def dispatch_import_segment(run_id: str) -> str:
    """Queue the next segment of ``run_id`` and remember its task id."""
    task = import_segment_task.apply_async(args=[run_id])
    ImportRun.objects.filter(pk=run_id).update(task_id=task.id or "")
    return task.id


@shared_task(bind=True, name="products.import_segment_task")
def import_segment_task(self, run_id: str) -> Optional[ProgressPayload]:
    """Run one time-boxed segment of a Square import and queue the next one."""
    logger.info("Starting import_segment_task run_id=%s", run_id)

    def _on_progress(run: ImportRun) -> None:
        payload = publish_import_progress(run)
        self.update_state(state="PROGRESS", meta=payload)

    result = run_segment(run_id, on_progress=_on_progress)
    if result.run is None:
        return None

    payload = result.run.progress_payload()
    if result.outcome != OUTCOME_CONTINUE:
        logger.info("Import run %s segment ended with outcome=%s", run_id, result.outcome)
        return payload

    try:
        dispatch_import_segment(run_id)
    except Exception as exc:
        logger.exception("Failed to queue continuation for run %s", run_id)
        failed = fail_run(
            run_id,
            ImportRun.ERROR_CONTINUATION,
            f"Failed to schedule continuation: {exc}",
        )
        if failed is not None:
            failed.integration.record_error(str(exc))
            publish_import_progress(failed)
        raise
    return payload


@shared_task(bind=True, name="products.import_watchdog_task")
def import_watchdog_task(self, threshold_minutes: Optional[int] = None) -> List[Dict[str, object]]:
    """Fail import runs that stopped making progress."""
    if threshold_minutes is None:
        threshold_minutes = getattr(settings, "IMPORT_WATCHDOG_THRESHOLD_MINUTES", 15)
    logger.info("Running import watchdog with threshold=%s minutes", threshold_minutes)
    return mark_stale_runs(threshold_minutes, on_progress=publish_import_progress)


def catalog_size(include_history: bool) -> int:
    total = Product.objects.count() + ProductPosLink.objects.count()
    if include_history:
        total += ImportRun.objects.count()
    return total


def delete_catalog(
    include_history: bool,
    *,
    batch_size: int = 1000,
    on_batch: Optional[Callable[[int], None]] = None,
) -> int:
    """Delete POS links, then products, then (optionally) finished import runs."""
    deleted_count = 0

    deleted, _ = ProductPosLink.objects.all().delete()
    deleted_count += deleted
    if on_batch is not None:
        on_batch(deleted_count)

    while True:
        ids = list(Product.objects.values_list("pk", flat=True)[:batch_size])
        if not ids:
            break
        deleted, _ = Product.objects.filter(pk__in=ids).delete()
        deleted_count += deleted
        if on_batch is not None:
            on_batch(deleted_count)

    if include_history:
        deleted, _ = ImportRun.objects.filter(status__in=ImportRun.TERMINAL_STATUSES).delete()
        deleted_count += deleted
        if on_batch is not None:
            on_batch(deleted_count)

    return deleted_count


@shared_task(bind=True, name="products.catalog_reset_task")
def catalog_reset_task(self, job_id: int, user_id: Optional[int] = None) -> None:
    """Delete the local catalog in batches and report progress."""
    logger.info("Starting catalog_reset_task job_id=%s user_id=%s", job_id, user_id)

    job = CatalogResetJob.objects.filter(pk=job_id).first()
    if not job:
        logger.warning("CatalogResetJob with id=%s not found.", job_id)
        publish_reset_progress(
            job_id,
            status="failed",
            processed=0,
            total=0,
            percent=0,
            errors=1,
            error="Catalog reset job not found.",
        )
        return

    total = catalog_size(job.include_history)
    job.status = CatalogResetJob.Status.IN_PROGRESS
    job.total_count = total
    job.deleted_count = 0
    job.errors_json = []
    job.save(update_fields=["status", "total_count", "deleted_count", "errors_json", "updated_at"])

    batch_size = getattr(settings, "PRODUCT_DELETE_BATCH_SIZE", 1000)
    deleted_count = 0
    errors = 0

    def _on_batch(count: int) -> None:
        job.deleted_count = count
        job.save(update_fields=["deleted_count", "updated_at"])
        payload = publish_reset_progress(
            job_id,
            status="in_progress",
            processed=count,
            total=total,
            percent=_calculate_percent(count, total),
            errors=errors,
        )
        self.update_state(state="PROGRESS", meta=payload)

    try:
        logger.info(
            "Resetting catalog in batches of %s (total=%s, include_history=%s).",
            batch_size,
            total,
            job.include_history,
        )
        deleted_count = delete_catalog(
            job.include_history, batch_size=batch_size, on_batch=_on_batch
        )

        job.status = CatalogResetJob.Status.COMPLETED
        job.deleted_count = deleted_count
        job.save(update_fields=["status", "deleted_count", "updated_at"])

        payload = publish_reset_progress(
            job_id,
            status="completed",
            processed=deleted_count,
            total=total,
            percent=100,
            errors=errors,
        )
        self.update_state(state="SUCCESS", meta=payload)
        logger.info("Completed catalog_reset_task job_id=%s deleted=%s", job_id, deleted_count)
    except Exception as exc:  # pragma: no cover
        logger.exception("Failed to reset catalog job_id=%s", job_id)
        errors += 1
        job.status = CatalogResetJob.Status.FAILED
        job.errors_json = [{"message": str(exc), "stacktrace": traceback.format_exc()}]
        job.save(update_fields=["status", "errors_json", "updated_at"])

        payload = publish_reset_progress(
            job_id,
            status="failed",
            processed=job.deleted_count,
            total=total,
            percent=_calculate_percent(job.deleted_count, total),
            errors=errors,
            error=str(exc),
        )
        self.update_state(state="FAILURE", meta=payload)
        raise
