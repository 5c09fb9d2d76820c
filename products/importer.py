"""Square catalog import runs.

A run is processed in bounded segments. Each segment pages through the
upstream catalog from the run's saved cursor, upserting one product per
item variation, and stops when the catalog is exhausted, the run is no
longer RUNNING, or its time budget is spent. Every page is committed
together with the advanced cursor and counters, so a resumed run starts
exactly after the last committed page.

Run rows are locked with ``select_for_update`` for every write made by
the runner, abort and watchdog paths; a write only applies while the run
is still in the state the writer expects.
"""
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from integrations.models import InventoryIntegration
from integrations.square import CatalogPage, SquareAPIError, client_for_integration

from .models import ImportRun, Product, ProductPosLink
from .utils.catalog_mapper import ProductRecord, build_product_record, iter_item_variations

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportRun], None]

OUTCOME_DONE = "done"
OUTCOME_CONTINUE = "continue"
OUTCOME_ABORTED = "aborted"
OUTCOME_SUPERSEDED = "superseded"
OUTCOME_SKIPPED = "skipped"

_ANY_CURSOR = object()


class ActiveRunExists(Exception):
    def __init__(self, run: Optional[ImportRun]) -> None:
        super().__init__("Import already in progress")
        self.run = run


class RunNotResumable(Exception):
    pass


class _RunNotRunning(Exception):
    pass


class _CursorMoved(Exception):
    pass


@dataclass
class SegmentResult:
    outcome: str
    run: Optional[ImportRun]


def _notify(on_progress: Optional[ProgressCallback], run: Optional[ImportRun]) -> None:
    if on_progress is not None and run is not None:
        on_progress(run)


def _lock_running(run_id, expected_cursor: Any = _ANY_CURSOR) -> ImportRun:
    """Lock the run row; must be called inside ``transaction.atomic``."""
    locked = ImportRun.objects.select_for_update().get(pk=run_id)
    if locked.status != ImportRun.Status.RUNNING:
        raise _RunNotRunning(locked.status)
    if expected_cursor is not _ANY_CURSOR and locked.cursor != expected_cursor:
        raise _CursorMoved(locked.cursor)
    return locked


def _upsert_record(integration: InventoryIntegration, record: ProductRecord) -> bool:
    """Create or update the product linked to ``record``. Returns True when created."""
    fields: Dict[str, Any] = {
        "name": record["name"],
        "sku": record["sku"],
        "upc": record["upc"],
    }
    if record["retail_price_cents"] is not None:
        fields["retail_price_cents"] = record["retail_price_cents"]

    link = (
        ProductPosLink.objects.select_related("product")
        .filter(
            integration=integration,
            source=ProductPosLink.Source.SQUARE,
            pos_item_id=record["pos_item_id"],
            pos_variation_id=record["pos_variation_id"],
        )
        .first()
    )
    if link is not None:
        product = link.product
        for name, value in fields.items():
            setattr(product, name, value)
        product.save(update_fields=[*fields.keys(), "updated_at"])
        return False

    product = Product.objects.create(origin=Product.Origin.SQUARE, **fields)
    ProductPosLink.objects.create(
        product=product,
        integration=integration,
        source=ProductPosLink.Source.SQUARE,
        pos_item_id=record["pos_item_id"],
        pos_variation_id=record["pos_variation_id"],
    )
    return True


def _commit_page(
    run: ImportRun, integration: InventoryIntegration, cursor: Optional[str], page: CatalogPage
) -> ImportRun:
    """Persist one page with its counters and cursor.

    The last page also moves the run to its terminal status in the same
    transaction, so a second segment holding the same cursor finds the run
    no longer RUNNING and commits nothing.
    """
    with transaction.atomic():
        locked = _lock_running(run.pk, expected_cursor=cursor)
        for item, variation in iter_item_variations(page.objects, page.related_objects):
            item_id = item["id"]
            variation_id = (variation or {}).get("id") or ""
            locked.processed_count += 1
            try:
                record = build_product_record(item, variation)
                with transaction.atomic():
                    created = _upsert_record(integration, record)
            except (DatabaseError, ValueError) as exc:
                logger.warning(
                    "Failed to upsert item=%s variation=%s for run=%s: %s",
                    item_id,
                    variation_id,
                    run.pk,
                    exc,
                )
                locked.failed_count += 1
                locked.append_error(
                    ImportRun.ERROR_UPSERT, f"{item_id}/{variation_id or '-'}: {exc}"
                )
                continue
            if created:
                locked.created_count += 1
            else:
                locked.updated_count += 1

        now = timezone.now()
        locked.cursor = page.cursor
        locked.last_progress_at = now
        update_fields = [
            "cursor",
            "processed_count",
            "created_count",
            "updated_count",
            "failed_count",
            "errors",
            "last_progress_at",
        ]
        if page.is_last:
            locked.status = _completion_status(locked, page_failed=False)
            locked.finished_at = now
            update_fields += ["status", "finished_at"]
        locked.save(update_fields=update_fields)
    return locked


def _record_page_failure(run: ImportRun, message: str) -> ImportRun:
    with transaction.atomic():
        locked = _lock_running(run.pk)
        locked.append_error(ImportRun.ERROR_PAGE_FETCH, message)
        locked.save(update_fields=["errors"])
    return locked


def _finish_running(
    run: ImportRun, status: str, error: Optional[tuple] = None
) -> ImportRun:
    now = timezone.now()
    with transaction.atomic():
        locked = _lock_running(run.pk)
        locked.status = status
        locked.finished_at = now
        locked.last_progress_at = now
        if error is not None:
            locked.append_error(*error)
        locked.save(update_fields=["status", "finished_at", "last_progress_at", "errors"])
    return locked


def _completion_status(run: ImportRun, page_failed: bool) -> str:
    if run.failed_count == 0 and not page_failed:
        return ImportRun.Status.SUCCESS
    if run.processed_count > 0:
        return ImportRun.Status.PARTIAL
    return ImportRun.Status.FAILED


def _report_completion(run: ImportRun, integration: InventoryIntegration) -> ImportRun:
    if run.status == ImportRun.Status.FAILED:
        last = run.last_error
        integration.record_error(last["message"] if last else "Import failed")
    else:
        integration.record_success()

    if run.processed_count == 0 and run.status == ImportRun.Status.SUCCESS:
        logger.info("Run %s found an empty catalog for integration=%s", run.pk, integration.pk)
    logger.info(
        "Run %s finished with %s: processed=%s created=%s updated=%s failed=%s",
        run.pk,
        run.status,
        run.processed_count,
        run.created_count,
        run.updated_count,
        run.failed_count,
    )
    return run


def _complete(run: ImportRun, integration: InventoryIntegration, page_failed: bool = False) -> ImportRun:
    run = _finish_running(run, _completion_status(run, page_failed))
    return _report_completion(run, integration)


def run_segment(
    run_id,
    *,
    budget_seconds: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
    on_progress: Optional[ProgressCallback] = None,
) -> SegmentResult:
    """Process one bounded slice of an import run."""
    if budget_seconds is None:
        budget_seconds = getattr(settings, "IMPORT_SEGMENT_SECONDS", 50)
    max_page_attempts = getattr(settings, "IMPORT_MAX_PAGE_ATTEMPTS", 3)
    started = clock()

    run = ImportRun.objects.select_related("integration").filter(pk=run_id).first()
    if run is None:
        logger.warning("ImportRun with id=%s not found.", run_id)
        return SegmentResult(OUTCOME_SKIPPED, None)
    if run.is_terminal:
        logger.info("ImportRun %s is already %s; nothing to do.", run.pk, run.status)
        return SegmentResult(OUTCOME_SKIPPED, run)

    ImportRun.objects.filter(pk=run.pk, status=ImportRun.Status.PENDING).update(
        status=ImportRun.Status.RUNNING, last_progress_at=timezone.now()
    )
    ImportRun.objects.filter(pk=run.pk).update(segments=F("segments") + 1)
    run.refresh_from_db()
    if run.status != ImportRun.Status.RUNNING:
        return SegmentResult(OUTCOME_ABORTED, run)

    integration = run.integration
    logger.info(
        "Starting segment %s of run=%s integration=%s cursor=%s",
        run.segments,
        run.pk,
        integration.pk,
        run.cursor,
    )

    try:
        client = client_for_integration(integration)
        if run.segments == 1:
            merchant = client.retrieve_merchant()
            logger.info(
                "Square merchant %s (%s) @ %s for run=%s",
                merchant["merchant_id"],
                merchant["business_name"] or "?",
                integration.api_base_url,
                run.pk,
            )
    except SquareAPIError as exc:
        message = f"Square credentials error: {exc}"
        logger.error("Run %s cannot reach Square: %s", run.pk, message)
        try:
            run = _finish_running(
                run, ImportRun.Status.FAILED, (ImportRun.ERROR_CREDENTIALS, message)
            )
        except _RunNotRunning:
            run.refresh_from_db()
            return SegmentResult(OUTCOME_ABORTED, run)
        integration.record_error(message)
        _notify(on_progress, run)
        return SegmentResult(OUTCOME_DONE, run)

    page_failures = 0
    try:
        while True:
            current = ImportRun.objects.filter(pk=run.pk).values_list("status", flat=True).first()
            if current != ImportRun.Status.RUNNING:
                logger.info("Run %s is %s; stopping segment.", run.pk, current)
                run.refresh_from_db()
                _notify(on_progress, run)
                return SegmentResult(OUTCOME_ABORTED, run)

            cursor = run.cursor
            try:
                page = client.list_catalog(cursor=cursor)
            except SquareAPIError as exc:
                page_failures += 1
                logger.warning(
                    "Catalog page fetch failed for run=%s cursor=%s (attempt %s/%s): %s",
                    run.pk,
                    cursor,
                    page_failures,
                    max_page_attempts,
                    exc,
                )
                run = _record_page_failure(run, f"Catalog page fetch failed: {exc}")
                _notify(on_progress, run)
                if page_failures >= max_page_attempts:
                    run = _complete(run, integration, page_failed=True)
                    _notify(on_progress, run)
                    return SegmentResult(OUTCOME_DONE, run)
            else:
                page_failures = 0
                run = _commit_page(run, integration, cursor, page)
                if page.is_last:
                    run = _report_completion(run, integration)
                    _notify(on_progress, run)
                    return SegmentResult(OUTCOME_DONE, run)
                _notify(on_progress, run)

            if clock() - started >= budget_seconds:
                logger.info(
                    "Run %s used its %ss segment budget; handing off at cursor=%s",
                    run.pk,
                    budget_seconds,
                    run.cursor,
                )
                return SegmentResult(OUTCOME_CONTINUE, run)
    except _RunNotRunning:
        run.refresh_from_db()
        logger.info("Run %s left RUNNING mid-segment (now %s).", run.pk, run.status)
        _notify(on_progress, run)
        return SegmentResult(OUTCOME_ABORTED, run)
    except _CursorMoved:
        run.refresh_from_db()
        logger.warning("Run %s cursor advanced by another segment; yielding.", run.pk)
        return SegmentResult(OUTCOME_SUPERSEDED, run)
    except Exception as exc:
        logger.exception("Import segment failed for run=%s", run.pk)
        failed = fail_run(run.pk, ImportRun.ERROR_FATAL, str(exc))
        integration.record_error(str(exc))
        _notify(on_progress, failed)
        raise


def start_run(integration: InventoryIntegration) -> ImportRun:
    """Claim the integration's single active slot and mark the new run RUNNING."""
    try:
        with transaction.atomic():
            run = ImportRun.objects.create(integration=integration, status=ImportRun.Status.PENDING)
            ImportRun.objects.filter(pk=run.pk).update(status=ImportRun.Status.RUNNING)
    except IntegrityError:
        active = ImportRun.objects.active().for_integration(integration.pk).first()
        raise ActiveRunExists(active)
    run.refresh_from_db()
    logger.info("Created import run=%s for integration=%s", run.pk, integration.pk)
    return run


def resume_run(run: ImportRun) -> ImportRun:
    """Make ``run`` eligible for another segment from its saved cursor."""
    if run.status == ImportRun.Status.RUNNING:
        return run

    last = run.last_error
    stalled = (
        run.status == ImportRun.Status.FAILED
        and last is not None
        and last.get("code") == ImportRun.ERROR_WATCHDOG_TIMEOUT
    )
    if not stalled:
        raise RunNotResumable(f"Cannot resume run in status {run.status}")

    try:
        with transaction.atomic():
            updated = ImportRun.objects.filter(pk=run.pk, status=ImportRun.Status.FAILED).update(
                status=ImportRun.Status.RUNNING,
                finished_at=None,
                last_progress_at=timezone.now(),
            )
    except IntegrityError:
        active = ImportRun.objects.active().for_integration(run.integration_id).first()
        raise ActiveRunExists(active)
    if not updated:
        raise RunNotResumable("Run changed state before it could be resumed")

    run.refresh_from_db()
    logger.info("Resumed run=%s at cursor=%s", run.pk, run.cursor)
    return run


def fail_run(run_id, code: str, message: str, *, stale_before=None) -> Optional[ImportRun]:
    """Move an active run to FAILED. Returns None when the run was not active."""
    now = timezone.now()
    with transaction.atomic():
        queryset = ImportRun.objects.select_for_update().filter(
            pk=run_id, status__in=ImportRun.ACTIVE_STATUSES
        )
        if stale_before is not None:
            queryset = queryset.filter(last_progress_at__lt=stale_before)
        run = queryset.first()
        if run is None:
            return None
        run.status = ImportRun.Status.FAILED
        run.finished_at = now
        run.append_error(code, message)
        run.save(update_fields=["status", "finished_at", "errors"])
    return run


def abort_run(run: ImportRun) -> Optional[ImportRun]:
    aborted = fail_run(run.pk, ImportRun.ERROR_USER_CANCELLED, "Import cancelled by user")
    if aborted is not None:
        logger.info("Aborted import run=%s", run.pk)
    return aborted


def mark_stale_runs(
    threshold_minutes: int,
    *,
    now=None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[Dict[str, Any]]:
    """Fail active runs whose counters have not moved for ``threshold_minutes``."""
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=threshold_minutes)
    candidates = list(
        ImportRun.objects.active()
        .filter(last_progress_at__lt=cutoff)
        .select_related("integration")
        .order_by("last_progress_at")
    )

    stale: List[Dict[str, Any]] = []
    for run in candidates:
        message = f"Watchdog timeout: no progress for {threshold_minutes} minutes"
        failed = fail_run(run.pk, ImportRun.ERROR_WATCHDOG_TIMEOUT, message, stale_before=cutoff)
        if failed is None:
            continue
        run.integration.record_error(message)
        _notify(on_progress, failed)
        stale.append(
            {
                "id": str(run.pk),
                "integration_id": str(run.integration_id),
                "last_progress_at": run.last_progress_at.isoformat(),
                "stalled_minutes": int((now - run.last_progress_at).total_seconds() // 60),
            }
        )

    if stale:
        logger.warning("Watchdog failed %s stale import runs: %s", len(stale), [s["id"] for s in stale])
    else:
        logger.info("Watchdog found no stale import runs (threshold=%s min).", threshold_minutes)
    return stale
