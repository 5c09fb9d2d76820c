import pytest
from django.db import DatabaseError

from integrations.square import CatalogPage
from products import importer
from products.importer import (
    OUTCOME_ABORTED,
    OUTCOME_CONTINUE,
    OUTCOME_DONE,
    OUTCOME_SKIPPED,
    OUTCOME_SUPERSEDED,
    abort_run,
    run_segment,
)
from products.models import ImportRun, Product, ProductPosLink
from tests.factories import catalog_item

pytestmark = pytest.mark.django_db


def _assert_counts_balance(run):
    assert run.processed_count == run.created_count + run.updated_count + run.failed_count


def test_empty_catalog_is_a_successful_noop(import_run, square_catalog):
    square_catalog({None: CatalogPage()})

    result = run_segment(import_run.pk)

    run = result.run
    assert result.outcome == OUTCOME_DONE
    assert run.status == ImportRun.Status.SUCCESS
    assert (run.processed_count, run.created_count, run.updated_count, run.failed_count) == (0, 0, 0, 0)
    assert run.finished_at is not None
    assert run.errors == []


def test_full_import_in_one_segment(import_run, square_catalog, two_page_catalog):
    client = square_catalog(two_page_catalog)
    progress = []

    result = run_segment(import_run.pk, on_progress=lambda run: progress.append(run.processed_count))

    run = result.run
    assert result.outcome == OUTCOME_DONE
    assert run.status == ImportRun.Status.SUCCESS
    assert run.processed_count == 4
    assert run.created_count == 4
    assert run.cursor is None
    assert client.calls == [None, "c1"]
    assert client.merchant_calls == 1
    assert progress == [3, 4]
    _assert_counts_balance(run)

    link = ProductPosLink.objects.get(pos_item_id="ITEM1", pos_variation_id="VAR2")
    assert link.product.name == "Cold Brew - Large"
    assert link.product.retail_price_cents == 450
    assert link.product.origin == Product.Origin.SQUARE
    assert ProductPosLink.objects.get(pos_item_id="ITEM2").pos_variation_id == ""

    import_run.integration.refresh_from_db()
    assert import_run.integration.last_success_at is not None
    assert import_run.integration.last_error == ""


def test_reimport_updates_linked_products(import_run_factory, inventory_integration, square_catalog, two_page_catalog):
    square_catalog(two_page_catalog)
    first = import_run_factory(integration=inventory_integration)
    run_segment(first.pk)

    two_page_catalog["c1"] = CatalogPage(
        objects=[catalog_item("ITEM3", "Bagel", [("VAR3", "Sesame", "BG", 275)])]
    )
    second = import_run_factory(integration=inventory_integration)
    result = run_segment(second.pk)

    run = result.run
    assert run.status == ImportRun.Status.SUCCESS
    assert run.created_count == 0
    assert run.updated_count == 4
    assert Product.objects.count() == 4
    product = ProductPosLink.objects.get(pos_variation_id="VAR3").product
    assert product.name == "Bagel - Sesame"
    assert product.retail_price_cents == 275


def test_budget_exhaustion_hands_off_and_resume_skips_committed_pages(
    import_run, square_catalog, two_page_catalog
):
    client = square_catalog(two_page_catalog)

    first = run_segment(import_run.pk, budget_seconds=0)

    assert first.outcome == OUTCOME_CONTINUE
    assert first.run.status == ImportRun.Status.RUNNING
    assert first.run.cursor == "c1"
    assert first.run.processed_count == 3

    second = run_segment(import_run.pk, budget_seconds=0)

    run = second.run
    assert second.outcome == OUTCOME_DONE
    assert run.status == ImportRun.Status.SUCCESS
    assert client.calls == [None, "c1"]
    assert client.merchant_calls == 1
    assert run.segments == 2
    assert run.processed_count == 4
    assert run.created_count == 4
    assert Product.objects.count() == 4
    _assert_counts_balance(run)


def test_transient_page_failure_is_recorded_and_retried(
    import_run, square_catalog, two_page_catalog
):
    client = square_catalog(two_page_catalog, failures={"c1": 1})

    run = run_segment(import_run.pk).run

    assert client.calls == [None, "c1", "c1"]
    assert run.status == ImportRun.Status.SUCCESS
    assert run.processed_count == 4
    assert [e["code"] for e in run.errors] == [ImportRun.ERROR_PAGE_FETCH]


def test_repeated_page_failures_end_run_as_partial(
    settings, import_run, square_catalog, two_page_catalog
):
    settings.IMPORT_MAX_PAGE_ATTEMPTS = 2
    square_catalog(two_page_catalog, failures={"c1": 5})

    run = run_segment(import_run.pk).run

    assert run.status == ImportRun.Status.PARTIAL
    assert run.processed_count == 3
    assert run.cursor == "c1"
    assert len(run.errors) == 2
    _assert_counts_balance(run)


def test_page_failures_with_nothing_processed_fail_the_run(
    settings, import_run, square_catalog, two_page_catalog
):
    settings.IMPORT_MAX_PAGE_ATTEMPTS = 1
    square_catalog(two_page_catalog, failures={None: 1})

    run = run_segment(import_run.pk).run

    assert run.status == ImportRun.Status.FAILED
    assert run.processed_count == 0
    import_run.integration.refresh_from_db()
    assert "Service Unavailable" in import_run.integration.last_error


def test_record_failures_are_counted_and_run_is_partial(
    monkeypatch, import_run, square_catalog, two_page_catalog
):
    square_catalog(two_page_catalog)
    real_upsert = importer._upsert_record

    def flaky_upsert(integration, record):
        if record["pos_item_id"] == "ITEM2":
            raise DatabaseError("value too long")
        return real_upsert(integration, record)

    monkeypatch.setattr(importer, "_upsert_record", flaky_upsert)

    run = run_segment(import_run.pk).run

    assert run.status == ImportRun.Status.PARTIAL
    assert run.processed_count == 4
    assert run.created_count == 3
    assert run.failed_count == 1
    assert run.errors[-1]["code"] == ImportRun.ERROR_UPSERT
    assert "ITEM2/-" in run.errors[-1]["message"]
    _assert_counts_balance(run)


def test_abort_is_observed_before_the_next_page_commit(import_run, square_catalog, two_page_catalog):
    client = square_catalog(two_page_catalog)

    def abort_on_second_page(cursor):
        if cursor == "c1":
            abort_run(ImportRun.objects.get(pk=import_run.pk))

    client.before_page = abort_on_second_page

    result = run_segment(import_run.pk)

    run = result.run
    assert result.outcome == OUTCOME_ABORTED
    assert run.status == ImportRun.Status.FAILED
    assert run.errors[-1]["code"] == ImportRun.ERROR_USER_CANCELLED
    assert run.cursor == "c1"
    assert run.processed_count == 3
    assert not ProductPosLink.objects.filter(pos_item_id="ITEM3").exists()


def test_aborted_run_is_not_processed(import_run, square_catalog, two_page_catalog):
    client = square_catalog(two_page_catalog)
    abort_run(import_run)

    result = run_segment(import_run.pk)

    assert result.outcome == OUTCOME_SKIPPED
    assert client.calls == []


def test_concurrent_segment_that_lost_the_cursor_yields(import_run, square_catalog, two_page_catalog):
    client = square_catalog(two_page_catalog)

    def other_segment_advances(cursor):
        if cursor is None:
            ImportRun.objects.filter(pk=import_run.pk).update(cursor="c1")

    client.before_page = other_segment_advances

    result = run_segment(import_run.pk)

    assert result.outcome == OUTCOME_SUPERSEDED
    assert result.run.processed_count == 0
    assert Product.objects.count() == 0


def test_last_page_committed_by_another_segment_is_not_counted_twice(import_run, square_catalog):
    page = CatalogPage(objects=[catalog_item("ITEM1", "Latte", [("VAR1", "Hot", "LT", 400)])])
    client = square_catalog({None: page})

    def other_segment_commits(cursor):
        run = ImportRun.objects.get(pk=import_run.pk)
        importer._commit_page(run, import_run.integration, cursor, page)

    client.before_page = other_segment_commits

    result = run_segment(import_run.pk)

    run = result.run
    assert result.outcome == OUTCOME_ABORTED
    assert run.status == ImportRun.Status.SUCCESS
    assert (run.processed_count, run.created_count, run.updated_count) == (1, 1, 0)
    assert run.finished_at is not None
    assert Product.objects.count() == 1


def test_last_page_commit_finishes_the_run(import_run, square_catalog):
    page = CatalogPage(objects=[catalog_item("ITEM1", "Latte", [("VAR1", "Hot", "LT", 400)])])

    run = importer._commit_page(import_run, import_run.integration, None, page)

    run.refresh_from_db()
    assert run.status == ImportRun.Status.SUCCESS
    assert run.cursor is None
    assert run.processed_count == 1


def test_invalid_price_fails_only_that_record(import_run, square_catalog):
    square_catalog(
        {
            None: CatalogPage(
                objects=[
                    catalog_item("ITEM1", "Latte", [("VAR1", "Hot", "LT", "12.5"), ("VAR2", "Iced", "LI", 450)]),
                ]
            )
        }
    )

    run = run_segment(import_run.pk).run

    assert run.status == ImportRun.Status.PARTIAL
    assert (run.processed_count, run.created_count, run.failed_count) == (2, 1, 1)
    assert run.errors[-1]["code"] == ImportRun.ERROR_UPSERT
    assert run.errors[-1]["message"].startswith("ITEM1/VAR1:")
    assert ProductPosLink.objects.get().pos_variation_id == "VAR2"
    _assert_counts_balance(run)


def test_pending_run_is_promoted_to_running(import_run_factory, square_catalog):
    square_catalog({None: CatalogPage()})
    run = import_run_factory(status=ImportRun.Status.PENDING)

    result = run_segment(run.pk)

    assert result.run.status == ImportRun.Status.SUCCESS


def test_missing_credentials_fail_the_run(import_run_factory, inventory_integration_factory):
    integration = inventory_integration_factory(access_token="")
    run = import_run_factory(integration=integration)

    result = run_segment(run.pk)

    assert result.outcome == OUTCOME_DONE
    assert result.run.status == ImportRun.Status.FAILED
    assert result.run.errors[-1]["code"] == ImportRun.ERROR_CREDENTIALS
    integration.refresh_from_db()
    assert "Access token is empty" in integration.last_error


def test_unexpected_errors_fail_the_run_and_propagate(monkeypatch, import_run, square_catalog, two_page_catalog):
    square_catalog(two_page_catalog)

    def broken_mapper(objects, related_objects=None):
        raise RuntimeError("mapper exploded")

    monkeypatch.setattr(importer, "iter_item_variations", broken_mapper)

    with pytest.raises(RuntimeError):
        run_segment(import_run.pk)

    import_run.refresh_from_db()
    assert import_run.status == ImportRun.Status.FAILED
    assert import_run.errors[-1]["code"] == ImportRun.ERROR_FATAL


def test_unknown_run_is_skipped():
    assert run_segment("00000000-0000-0000-0000-000000000000").outcome == OUTCOME_SKIPPED


def test_error_list_is_bounded(settings, import_run):
    settings.IMPORT_MAX_ERROR_RECORDS = 3

    for index in range(5):
        import_run.append_error("INFO", f"entry {index}")

    assert [e["message"] for e in import_run.errors] == ["entry 2", "entry 3", "entry 4"]
