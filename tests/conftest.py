from typing import Callable, Dict, Optional

import pytest
from pytest_factoryboy import register
from rest_framework.test import APIClient

from integrations.square import CatalogPage, SquareAPIError
from tests import factories

register(factories.InventoryIntegrationFactory)
register(factories.ProductFactory)
register(factories.ImportRunFactory)


class FakeSquareClient:
    """Serves catalog pages keyed by the cursor used to request them."""

    def __init__(
        self,
        pages: Dict[Optional[str], CatalogPage],
        failures: Optional[Dict[Optional[str], int]] = None,
    ) -> None:
        self.pages = pages
        self.failures = dict(failures or {})
        self.calls = []
        self.merchant_calls = 0
        self.before_page: Optional[Callable[[Optional[str]], None]] = None

    def retrieve_merchant(self):
        self.merchant_calls += 1
        return {"merchant_id": "MERCHANT1", "business_name": "Corner Shop", "country": "US"}

    def list_catalog(self, cursor=None, types="ITEM"):
        self.calls.append(cursor)
        if self.before_page is not None:
            self.before_page(cursor)
        remaining = self.failures.get(cursor, 0)
        if remaining:
            self.failures[cursor] = remaining - 1
            raise SquareAPIError("Service Unavailable", status_code=503)
        return self.pages[cursor]

    def list_locations(self):
        return [{"id": "L1", "name": "Main", "status": "ACTIVE"}]


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def square_catalog(monkeypatch):
    """Install a FakeSquareClient in place of the real Square client."""

    def install(pages, failures=None) -> FakeSquareClient:
        client = FakeSquareClient(pages, failures)
        monkeypatch.setattr("products.importer.client_for_integration", lambda integration: client)
        return client

    return install


@pytest.fixture
def two_page_catalog():
    return {
        None: CatalogPage(
            objects=[
                factories.catalog_item(
                    "ITEM1",
                    "Cold Brew",
                    [("VAR1", "Small", "CB-S", 350), ("VAR2", "Large", "CB-L", 450)],
                ),
                factories.catalog_item("ITEM2", "Gift Card", sku="GIFT", upc="0001"),
            ],
            cursor="c1",
        ),
        "c1": CatalogPage(
            objects=[factories.catalog_item("ITEM3", "Bagel", [("VAR3", "Regular", "BG", 250)])],
            cursor=None,
        ),
    }
