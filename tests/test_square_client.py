import pytest
import requests

from integrations.models import InventoryIntegration
from integrations.square import SquareAPIError, SquareClient, client_for_integration

pytestmark = pytest.mark.django_db


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ""
        self.reason = "Error"

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class StubSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses):
    session = StubSession(responses)
    client = SquareClient(
        "token-abc", "https://square.test/v2/", api_version="2025-01-23", timeout=7, session=session
    )
    return client, session


def test_list_catalog_sends_cursor_and_version_headers():
    client, session = _client(
        StubResponse(payload={"objects": [{"type": "ITEM", "id": "A"}], "cursor": "next"})
    )

    page = client.list_catalog(cursor="abc")

    assert page.cursor == "next"
    assert not page.is_last
    assert page.objects == [{"type": "ITEM", "id": "A"}]
    assert session.requests == [
        ("https://square.test/v2/catalog/list", {"types": "ITEM", "cursor": "abc"}, 7)
    ]
    assert session.headers["Authorization"] == "Bearer token-abc"
    assert session.headers["Square-Version"] == "2025-01-23"


def test_first_page_omits_cursor_and_empty_listing_is_last():
    client, session = _client(StubResponse(payload={}))

    page = client.list_catalog()

    assert page.is_last
    assert page.objects == []
    assert session.requests[0][1] == {"types": "ITEM"}


def test_square_error_payload_is_parsed():
    client, _ = _client(
        StubResponse(
            status_code=401,
            payload={
                "errors": [
                    {
                        "category": "AUTHENTICATION_ERROR",
                        "code": "UNAUTHORIZED",
                        "detail": "This request could not be authorized.",
                    }
                ]
            },
        )
    )

    with pytest.raises(SquareAPIError) as excinfo:
        client.list_locations()

    assert excinfo.value.status_code == 401
    assert excinfo.value.code == "UNAUTHORIZED"
    assert str(excinfo.value) == "HTTP 401: This request could not be authorized."


def test_network_errors_become_square_errors():
    client, _ = _client(requests.ConnectionError("connection refused"))

    with pytest.raises(SquareAPIError) as excinfo:
        client.retrieve_merchant()

    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


def test_retrieve_merchant_and_locations():
    client, _ = _client(
        StubResponse(payload={"merchant": {"id": "M1", "business_name": "Shop", "country": "US"}}),
        StubResponse(payload={"locations": [{"id": "L1", "name": "Main", "status": "ACTIVE", "x": 1}]}),
    )

    assert client.retrieve_merchant() == {"merchant_id": "M1", "business_name": "Shop", "country": "US"}
    assert client.list_locations() == [{"id": "L1", "name": "Main", "status": "ACTIVE"}]


def test_client_for_integration_uses_environment_base(inventory_integration_factory):
    sandbox = inventory_integration_factory(
        environment=InventoryIntegration.Environment.SANDBOX, access_token="  tok-123456789  "
    )

    client = client_for_integration(sandbox)

    assert client.base_url == "https://connect.squareupsandbox.com/v2"
    assert client.session.headers["Authorization"] == "Bearer tok-123456789"


def test_client_for_integration_honours_base_override(settings, inventory_integration):
    settings.SQUARE_API_BASE = "http://localhost:9999/v2/"

    assert client_for_integration(inventory_integration).base_url == "http://localhost:9999/v2"


def test_client_for_integration_rejects_blank_token(inventory_integration_factory):
    integration = inventory_integration_factory(access_token="   ")

    with pytest.raises(SquareAPIError, match="Access token is empty"):
        client_for_integration(integration)
