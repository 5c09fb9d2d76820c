"""Minimal client for the Square Connect v2 REST API.

Only the endpoints the catalog import needs are wrapped. Every failure,
network or HTTP, surfaces as :class:`SquareAPIError`; callers decide
whether that is a batch-level or a run-level problem.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-07-17"
DEFAULT_TIMEOUT_SECONDS = 30
MAX_ERROR_BODY = 500


class SquareAPIError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        category: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.category = category
        self.code = code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


@dataclass
class CatalogPage:
    objects: List[Dict[str, Any]] = field(default_factory=list)
    related_objects: List[Dict[str, Any]] = field(default_factory=list)
    cursor: Optional[str] = None

    @property
    def is_last(self) -> bool:
        return not self.cursor


class SquareClient:
    def __init__(
        self,
        access_token: str,
        base_url: str,
        *,
        api_version: str = DEFAULT_API_VERSION,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Square-Version": api_version,
                "Accept": "application/json",
            }
        )

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SquareAPIError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise _error_from_response(response)

        try:
            return response.json()
        except ValueError as exc:
            raise SquareAPIError(
                f"Invalid JSON from {path}", status_code=response.status_code
            ) from exc

    def list_catalog(self, cursor: Optional[str] = None, types: str = "ITEM") -> CatalogPage:
        params: Dict[str, Any] = {"types": types}
        if cursor:
            params["cursor"] = cursor
        data = self._get("catalog/list", params=params)
        return CatalogPage(
            objects=data.get("objects") or [],
            related_objects=data.get("related_objects") or [],
            cursor=data.get("cursor") or None,
        )

    def retrieve_merchant(self) -> Dict[str, Optional[str]]:
        data = self._get("merchants/me")
        merchant = data.get("merchant") or (data.get("merchants") or [{}])[0]
        return {
            "merchant_id": merchant.get("id"),
            "business_name": merchant.get("business_name"),
            "country": merchant.get("country"),
        }

    def list_locations(self) -> List[Dict[str, Optional[str]]]:
        data = self._get("locations")
        return [
            {"id": loc.get("id"), "name": loc.get("name"), "status": loc.get("status")}
            for loc in data.get("locations") or []
        ]


def _error_from_response(response: requests.Response) -> SquareAPIError:
    body = response.text[:MAX_ERROR_BODY]
    try:
        payload = response.json()
    except ValueError:
        payload = None

    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors:
        first = errors[0]
        return SquareAPIError(
            first.get("detail") or first.get("code") or body,
            status_code=response.status_code,
            category=first.get("category"),
            code=first.get("code"),
        )
    return SquareAPIError(body or response.reason or "Request failed", status_code=response.status_code)


def client_for_integration(integration) -> SquareClient:
    token = (integration.access_token or "").strip()
    if not token:
        raise SquareAPIError("Access token is empty")
    logger.debug(
        "Building Square client for integration=%s base=%s token=%s",
        integration.pk,
        integration.api_base_url,
        integration.masked_token,
    )
    return SquareClient(
        token,
        integration.api_base_url,
        api_version=getattr(settings, "SQUARE_API_VERSION", DEFAULT_API_VERSION),
        timeout=getattr(settings, "SQUARE_HTTP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )
