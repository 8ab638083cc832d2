"""
HUVR Data API client.

Thin ``requests`` wrapper that implements the entity fetch port used by the
gatherer and the export planner: ``fetch_all`` (paginated list with filters)
and ``fetch_one`` (single record by id), plus the usual CRUD calls.

Records come back as plain dicts with PascalCase keys ("asset_id" ->
"AssetId") so relationship keys and mapped field paths address them the
same way regardless of endpoint.
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Protocol

import requests

from huvr_export.services.relationship_catalog import (
    ASSET,
    CHECKLIST,
    DEFECT,
    DEFECT_OVERLAY,
    INSPECTION_MEDIA,
    LIBRARY,
    LIBRARY_MEDIA,
    MEASUREMENT,
    PROJECT,
    TASK,
    USER,
    WORKSPACE,
    normalize_entity_type,
)

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

ENDPOINTS: Dict[str, str] = {
    ASSET: "/api/assets/",
    PROJECT: "/api/projects/",
    INSPECTION_MEDIA: "/api/inspection-media/",
    CHECKLIST: "/api/checklists/",
    DEFECT: "/api/defects/",
    DEFECT_OVERLAY: "/api/defect-overlays/",
    MEASUREMENT: "/api/measurements/",
    USER: "/api/users/",
    WORKSPACE: "/api/workspaces/",
    TASK: "/api/tasks/",
    LIBRARY: "/api/libraries/",
    LIBRARY_MEDIA: "/api/library-media/",
}

TOKEN_PATH = "/api/auth/obtain-access-token/"


class HuvrApiError(Exception):
    """A HUVR API request failed (transport error or non-2xx response)."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        detail: Optional[str] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.response_body = response_body


class HuvrNotFoundError(HuvrApiError):
    """The requested record does not exist (HTTP 404)."""


class HuvrAuthError(HuvrApiError):
    """Access token could not be obtained or was rejected."""


class GatherCancelledError(Exception):
    """A cancellation signal was observed at a fetch boundary."""


def raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise GatherCancelledError("Fetch cancelled")


class EntityFetchPort(Protocol):
    """What the gatherer and the export planner need from a data source."""

    def fetch_all(
        self,
        entity_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        max_items: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Record]:
        ...

    def fetch_one(self, entity_type: str, entity_id: str) -> Record:
        ...


def snake_to_pascal(key: str) -> str:
    """Convert a snake_case JSON key to PascalCase: asset_id -> AssetId."""
    if "_" not in key:
        return key[:1].upper() + key[1:]
    return "".join(part[:1].upper() + part[1:] for part in key.split("_") if part)


def normalize_record(value: Any) -> Any:
    """Recursively convert JSON keys to PascalCase; ids become strings."""
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for key, item in value.items():
            name = snake_to_pascal(str(key))
            item = normalize_record(item)
            # ids may arrive as numbers or strings
            if name == "Id" and item is not None and not isinstance(item, (dict, list)):
                item = str(item)
            out[name] = item
        return out
    if isinstance(value, list):
        return [normalize_record(item) for item in value]
    return value


def _endpoint_for(entity_type: str) -> str:
    canonical = normalize_entity_type(entity_type)
    if canonical is None or canonical not in ENDPOINTS:
        raise ValueError(f"Unknown entity type: {entity_type}")
    return ENDPOINTS[canonical]


class HuvrApiClient:
    """Client for the HUVR Data API, authenticated with client credentials."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        base_url: str = "https://api.huvrdata.app",
        timeout: float = 30.0,
        token_refresh_buffer_minutes: int = 5,
        auto_retry_on_token_expiration: bool = True,
        page_size: int = 100,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not client_id:
            raise ValueError("client_id is required")
        if not client_secret:
            raise ValueError("client_secret is required")
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._refresh_buffer = timedelta(minutes=token_refresh_buffer_minutes)
        self._auto_retry = auto_retry_on_token_expiration
        self._page_size = page_size
        self._session = session or requests.Session()
        self._token_lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HuvrApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Authentication

    def obtain_access_token(self) -> str:
        """Request a new access token and cache it with its expiry."""
        url = f"{self._base_url}{TOKEN_PATH}"
        try:
            response = self._session.post(
                url,
                json={"client_id": self._client_id, "client_secret": self._client_secret},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"Token request failed: {exc}")
            raise HuvrAuthError(f"Token request failed: {exc}") from exc
        if not response.ok:
            raise HuvrAuthError(
                f"Failed to obtain access token ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise HuvrAuthError("Token response did not contain an access_token")
        self._access_token = token
        self._expires_at = datetime.utcnow() + timedelta(seconds=int(data.get("expires_in") or 0))
        logger.info("Obtained HUVR access token")
        return token

    def _ensure_token(self, force_refresh: bool = False) -> str:
        with self._token_lock:
            expired = (
                self._access_token is None
                or self._expires_at is None
                or datetime.utcnow() >= self._expires_at - self._refresh_buffer
            )
            if force_refresh or expired:
                return self.obtain_access_token()
            return self._access_token

    # ------------------------------------------------------------------
    # Transport

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        url = path if path.startswith("http") else f"{self._base_url}{path}"
        token = self._ensure_token()
        response = self._send(method, url, token, params, json)
        if response.status_code == 401 and self._auto_retry:
            logger.info("Access token rejected, refreshing and retrying once")
            token = self._ensure_token(force_refresh=True)
            response = self._send(method, url, token, params, json)

        if response.status_code == 404:
            raise HuvrNotFoundError(
                f"{method} {url} not found",
                status_code=404,
                response_body=response.text,
            )
        if response.status_code == 401:
            raise HuvrAuthError("HUVR API rejected the access token", status_code=401, response_body=response.text)
        if not response.ok:
            detail = self._error_detail(response)
            logger.error(f"HUVR API error: {method} {url} -> {response.status_code} {detail}")
            raise HuvrApiError(
                f"HUVR API returned {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
                response_body=response.text,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _send(self, method, url, token, params, json) -> requests.Response:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            return self._session.request(
                method,
                url,
                params=query or None,
                json=json,
                headers={"Authorization": f"Token {token}", "Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error(f"HUVR request failed: {method} {url} -> {exc}")
            raise HuvrApiError(f"HUVR request failed: {exc}") from exc

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip()
        if isinstance(data, dict):
            for key in ("detail", "message", "error"):
                if data.get(key):
                    return str(data[key])
        return str(data)

    # ------------------------------------------------------------------
    # Entity fetch port

    def list_page(
        self,
        entity_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        """One raw page: {"results": [...], "count": n, "next": url|None, "previous": url|None}."""
        params = dict(filters or {})
        if limit is not None:
            params["limit"] = limit
        if offset is not None:
            params["offset"] = offset
        data = self._request("GET", _endpoint_for(entity_type), params=params) or {}
        if isinstance(data, list):
            # some endpoints are not paginated
            return {"results": normalize_record(data), "count": len(data), "next": None, "previous": None}
        data["results"] = normalize_record(data.get("results") or [])
        return data

    def fetch_all(
        self,
        entity_type: str,
        filters: Optional[Mapping[str, Any]] = None,
        max_items: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Record]:
        """Every record matching ``filters``, following pagination until exhausted or ``max_items``."""
        records: List[Record] = []
        offset = 0
        while True:
            raise_if_cancelled(cancel_event)
            page = self.list_page(entity_type, filters, limit=self._page_size, offset=offset)
            results = page["results"]
            records.extend(results)
            if max_items is not None and len(records) >= max_items:
                records = records[:max_items]
                break
            if not page.get("next") or not results:
                break
            offset += len(results)
        logger.debug(f"Fetched {len(records)} {entity_type} records")
        return records

    def fetch_one(self, entity_type: str, entity_id: str) -> Record:
        data = self._request("GET", f"{_endpoint_for(entity_type)}{entity_id}/")
        if not data:
            raise HuvrNotFoundError(f"{entity_type} {entity_id} not found", status_code=404)
        return normalize_record(data)

    # ------------------------------------------------------------------
    # Writes

    def create(self, entity_type: str, payload: Mapping[str, Any]) -> Record:
        return normalize_record(self._request("POST", _endpoint_for(entity_type), json=dict(payload)))

    def update(self, entity_type: str, entity_id: str, payload: Mapping[str, Any]) -> Record:
        path = f"{_endpoint_for(entity_type)}{entity_id}/"
        return normalize_record(self._request("PATCH", path, json=dict(payload)))

    def delete(self, entity_type: str, entity_id: str) -> None:
        self._request("DELETE", f"{_endpoint_for(entity_type)}{entity_id}/")
