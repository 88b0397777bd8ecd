"""HTTP transports: a PostgREST query client and a serverless function client."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from ..errors import StoreError
from .base import Filter, Order, TableStore

LOGGER = logging.getLogger(__name__)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
PAGE_SIZE = 1000
MAX_ROWS = 20000


class _HttpTransport(TableStore):
    """Shared session handling with exponential backoff on throttling and server errors."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Tuple[float, float] = (5, 30),
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise StoreError("A base URL is required for the HTTP data store")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token or api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        idempotent: Optional[bool] = None,
    ) -> requests.Response:
        """Send one request, retrying throttling and transient failures.

        Non-idempotent calls (POST unless told otherwise) are only re-sent when
        the server cannot have acted on them: a connect timeout or a 429.
        """

        if idempotent is None:
            idempotent = method != "POST"
        merged_headers = self._headers()
        merged_headers.update(headers or {})
        attempt = 0
        while True:
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=merged_headers,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as exc:
                retryable = idempotent or isinstance(exc, requests.exceptions.ConnectTimeout)
                if retryable and attempt < self.max_retries:
                    self._backoff(attempt, f"{method} {url} failed: {exc}")
                    attempt += 1
                    continue
                raise StoreError(f"{method} {url} failed after {attempt} retries: {exc}") from exc

            status = response.status_code
            if status in RETRY_STATUS_CODES and (idempotent or status == 429) and attempt < self.max_retries:
                self._backoff(attempt, f"{method} {url} returned {response.status_code}")
                attempt += 1
                continue
            if response.status_code >= 400:
                raise StoreError(f"{method} {url} returned {response.status_code}: {response.text[:200]}")
            return response

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.retry_delay * (2 ** attempt)
        LOGGER.warning("%s; retrying in %.1f seconds", reason, delay)
        time.sleep(delay)


class RestStore(_HttpTransport):
    """Typed query client for a PostgREST endpoint (``{base_url}/rest/v1/{table}``).

    Row level security on the server scopes every query to the caller's
    agency; filters sent here only narrow the result further.
    """

    _OPERATORS = {"eq", "neq", "gte", "lte", "is"}

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    @classmethod
    def _filter_params(cls, filters: Sequence[Filter]) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        for column, operator, value in filters:
            if operator not in cls._OPERATORS:
                raise StoreError(f"Unsupported filter operator '{operator}'")
            if value is None:
                text = "null"
            elif isinstance(value, bool):
                text = "true" if value else "false"
            else:
                text = str(value)
            params.append((column, f"{operator}.{text}"))
        return params

    def _select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        base_params = [("select", "*")] + self._filter_params(filters)
        if order is not None:
            column, descending = order
            base_params.append(("order", f"{column}.{'desc' if descending else 'asc'}.nullslast"))

        wanted = min(limit, MAX_ROWS) if limit is not None else MAX_ROWS
        rows: List[Dict[str, Any]] = []
        offset = 0
        while len(rows) < wanted:
            page_size = min(PAGE_SIZE, wanted - len(rows))
            params = base_params + [("limit", str(page_size)), ("offset", str(offset))]
            response = self._request("GET", self._table_url(table), params=params)
            page = response.json() or []
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        if limit is None and len(rows) >= MAX_ROWS:
            LOGGER.warning("Select on %s stopped at the %s row cap", table, MAX_ROWS)
        return rows

    def _insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        response = self._request(
            "POST",
            self._table_url(table),
            json_body=dict(values),
            headers={"Prefer": "return=representation"},
        )
        body = response.json()
        if isinstance(body, list):
            if not body:
                raise StoreError(f"Insert into {table} returned no row")
            return body[0]
        return body

    def _update(self, table: str, row_id: str, values: Mapping[str, Any]) -> None:
        self._request(
            "PATCH",
            self._table_url(table),
            params=[("id", f"eq.{row_id}")],
            json_body=dict(values),
        )


class FunctionStore(_HttpTransport):
    """Routes every table operation through one serverless function.

    Used for staff identities that bypass row level security; the function
    authorises the call using the staff session token.
    """

    def __init__(
        self,
        base_url: str,
        *,
        function: str = "lqs-data",
        staff_session: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url, **kwargs)
        self.function = function
        self.staff_session = staff_session

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.staff_session:
            headers["x-staff-session"] = self.staff_session
        return headers

    def _call(self, payload: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/functions/v1/{self.function}"
        body = self._request("POST", url, json_body=payload, idempotent=payload["action"] == "select").json()
        if isinstance(body, dict) and body.get("error"):
            raise StoreError(f"Function {self.function} failed: {body['error']}")
        return body.get("data") if isinstance(body, dict) else body

    def _select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "action": "select",
            "table": table,
            "filters": [list(item) for item in filters],
        }
        if order is not None:
            payload["order"] = {"column": order[0], "descending": order[1]}
        if limit is not None:
            payload["limit"] = limit
        return list(self._call(payload) or [])

    def _insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        row = self._call({"action": "insert", "table": table, "values": dict(values)})
        if isinstance(row, list):
            row = row[0] if row else None
        if not row:
            raise StoreError(f"Insert into {table} returned no row")
        return row

    def _update(self, table: str, row_id: str, values: Mapping[str, Any]) -> None:
        self._call({"action": "update", "table": table, "id": row_id, "values": dict(values)})


__all__ = ["FunctionStore", "RestStore"]
