"""REST transport to a Supabase project, plus boundary validation."""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from typing import Any
from urllib.parse import quote

import httpx

from rls_probe.errors import ConfigError, TransportError, TransportTimeout

logger = logging.getLogger(__name__)

PROJECT_URL_RE = re.compile(r"^https://[a-zA-Z0-9-]+\.supabase\.co/?$")
ANON_KEY_ENV = "SUPABASE_ANON_KEY"

DEFAULT_SCHEMA_TIMEOUT = 30.0
DEFAULT_PROBE_TIMEOUT = 15.0

_SINGLE_OBJECT = "application/vnd.pgrst.object+json"


def validate_project_url(url: str | None) -> str:
    """Return *url* without its trailing slash, or raise ConfigError."""
    url = (url or "").strip()
    if not PROJECT_URL_RE.match(url):
        raise ConfigError("Invalid Supabase URL")
    return url.rstrip("/")


def validate_api_key(key: str | None) -> str:
    """Accept only anonymous-tier keys.

    Service-role JWTs and ``sb_secret_`` keys bypass RLS entirely, so probing
    with them would report every table as exposed.
    """
    key = (key or "").strip()
    if not key:
        raise ConfigError(f"API key is required (use --key or set {ANON_KEY_ENV})")
    if any(ch.isspace() for ch in key):
        raise ConfigError("API key must not contain whitespace")
    if key.startswith("sb_secret_") or _jwt_role(key) == "service_role":
        raise ConfigError("Refusing to probe with a service-role key; use the anon key")
    return key


def _jwt_role(token: str) -> str | None:
    segments = token.split(".")
    if len(segments) != 3:
        return None
    payload = segments[1]
    padding = "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload + padding))
    except (ValueError, UnicodeDecodeError):
        return None
    return claims.get("role") if isinstance(claims, dict) else None


class RestTransport:
    """Anonymous CRUD calls against ``<project>/rest/v1`` over one shared client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        schema_timeout: float = DEFAULT_SCHEMA_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.schema_timeout = schema_timeout
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_PROBE_TIMEOUT, connect=10.0),
        )
        self._client.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            }
        )

    @property
    def rest_url(self) -> str:
        return f"{self.base_url}/rest/v1"

    async def __aenter__(self) -> RestTransport:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def fetch_schema(self) -> dict[str, Any]:
        response = await self._request(
            "GET",
            f"{self.rest_url}/",
            params={"apikey": self.api_key},
            timeout=self.schema_timeout,
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("Schema response is not valid JSON", response.status_code) from exc
        if not isinstance(data, dict):
            raise TransportError("Schema response is not a JSON object", response.status_code)
        return data

    async def select(
        self, table: str, match: dict[str, Any] | None = None, limit: int | None = None
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **_eq_filters(match)}
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", self._table_url(table), params=params)
        rows = response.json()
        return rows if isinstance(rows, list) else [rows]

    async def insert_and_return(self, table: str, record: dict[str, Any]) -> dict[str, Any] | None:
        response = await self._request(
            "POST",
            self._table_url(table),
            params={"select": "*"},
            json=record,
            headers={"Prefer": "return=representation", "Accept": _SINGLE_OBJECT},
        )
        return response.json()

    async def update(self, table: str, record: dict[str, Any], match: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            self._table_url(table),
            params=_eq_filters(match),
            json=record,
            headers={"Prefer": "return=minimal"},
        )

    async def delete(self, table: str, match: dict[str, Any]) -> None:
        await self._request(
            "DELETE",
            self._table_url(table),
            params=_eq_filters(match),
            headers={"Prefer": "return=minimal"},
        )

    def _table_url(self, table: str) -> str:
        return f"{self.rest_url}/{quote(table, safe='')}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportTimeout(f"{type(exc).__name__}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise TransportError(_error_message(response), response.status_code)
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response


def _eq_filters(match: dict[str, Any] | None) -> dict[str, str]:
    if not match:
        return {}
    return {column: _filter_value(value) for column, value in match.items()}


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("msg") or body.get("error")
        if message:
            return str(message)
    return f"HTTP {response.status_code}: {response.text[:200]}"


def connect(
    url: str | None,
    key: str | None = None,
    schema_timeout: float = DEFAULT_SCHEMA_TIMEOUT,
) -> RestTransport:
    """Validate the target and credential, then build the run's transport.

    Falls back to the ``SUPABASE_ANON_KEY`` environment variable when *key*
    is not given.
    """
    base_url = validate_project_url(url)
    api_key = validate_api_key(key or os.environ.get(ANON_KEY_ENV))
    return RestTransport(base_url, api_key, schema_timeout=schema_timeout)
