"""
ProjectHub Backend Client — thin async client for the hosted REST data API.

Pipeline (per query):
    1. Build the request from the Query (method, filters, body, Prefer header)
    2. Execute via a pooled httpx.AsyncClient
    3. Map HTTP failures to BackendError, transport failures to
       BackendUnavailableError
    4. Resolve single / maybe_single client-side
    5. Log method, url, status and duration (never the body)

No retry, no backoff: failures surface to the calling operation, which
decides whether to re-raise or keep its previous state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

import httpx

from projecthub.engine.errors import BackendError, BackendUnavailableError
from projecthub.engine.logging import log, log_backend_call

logger = logging.getLogger("projecthub.backend.client")

Rows = Union[Dict[str, Any], List[Dict[str, Any]]]

_RESERVED = set(',()".:')


class Filter(NamedTuple):
    """One column filter. ``op`` is eq / neq / in / cs / is / or."""

    column: str
    op: str
    value: Any


@dataclass
class BackendResponse:
    """Rows returned by a query (a dict for single, a list otherwise)."""

    data: Any = None
    count: Optional[int] = None


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if any(ch in _RESERVED for ch in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def render_filter(f: Filter) -> Tuple[str, str]:
    """Render a Filter as a (query-param name, value) pair."""
    if f.op == "in":
        return f.column, f"in.({','.join(_format_value(v) for v in f.value)})"
    if f.op == "cs":
        return f.column, "cs.{" + ",".join(_format_value(v) for v in f.value) + "}"
    if f.op == "or":
        return "or", f"({','.join(_render_inline(sub) for sub in f.value)})"
    return f.column, f"{f.op}.{_format_value(f.value)}"


def _render_inline(f: Filter) -> str:
    name, value = render_filter(f)
    return f"{name}.{value}"


def _split_top_level(expr: str) -> List[str]:
    parts, depth, current = [], 0, []
    for ch in expr:
        if ch in "({":
            depth += 1
        elif ch in ")}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if current:
        parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1].replace('\\"', '"')
    return text


def parse_or_expression(expr: str) -> List[Filter]:
    """
    Parse a disjunction such as ``client_id.eq.7,project_id.in.(1,2)`` into
    Filters. Supported operators: eq, neq, in, cs, is.
    """
    filters = []
    for part in _split_top_level(expr):
        column, op, raw = part.split(".", 2)
        if op in ("in", "cs"):
            inner = raw[1:-1]
            values = [_strip_quotes(v) for v in _split_top_level(inner)]
            filters.append(Filter(column, op, values))
        elif op == "is":
            filters.append(Filter(column, op, {"null": None, "true": True, "false": False}[raw]))
        elif op in ("eq", "neq"):
            filters.append(Filter(column, op, _strip_quotes(raw)))
        else:
            raise ValueError(f"Unsupported operator in or-expression: {op}")
    return filters


class Query:
    """
    Chainable request builder for one table.

    Usage:
        resp = await client.table("projects").select("*").eq("client_id", uid).execute()
        rows = resp.data
    """

    def __init__(self, executor: Any, table: str):
        self._executor = executor
        self.table = table
        self.method = "GET"
        self.columns: Optional[str] = None
        self.filters: List[Filter] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.row_limit: Optional[int] = None
        self.body: Optional[Rows] = None
        self.returning = False
        self.on_conflict: Optional[str] = None
        self.upsert_mode = False
        self.cardinality: Optional[str] = None  # "single" | "maybe_single"
        self.count_mode: Optional[str] = None

    # ── Verbs ──

    def select(self, columns: str = "*", count: Optional[str] = None) -> "Query":
        """Read rows, or ask a write to return its rows."""
        self.columns = columns
        self.count_mode = count
        if self.method != "GET":
            self.returning = True
        return self

    def insert(self, rows: Rows) -> "Query":
        self.method = "POST"
        self.body = rows
        return self

    def upsert(self, rows: Rows, on_conflict: Optional[str] = None) -> "Query":
        self.method = "POST"
        self.body = rows
        self.upsert_mode = True
        self.on_conflict = on_conflict
        return self

    def update(self, values: Dict[str, Any]) -> "Query":
        self.method = "PATCH"
        self.body = values
        return self

    def delete(self) -> "Query":
        self.method = "DELETE"
        return self

    # ── Filters ──

    def eq(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter(column, "eq", value))
        return self

    def neq(self, column: str, value: Any) -> "Query":
        self.filters.append(Filter(column, "neq", value))
        return self

    def in_(self, column: str, values: List[Any]) -> "Query":
        self.filters.append(Filter(column, "in", list(values)))
        return self

    def contains(self, column: str, values: List[Any]) -> "Query":
        self.filters.append(Filter(column, "cs", list(values)))
        return self

    def is_(self, column: str, value: Optional[bool]) -> "Query":
        self.filters.append(Filter(column, "is", value))
        return self

    def or_(self, expression: str) -> "Query":
        self.filters.append(Filter("or", "or", parse_or_expression(expression)))
        return self

    # ── Modifiers ──

    def order(self, column: str, desc: bool = False) -> "Query":
        self.ordering.append((column, desc))
        return self

    def limit(self, count: int) -> "Query":
        self.row_limit = count
        return self

    def single(self) -> "Query":
        """Expect exactly one row; zero or many raise BackendError."""
        self.cardinality = "single"
        return self

    def maybe_single(self) -> "Query":
        """Expect at most one row; zero yields data=None."""
        self.cardinality = "maybe_single"
        return self

    # ── Rendering ──

    def params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = []
        if self.columns is not None and (self.method == "GET" or self.returning):
            params.append(("select", self.columns))
        for f in self.filters:
            params.append(render_filter(f))
        if self.ordering:
            params.append((
                "order",
                ",".join(f"{col}.{'desc' if desc else 'asc'}" for col, desc in self.ordering),
            ))
        if self.row_limit is not None:
            params.append(("limit", str(self.row_limit)))
        if self.upsert_mode and self.on_conflict:
            params.append(("on_conflict", self.on_conflict))
        return params

    def prefer(self) -> Optional[str]:
        parts = []
        if self.method != "GET":
            parts.append("return=representation" if self.returning else "return=minimal")
        if self.upsert_mode:
            parts.append("resolution=merge-duplicates")
        if self.count_mode:
            parts.append(f"count={self.count_mode}")
        return ",".join(parts) or None

    @property
    def operation(self) -> str:
        if self.upsert_mode:
            return "upsert"
        return {"GET": "select", "POST": "insert", "PATCH": "update", "DELETE": "delete"}[self.method]

    async def execute(self) -> BackendResponse:
        return await self._executor.execute(self)


def resolve_cardinality(query: Query, rows: Any) -> Any:
    """Apply single / maybe_single to a list of rows."""
    if query.cardinality is None:
        return rows
    rows = rows or []
    if not isinstance(rows, list):
        rows = [rows]
    if len(rows) > 1:
        raise BackendError(
            f"Expected at most one row from {query.table}, got {len(rows)}",
            table=query.table,
            operation=query.operation,
            code="PGRST116",
        )
    if not rows:
        if query.cardinality == "single":
            raise BackendError(
                f"Expected one row from {query.table}, got none",
                table=query.table,
                operation=query.operation,
                code="PGRST116",
            )
        return None
    return rows[0]


def error_from_response(response: httpx.Response, table: Optional[str], operation: str) -> BackendError:
    """Map an error response body ({message, code, details, hint}) to BackendError."""
    try:
        payload = response.json()
    except ValueError:
        payload = {"message": response.text}
    if not isinstance(payload, dict):
        payload = {"message": str(payload)}
    message = (
        payload.get("message")
        or payload.get("msg")
        or payload.get("error_description")
        or payload.get("error")
        or f"HTTP {response.status_code}"
    )
    return BackendError(
        message,
        status_code=response.status_code,
        code=payload.get("code"),
        details=payload.get("details"),
        hint=payload.get("hint"),
        table=table,
        operation=operation,
    )


def parse_content_range(value: Optional[str]) -> Optional[int]:
    """Total from a ``Content-Range: 0-9/42`` header; None when absent or ``*``."""
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class BackendClient:
    """
    Pooled async client for the hosted backend.

    One httpx.AsyncClient serves rows, storage and auth. Call ``close()`` on
    shutdown.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: int = 30,
        schema: str = "public",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rest_url: Optional[str] = None,
        storage_url: Optional[str] = None,
        auth_url: Optional[str] = None,
    ):
        from projecthub.backend.auth import AuthClient
        from projecthub.backend.storage import StorageClient

        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._schema = schema
        self.rest_url = rest_url or f"{self._url}/rest/v1"
        self.storage_url = storage_url or f"{self._url}/storage/v1"
        self.auth_url = auth_url or f"{self._url}/auth/v1"
        self._http = httpx.AsyncClient(
            base_url=self._url,
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            transport=transport,
        )
        self.storage = StorageClient(self)
        self.auth = AuthClient(self)

    @classmethod
    def from_config(cls, config: Any, transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional["BackendClient"]:
        """Build from HubConfig; None when URL or key is missing."""
        backend = config.backend
        if not backend.enabled:
            logger.warning("Backend URL or key missing; remote operations disabled")
            return None
        return cls(
            url=backend.url,
            anon_key=backend.anon_key,
            timeout=backend.timeout,
            schema=backend.schema_name,
            transport=transport,
            rest_url=backend.rest_url,
            storage_url=backend.storage_url,
            auth_url=backend.auth_url,
        )

    @property
    def url(self) -> str:
        return self._url

    def set_access_token(self, token: Optional[str]) -> None:
        """Act as a signed-in user (or back to anonymous with None)."""
        self._http.headers["Authorization"] = f"Bearer {token or self._anon_key}"

    def table(self, name: str) -> Query:
        return Query(self, name)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[List[Tuple[str, str]]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        table: Optional[str] = None,
        operation: str = "request",
    ) -> httpx.Response:
        """
        Send one request and return the successful response.

        Raises:
            BackendUnavailableError on transport failure.
            BackendError on any status >= 400.
        """
        start = time.monotonic()
        try:
            response = await self._http.request(
                method, path, params=params, json=json, content=content, headers=headers,
            )
        except httpx.HTTPError as e:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(f"Backend unreachable: {method} {path}: {e}")
            log(log_backend_call(method, path, 0, duration_ms, False, table=table, error=str(e)))
            raise BackendUnavailableError(
                f"Backend unreachable: {e}", table=table, operation=operation,
            ) from e

        duration_ms = (time.monotonic() - start) * 1000
        ok = response.status_code < 400
        log(log_backend_call(
            method, path, response.status_code, duration_ms, ok,
            table=table, error=None if ok else f"HTTP {response.status_code}",
        ))
        if not ok:
            error = error_from_response(response, table, operation)
            logger.error(f"Backend rejected {method} {path}: {error.message}")
            raise error
        return response

    async def execute(self, query: Query) -> BackendResponse:
        """Run a Query against ``<rest_url>/<table>``."""
        headers = {
            "Accept-Profile" if query.method == "GET" else "Content-Profile": self._schema,
        }
        prefer = query.prefer()
        if prefer:
            headers["Prefer"] = prefer

        response = await self.request(
            query.method,
            f"{self.rest_url}/{query.table}",
            params=query.params(),
            json=query.body,
            headers=headers,
            table=query.table,
            operation=query.operation,
        )

        data: Any = None
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = None
        data = resolve_cardinality(query, data)
        return BackendResponse(data=data, count=parse_content_range(response.headers.get("content-range")))

    async def close(self) -> None:
        await self._http.aclose()
        logger.info("Backend client closed")
