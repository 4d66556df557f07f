"""HTTP client for the remote store (PostgREST data API, GoTrue auth, statement RPC).

Every public method returns a StoreResult/SessionResult. Transport errors, timeouts and
HTTP error bodies are converted into StoreFailure values so callers never have to
catch httpx exceptions.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx

from insights_bootstrap.config import Settings
from insights_bootstrap.core.errors import StoreFailure, connectivity_failure, failure_from_response
from insights_bootstrap.storage.contracts import Credentials, Predicate, Row, Session, SessionResult, StoreResult

logger = logging.getLogger(__name__)

_RESERVED_FILTER_CHARS = set(',.:()"')


def _quote_filter_value(value: Any) -> str:
  """Render a scalar for a PostgREST filter, quoting reserved characters."""
  text = str(value)
  if any(char in _RESERVED_FILTER_CHARS for char in text) or text.strip() != text:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
  return text


def encode_predicate(predicate: Predicate | None) -> list[tuple[str, str]]:
  """Encode an equality predicate as PostgREST query parameters."""
  if not predicate:
    return []

  params: list[tuple[str, str]] = []
  for column, value in predicate.items():
    if value is None:
      params.append((column, "is.null"))
    elif isinstance(value, bool):
      params.append((column, f"is.{str(value).lower()}"))
    elif isinstance(value, list | tuple | set | frozenset):
      rendered = ",".join(_quote_filter_value(item) for item in value)
      params.append((column, f"in.({rendered})"))
    else:
      params.append((column, f"eq.{_quote_filter_value(value)}"))
  return params


def parse_content_range(header: str | None) -> int | None:
  """Extract the total from a Content-Range header such as '0-0/42' or '*/0'."""
  if not header or "/" not in header:
    return None
  total = header.rsplit("/", 1)[1].strip()
  if total.isdigit():
    return int(total)
  return None


def _safe_json(response: httpx.Response) -> Any:
  if not response.content:
    return None
  try:
    return response.json()
  except ValueError:
    return response.text


class RemoteStoreClient:
  """Async client for one remote store. Construct once per process and inject everywhere."""

  def __init__(self, *, base_url: str, api_key: str, timeout_seconds: float = 15.0, exec_function: str = "execute_sql", transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._api_key = api_key
    self._exec_function = exec_function
    self._session: Session | None = None
    self._http = httpx.AsyncClient(base_url=self._base_url, timeout=timeout_seconds, transport=transport, headers={"apikey": api_key, "Accept": "application/json"})

  @property
  def base_url(self) -> str:
    return self._base_url

  async def __aenter__(self) -> RemoteStoreClient:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    await self._http.aclose()

  def _auth_headers(self) -> dict[str, str]:
    # Fall back to the API key as bearer when no user session is active.
    session = self.get_session()
    token = session.access_token if session else self._api_key
    return {"Authorization": f"Bearer {token}"}

  async def _request(self, method: str, path: str, *, params: list[tuple[str, str]] | None = None, json: Any = None, headers: dict[str, str] | None = None) -> tuple[httpx.Response | None, StoreFailure | None]:
    """Send one request and translate transport or HTTP failures into StoreFailure."""
    merged_headers = self._auth_headers()
    if headers:
      merged_headers.update(headers)

    try:
      response = await self._http.request(method, path, params=params, json=json, headers=merged_headers)
    except httpx.TimeoutException as exc:
      logger.warning("Remote store call timed out method=%s path=%s error=%s", method, path, exc)
      return None, connectivity_failure(f"Timed out calling {method} {path}: {exc}", kind="timeout")
    except httpx.RequestError as exc:
      logger.warning("Remote store call failed method=%s path=%s error=%s", method, path, exc)
      return None, connectivity_failure(f"Request error calling {method} {path}: {exc}")

    if response.is_error:
      failure = failure_from_response(status=response.status_code, body=_safe_json(response))
      logger.debug("Remote store error method=%s path=%s %s", method, path, failure.describe())
      return response, failure
    return response, None

  async def count(self, entity: str, predicate: Predicate | None = None) -> StoreResult:
    """Count rows with an exact count header and a single-row body."""
    params = [("select", "*"), ("limit", "1"), *encode_predicate(predicate)]
    response, failure = await self._request("GET", f"/rest/v1/{entity}", params=params, headers={"Prefer": "count=exact"})
    if failure is not None:
      return StoreResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    rows = body if isinstance(body, list) else []
    total = parse_content_range(response.headers.get("content-range"))
    return StoreResult(data=rows, count=total if total is not None else len(rows))

  async def select(self, entity: str, predicate: Predicate | None = None, *, columns: str = "*", limit: int | None = None) -> StoreResult:
    params = [("select", columns), *encode_predicate(predicate)]
    if limit is not None:
      params.append(("limit", str(limit)))
    response, failure = await self._request("GET", f"/rest/v1/{entity}", params=params)
    if failure is not None:
      return StoreResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    rows = body if isinstance(body, list) else []
    return StoreResult(data=rows, count=len(rows))

  async def insert(self, entity: str, records: Row | Sequence[Row]) -> StoreResult:
    payload = [records] if isinstance(records, dict) else list(records)
    response, failure = await self._request("POST", f"/rest/v1/{entity}", json=payload, headers={"Prefer": "return=representation", "Content-Type": "application/json"})
    if failure is not None:
      return StoreResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    rows = body if isinstance(body, list) else []
    return StoreResult(data=rows, count=len(rows))

  async def delete(self, entity: str, predicate: Predicate) -> StoreResult:
    # Unfiltered deletes are refused here, not left to server configuration.
    if not predicate:
      raise ValueError("delete() requires a non-empty predicate.")

    response, failure = await self._request("DELETE", f"/rest/v1/{entity}", params=encode_predicate(predicate), headers={"Prefer": "return=representation"})
    if failure is not None:
      return StoreResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    rows = body if isinstance(body, list) else []
    return StoreResult(data=rows, count=len(rows))

  async def execute_statement(self, statement: str) -> StoreResult:
    """Run raw SQL through the SECURITY DEFINER statement function."""
    response, failure = await self._request("POST", f"/rest/v1/rpc/{self._exec_function}", json={"sql_query": statement}, headers={"Content-Type": "application/json"})
    if failure is not None:
      return StoreResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    if isinstance(body, list):
      rows = [row if isinstance(row, dict) else {"value": row} for row in body]
    elif isinstance(body, dict):
      rows = [body]
    else:
      rows = []
    return StoreResult(data=rows, count=len(rows))

  async def sign_in(self, credentials: Credentials) -> SessionResult:
    """Password grant against the auth endpoint; the session is kept for later calls."""
    response, failure = await self._request("POST", "/auth/v1/token", params=[("grant_type", "password")], json={"email": credentials.email, "password": credentials.password}, headers={"Authorization": f"Bearer {self._api_key}"})
    if failure is not None:
      return SessionResult(error=failure)

    assert response is not None
    body = _safe_json(response)
    if not isinstance(body, dict) or not body.get("access_token"):
      return SessionResult(error=failure_from_response(status=response.status_code, body={"message": "Sign-in response did not include an access token."}))

    expires_in = body.get("expires_in")
    user = body.get("user") or {}
    session = Session(
      access_token=str(body["access_token"]), refresh_token=body.get("refresh_token"), user_email=user.get("email") or credentials.email, expires_at=time.time() + float(expires_in) if expires_in else None
    )
    self._session = session
    logger.info("Signed in to remote store as %s", session.user_email)
    return SessionResult(session=session)

  def get_session(self) -> Session | None:
    if self._session is not None and self._session.is_expired():
      logger.info("Remote store session expired; falling back to API key access.")
      self._session = None
    return self._session


def build_store_client(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> RemoteStoreClient:
  """Build the process-wide store client from settings."""
  if not settings.store_url:
    raise RuntimeError("INSIGHTS_STORE_URL (or SUPABASE_URL) must be set to reach the remote store.")
  if not settings.store_key:
    raise RuntimeError("INSIGHTS_STORE_KEY (or SUPABASE_SERVICE_KEY) must be set to reach the remote store.")
  return RemoteStoreClient(base_url=settings.store_url, api_key=settings.store_key, timeout_seconds=settings.store_timeout_seconds, exec_function=settings.exec_function, transport=transport)
