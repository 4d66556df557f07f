"""Unit tests for the HTTP remote store client using httpx.MockTransport."""

from __future__ import annotations

import json
import time

import httpx
import pytest

from insights_bootstrap.config import Settings
from insights_bootstrap.core.errors import ErrorCategory
from insights_bootstrap.storage.client import RemoteStoreClient, build_store_client, encode_predicate, parse_content_range
from insights_bootstrap.storage.contracts import Credentials, Session


def _client(handler) -> RemoteStoreClient:
  return RemoteStoreClient(base_url="https://store.test/", api_key="anon-key", transport=httpx.MockTransport(handler))


def test_encode_predicate() -> None:
  params = encode_predicate({"name": "Preventive", "deleted": None, "active": True, "id": [1, 2], "label": "a,b"})
  assert ("name", "eq.Preventive") in params
  assert ("deleted", "is.null") in params
  assert ("active", "is.true") in params
  assert ("id", "in.(1,2)") in params
  assert ("label", 'eq."a,b"') in params


def test_parse_content_range() -> None:
  assert parse_content_range("0-0/42") == 42
  assert parse_content_range("*/0") == 0
  assert parse_content_range("0-0/*") is None
  assert parse_content_range(None) is None


@pytest.mark.anyio
async def test_count_uses_exact_count_header() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(206, json=[{"id": 1}], headers={"content-range": "0-0/7"})

  async with _client(handler) as client:
    result = await client.count("categories")

  assert result.ok
  assert result.count == 7
  request = seen[0]
  assert request.url.path == "/rest/v1/categories"
  assert request.headers["prefer"] == "count=exact"
  assert request.headers["apikey"] == "anon-key"
  assert request.headers["authorization"] == "Bearer anon-key"


@pytest.mark.anyio
async def test_missing_relation_is_returned_not_raised() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, json={"code": "PGRST205", "message": "Could not find the table 'public.regions' in the schema cache"})

  async with _client(handler) as client:
    result = await client.count("regions")

  assert not result.ok
  assert result.error is not None
  assert result.error.is_missing_relation
  assert result.error.status == 404


@pytest.mark.anyio
async def test_transport_errors_become_connectivity_failures() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  async with _client(handler) as client:
    result = await client.select("companies")

  assert result.error is not None
  assert result.error.category is ErrorCategory.CONNECTIVITY


@pytest.mark.anyio
async def test_timeouts_are_connectivity_class() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("slow", request=request)

  async with _client(handler) as client:
    result = await client.insert("companies", {"name": "Acme"})

  assert result.error is not None
  assert result.error.category is ErrorCategory.CONNECTIVITY
  assert result.error.kind == "timeout"


@pytest.mark.anyio
async def test_insert_requests_representation() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    assert request.headers["prefer"] == "return=representation"
    assert json.loads(request.content) == [{"name": "Acme"}]
    return httpx.Response(201, json=[{"id": 9, "name": "Acme"}])

  async with _client(handler) as client:
    result = await client.insert("companies", {"name": "Acme"})

  assert result.data == [{"id": 9, "name": "Acme"}]


@pytest.mark.anyio
async def test_delete_refuses_empty_predicate() -> None:
  async with _client(lambda request: httpx.Response(200, json=[])) as client:
    with pytest.raises(ValueError):
      await client.delete("rls_test", {})


@pytest.mark.anyio
async def test_execute_statement_posts_to_rpc() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    assert request.url.path == "/rest/v1/rpc/execute_sql"
    assert json.loads(request.content) == {"sql_query": "SELECT 1;"}
    return httpx.Response(200, json=[1])

  async with _client(handler) as client:
    result = await client.execute_statement("SELECT 1;")

  assert result.data == [{"value": 1}]


@pytest.mark.anyio
async def test_sign_in_keeps_session_for_later_calls() -> None:
  paths: list[str] = []

  def handler(request: httpx.Request) -> httpx.Response:
    paths.append(request.url.path)
    if request.url.path == "/auth/v1/token":
      assert request.url.params["grant_type"] == "password"
      return httpx.Response(200, json={"access_token": "user-token", "refresh_token": "r", "expires_in": 3600, "user": {"email": "ops@example.com"}})
    assert request.headers["authorization"] == "Bearer user-token"
    return httpx.Response(200, json=[])

  async with _client(handler) as client:
    outcome = await client.sign_in(Credentials(email="ops@example.com", password="secret"))
    assert outcome.ok
    assert client.get_session() is not None
    await client.select("categories")

  assert paths == ["/auth/v1/token", "/rest/v1/categories"]


@pytest.mark.anyio
async def test_rejected_sign_in() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

  async with _client(handler) as client:
    outcome = await client.sign_in(Credentials(email="ops@example.com", password="wrong"))

  assert not outcome.ok
  assert client.get_session() is None


def test_session_expiry() -> None:
  assert Session(access_token="t", expires_at=time.time() - 1).is_expired()
  assert not Session(access_token="t").is_expired()


def test_build_store_client_requires_url_and_key() -> None:
  settings = Settings(
    environment="test",
    debug=False,
    store_url=None,
    store_key="k",
    store_timeout_seconds=5,
    exec_function="execute_sql",
    auth_email=None,
    auth_password=None,
    verify_concurrency=1,
    load_concurrency=1,
    scratch_entity="rls_test",
    feed_path=None,
    log_dir="./logs",
    log_max_bytes=1024,
    log_backup_count=1,
    ops_secret=None,
  )
  with pytest.raises(RuntimeError):
    build_store_client(settings)
