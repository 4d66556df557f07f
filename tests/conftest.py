"""Shared fixtures: an in-memory remote store and small catalogs."""

from __future__ import annotations

import itertools
import re
from collections.abc import Sequence
from typing import Any

import pytest
from sqlalchemy import Column, ForeignKey, Integer, MetaData, Table, Text

from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor, ParentLink, Shape
from insights_bootstrap.core.errors import StoreFailure, connectivity_failure, failure_from_response
from insights_bootstrap.storage.contracts import Credentials, Predicate, Row, Session, SessionResult, StoreResult

_METADATA = MetaData()
_CATEGORY_TABLE = Table("category", _METADATA, Column("id", Integer, primary_key=True), Column("label", Text, nullable=False, unique=True), Column("rank", Integer))
_PROCEDURE_TABLE = Table(
  "procedure",
  _METADATA,
  Column("id", Integer, primary_key=True),
  Column("title", Text, nullable=False, unique=True),
  Column("category_id", Integer, ForeignKey("category.id")),
  Column("future_outlook", Text),
)

_CREATE_TABLE = re.compile(r'CREATE TABLE IF NOT EXISTS\s+"?([A-Za-z0-9_]+)"?')


def store_failure(code: str, message: str, status: int = 400) -> StoreFailure:
  return failure_from_response(status=status, body={"code": code, "message": message})


class FakeStore:
  """In-memory StoreClient with PostgREST-like failures.

  tables:  existing entities and their rows.
  columns: accepted columns per entity; entities without an entry accept anything.
  unique:  natural-key columns per entity, enforced with a 23505 failure.
  fail:    forced failures keyed by (operation, entity).
  """

  def __init__(
    self,
    tables: dict[str, list[dict[str, Any]]] | None = None,
    *,
    columns: dict[str, set[str]] | None = None,
    unique: dict[str, tuple[str, ...]] | None = None,
    credentials: Credentials | None = None,
  ) -> None:
    self.tables: dict[str, list[dict[str, Any]]] = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
    self.columns = columns or {}
    self.unique = unique or {}
    self.fail: dict[tuple[str, str], StoreFailure] = {}
    self.unreachable = False
    self.statement_failure: StoreFailure | None = None
    self.statements: list[str] = []
    self.calls: list[tuple[str, str]] = []
    self.insert_payloads: list[tuple[str, dict[str, Any]]] = []
    self._credentials = credentials
    self._session: Session | None = None
    self._ids = itertools.count(1)
    for rows in self.tables.values():
      for row in rows:
        row.setdefault("id", next(self._ids))

  def _check(self, operation: str, entity: str) -> StoreFailure | None:
    self.calls.append((operation, entity))
    if self.unreachable:
      return connectivity_failure("Connection refused")
    forced = self.fail.get((operation, entity))
    if forced is not None:
      return forced
    if entity not in self.tables:
      return store_failure("42P01", f'relation "public.{entity}" does not exist', 404)
    return None

  @staticmethod
  def _matches(row: Row, predicate: Predicate | None) -> bool:
    for column, expected in (predicate or {}).items():
      value = row.get(column)
      if isinstance(expected, list | tuple | set | frozenset):
        if value not in expected:
          return False
      elif value != expected:
        return False
    return True

  def rows(self, entity: str) -> list[dict[str, Any]]:
    return self.tables.get(entity, [])

  async def count(self, entity: str, predicate: Predicate | None = None) -> StoreResult:
    failure = self._check("count", entity)
    if failure is not None:
      return StoreResult(error=failure)
    matching = [row for row in self.tables[entity] if self._matches(row, predicate)]
    return StoreResult(data=matching[:1], count=len(matching))

  async def select(self, entity: str, predicate: Predicate | None = None, *, columns: str = "*", limit: int | None = None) -> StoreResult:
    failure = self._check("select", entity)
    if failure is not None:
      return StoreResult(error=failure)
    matching = [row for row in self.tables[entity] if self._matches(row, predicate)]
    if limit is not None:
      matching = matching[:limit]
    if columns != "*":
      wanted = [name.strip() for name in columns.split(",")]
      matching = [{name: row.get(name) for name in wanted} for row in matching]
    return StoreResult(data=[dict(row) for row in matching], count=len(matching))

  async def insert(self, entity: str, records: Row | Sequence[Row]) -> StoreResult:
    failure = self._check("insert", entity)
    if failure is not None:
      return StoreResult(error=failure)
    stored: list[dict[str, Any]] = []
    for record in [records] if isinstance(records, dict) else list(records):
      self.insert_payloads.append((entity, dict(record)))
      accepted = self.columns.get(entity)
      unknown = sorted(set(record) - accepted) if accepted is not None else []
      if unknown:
        return StoreResult(error=store_failure("PGRST204", f"Could not find the '{unknown[0]}' column of '{entity}' in the schema cache"))
      key = self.unique.get(entity)
      if key and any(all(row.get(column) == record.get(column) for column in key) for row in self.tables[entity]):
        return StoreResult(error=store_failure("23505", f'duplicate key value violates unique constraint "{entity}_key"', 409))
      row = {"id": next(self._ids), **record}
      self.tables[entity].append(row)
      stored.append(dict(row))
    return StoreResult(data=stored, count=len(stored))

  async def delete(self, entity: str, predicate: Predicate) -> StoreResult:
    if not predicate:
      raise ValueError("delete() requires a non-empty predicate.")
    failure = self._check("delete", entity)
    if failure is not None:
      return StoreResult(error=failure)
    removed = [row for row in self.tables[entity] if self._matches(row, predicate)]
    self.tables[entity] = [row for row in self.tables[entity] if not self._matches(row, predicate)]
    return StoreResult(data=removed, count=len(removed))

  async def execute_statement(self, statement: str) -> StoreResult:
    self.statements.append(statement)
    self.calls.append(("execute", statement.split()[0] if statement.split() else ""))
    if self.unreachable:
      return StoreResult(error=connectivity_failure("Connection refused"))
    if self.statement_failure is not None:
      return StoreResult(error=self.statement_failure)
    match = _CREATE_TABLE.search(statement)
    if match:
      self.tables.setdefault(match.group(1), [])
    return StoreResult()

  async def sign_in(self, credentials: Credentials) -> SessionResult:
    if self._credentials is None or credentials != self._credentials:
      return SessionResult(error=store_failure("invalid_grant", "Invalid login credentials", 400))
    self._session = Session(access_token="token", user_email=credentials.email)
    return SessionResult(session=self._session)

  def get_session(self) -> Session | None:
    return self._session


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def category_catalog() -> Catalog:
  """Two-level catalog: categories (natural key = label) and procedures referencing them."""
  category = EntityDescriptor(
    name="category",
    min_rows=2,
    natural_key=("label",),
    shapes=(Shape.of("full", {"label": "label", "rank": "rank"}), Shape.of("minimal", {"label": "label"})),
    table=_CATEGORY_TABLE,
  )
  procedure = EntityDescriptor(
    name="procedure",
    min_rows=1,
    natural_key=("title",),
    parents=(ParentLink(entity="category", source_field="category", target_field="category_id", parent_key="label"),),
    shapes=(
      Shape.of("full", {"title": "title", "category_id": "category_id", "future_outlook": ("futureOutlook", "outlook")}),
      Shape.of("legacy", {"title": "title", "category_id": "category_id", "outlook": ("futureOutlook", "outlook")}),
      Shape.of("minimal", {"title": "title", "category_id": "category_id"}),
    ),
    table=_PROCEDURE_TABLE,
  )
  return Catalog([category, procedure])


@pytest.fixture
def make_store():
  def _make(tables: dict[str, list[dict[str, Any]]] | None = None, **kwargs: Any) -> FakeStore:
    return FakeStore(tables, **kwargs)

  return _make
