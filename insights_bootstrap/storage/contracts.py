"""Contracts for the remote relational store consumed by the bootstrap pipeline."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from insights_bootstrap.core.errors import StoreFailure

Predicate = Mapping[str, Any]
Row = dict[str, Any]


@dataclass(frozen=True)
class StoreResult:
  """Result set or structured failure for one remote call."""

  data: list[Row] = field(default_factory=list)
  count: int | None = None
  error: StoreFailure | None = None

  @property
  def ok(self) -> bool:
    return self.error is None


@dataclass(frozen=True)
class Credentials:
  """Stored sign-in credentials (email/password grant)."""

  email: str
  password: str = field(repr=False)


@dataclass(frozen=True)
class Session:
  """Authenticated session issued by the store's auth endpoint."""

  access_token: str = field(repr=False)
  refresh_token: str | None = field(default=None, repr=False)
  user_email: str | None = None
  expires_at: float | None = None

  def is_expired(self, now: float | None = None) -> bool:
    if self.expires_at is None:
      return False
    return (now if now is not None else time.time()) >= self.expires_at


@dataclass(frozen=True)
class SessionResult:
  """Outcome of a sign-in attempt."""

  session: Session | None = None
  error: StoreFailure | None = None

  @property
  def ok(self) -> bool:
    return self.session is not None and self.error is None


class StoreClient(Protocol):
  """Table-scoped CRUD plus raw statements, as consumed by every pipeline component."""

  async def count(self, entity: str, predicate: Predicate | None = None) -> StoreResult:
    """Return the row count in StoreResult.count."""
    ...

  async def select(self, entity: str, predicate: Predicate | None = None, *, columns: str = "*", limit: int | None = None) -> StoreResult:
    """Return matching rows."""
    ...

  async def insert(self, entity: str, records: Row | Sequence[Row]) -> StoreResult:
    """Insert one or more records and return the stored representation."""
    ...

  async def delete(self, entity: str, predicate: Predicate) -> StoreResult:
    """Delete matching rows."""
    ...

  async def execute_statement(self, statement: str) -> StoreResult:
    """Execute a raw SQL statement through the store's statement function."""
    ...

  async def sign_in(self, credentials: Credentials) -> SessionResult:
    """Sign in and keep the session for subsequent calls."""
    ...

  def get_session(self) -> Session | None:
    """Return the active, unexpired session, if any."""
    ...
