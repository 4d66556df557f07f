"""Health report produced by one verification pass."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum

from insights_bootstrap.core.errors import StoreFailure


class CheckStatus(str, Enum):
  OK = "ok"
  DEGRADED = "degraded"
  FAILED = "failed"


class EntityStatus(str, Enum):
  HEALTHY = "healthy"
  LOW_DATA = "low_data"
  MISSING = "missing"
  ERROR = "error"


@dataclass(frozen=True)
class CheckResult:
  """Outcome of a single non-entity check (connection, session, access policy)."""

  status: CheckStatus
  message: str
  kind: str | None = None
  error: StoreFailure | None = None

  @property
  def ok(self) -> bool:
    return self.status is CheckStatus.OK

  @property
  def failed(self) -> bool:
    return self.status is CheckStatus.FAILED


@dataclass(frozen=True)
class EntityHealth:
  """Presence and row count of one catalog entity."""

  name: str
  exists: bool
  status: EntityStatus
  row_count: int | None = None
  min_rows: int = 0
  error: StoreFailure | None = None


@dataclass(frozen=True)
class HealthReport:
  """Immutable snapshot of the remote store as seen by one verification pass."""

  connection: CheckResult
  started_at: datetime.datetime
  finished_at: datetime.datetime
  authentication: CheckResult | None = None
  entities: tuple[EntityHealth, ...] = ()
  policy: CheckResult | None = None
  complete: bool = True

  @property
  def connected(self) -> bool:
    return self.connection.ok

  def entity(self, name: str) -> EntityHealth | None:
    return next((item for item in self.entities if item.name == name), None)

  def _names_with(self, status: EntityStatus) -> tuple[str, ...]:
    return tuple(item.name for item in self.entities if item.status is status)

  @property
  def missing_entities(self) -> tuple[str, ...]:
    return self._names_with(EntityStatus.MISSING)

  @property
  def low_data_entities(self) -> tuple[str, ...]:
    return self._names_with(EntityStatus.LOW_DATA)

  @property
  def errored_entities(self) -> tuple[str, ...]:
    return self._names_with(EntityStatus.ERROR)

  @property
  def healthy(self) -> bool:
    """True when every check passed and every entity holds enough rows."""
    if not self.connected or not self.complete:
      return False
    if self.authentication is not None and not self.authentication.ok:
      return False
    if self.policy is not None and not self.policy.ok:
      return False
    return all(item.status is EntityStatus.HEALTHY for item in self.entities)
