"""Create missing catalog entities and (re)apply their access policies."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from insights_bootstrap.catalog import ddl
from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor
from insights_bootstrap.core.errors import StoreFailure, unexpected_failure
from insights_bootstrap.storage.contracts import StoreClient

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
  """Per-entity outcome of one reconciliation pass."""

  created: list[str] = field(default_factory=list)
  still_missing: list[str] = field(default_factory=list)
  failures: dict[str, StoreFailure] = field(default_factory=dict)

  @property
  def ok(self) -> bool:
    return not self.still_missing


@dataclass
class PolicyResult:
  applied: list[str] = field(default_factory=list)
  failures: dict[str, StoreFailure] = field(default_factory=dict)

  @property
  def ok(self) -> bool:
    return not self.failures


class SchemaReconciler:
  """Issue idempotent DDL through the store's statement function."""

  def __init__(self, client: StoreClient, catalog: Catalog, *, scratch_entity: str = "rls_test") -> None:
    self._client = client
    self._catalog = catalog
    self._scratch_entity = scratch_entity

  async def _execute(self, statement: str) -> StoreFailure | None:
    try:
      result = await self._client.execute_statement(statement)
    except Exception as exc:  # noqa: BLE001
      logger.exception("Unexpected error executing statement")
      return unexpected_failure(exc)
    if result.error is not None and result.error.kind == "undefined_function":
      logger.error("The store has no statement function; create it before reconciling: %s", result.error.message)
    return result.error

  async def _execute_all(self, statements: Iterable[str]) -> StoreFailure | None:
    """Execute statements in order and stop at the first failure."""
    for statement in statements:
      failure = await self._execute(statement)
      if failure is not None:
        return failure
    return None

  async def _exists(self, name: str) -> bool:
    result = await self._client.count(name)
    if result.error is None:
      return True
    if not result.error.is_missing_relation:
      logger.warning("Presence check for %s failed: %s", name, result.error.describe())
    return False

  async def _create(self, descriptor: EntityDescriptor) -> StoreFailure | None:
    """Create one entity and open it for reading."""
    statements = [
      ddl.create_statement_for(descriptor),
      ddl.enable_row_security_statement(descriptor.name),
      ddl.read_policy_statement(descriptor.name),
    ]
    return await self._execute_all(statements)

  async def reconcile(self, missing_names: Iterable[str]) -> ReconcileResult:
    """Create each missing entity, parents first, then confirm presence with a count."""
    result = ReconcileResult()
    for descriptor in self._catalog.order(missing_names):
      logger.info("Creating missing entity %s", descriptor.name)
      failure = await self._create(descriptor)
      if failure is not None:
        logger.warning("Creating %s reported: %s", descriptor.name, failure.describe())
        result.failures[descriptor.name] = failure

      # Presence is confirmed, never assumed from a clean statement run.
      if await self._exists(descriptor.name):
        result.created.append(descriptor.name)
      else:
        result.still_missing.append(descriptor.name)

    logger.info("Reconciliation finished created=%s still_missing=%s", result.created, result.still_missing)
    return result

  async def apply_read_policies(self, names: Iterable[str]) -> PolicyResult:
    """Enable row security and ensure the permissive read policy on each named entity."""
    result = PolicyResult()
    for name in names:
      failure = await self._execute_all([ddl.enable_row_security_statement(name), ddl.read_policy_statement(name)])
      if failure is None:
        result.applied.append(name)
      else:
        logger.warning("Applying read policy on %s failed: %s", name, failure.describe())
        result.failures[name] = failure
    return result

  async def ensure_scratch_entity(self) -> StoreFailure | None:
    """Create the scratch entity used by the policy check, with a full-access policy."""
    failure = await self._execute_all(ddl.scratch_entity_statements(self._scratch_entity))
    if failure is not None:
      logger.warning("Preparing scratch entity %s failed: %s", self._scratch_entity, failure.describe())
    return failure
