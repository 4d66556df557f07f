"""Read-only verification of the remote store against the entity catalog."""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Awaitable

from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor
from insights_bootstrap.core.errors import ErrorCategory, connectivity_failure, unexpected_failure
from insights_bootstrap.services.health import CheckResult, CheckStatus, EntityHealth, EntityStatus, HealthReport
from insights_bootstrap.storage.contracts import StoreClient, StoreResult

logger = logging.getLogger(__name__)


def _now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class SchemaVerifier:
  """
  Produce a HealthReport for one remote store.

  The verifier only reads domain entities. Its single write is the check row in the
  scratch entity, which it deletes again after the read check.
  """

  def __init__(
    self,
    client: StoreClient,
    catalog: Catalog,
    *,
    scratch_entity: str = "rls_test",
    concurrency: int = 4,
    cancel_event: asyncio.Event | None = None,
    check_timeout_seconds: float | None = None,
    check_policy: bool = True,
  ) -> None:
    if concurrency <= 0:
      raise ValueError("concurrency must be positive.")
    self._client = client
    self._catalog = catalog
    self._scratch_entity = scratch_entity
    self._concurrency = concurrency
    self._cancel_event = cancel_event or asyncio.Event()
    self._check_timeout = check_timeout_seconds
    self._check_policy = check_policy

  @property
  def scratch_entity(self) -> str:
    return self._scratch_entity

  def _cancelled(self) -> bool:
    return self._cancel_event.is_set()

  async def _call(self, label: str, call: Awaitable[StoreResult]) -> StoreResult:
    """Await one store call under the per-check timeout, turning faults into failures."""
    try:
      async with asyncio.timeout(self._check_timeout):
        return await call
    except TimeoutError:
      return StoreResult(error=connectivity_failure(f"{label} exceeded {self._check_timeout}s", kind="timeout"))
    except Exception as exc:  # noqa: BLE001
      logger.exception("Unexpected error during %s", label)
      return StoreResult(error=unexpected_failure(exc))

  async def check_connection(self) -> CheckResult:
    """Check reachability with a count on the first entity in load order."""
    # Any answer from the server proves reachability; a missing relation is reported per entity later.
    first = self._catalog.topological_order()[0].name if len(self._catalog) else self._scratch_entity
    result = await self._call("connection check", self._client.count(first))
    if result.error is not None and result.error.category is ErrorCategory.CONNECTIVITY:
      logger.error("Remote store unreachable: %s", result.error.describe())
      return CheckResult(status=CheckStatus.FAILED, message=result.error.message, kind=result.error.kind, error=result.error)
    return CheckResult(status=CheckStatus.OK, message="Remote store reachable.")

  def check_authentication(self) -> CheckResult:
    session = self._client.get_session()
    if session is None:
      return CheckResult(status=CheckStatus.DEGRADED, message="No active session; requests use the API key only.", kind="no_session")
    return CheckResult(status=CheckStatus.OK, message=f"Signed in as {session.user_email or 'unknown user'}.")

  async def check_entity(self, descriptor: EntityDescriptor) -> EntityHealth:
    """Classify one entity as healthy, low on data, missing, or unreadable."""
    result = await self._call(f"count of {descriptor.name}", self._client.count(descriptor.name))
    if result.error is not None:
      if result.error.is_missing_relation:
        return EntityHealth(name=descriptor.name, exists=False, status=EntityStatus.MISSING, min_rows=descriptor.min_rows, error=result.error)
      return EntityHealth(name=descriptor.name, exists=False, status=EntityStatus.ERROR, min_rows=descriptor.min_rows, error=result.error)

    count = result.count or 0
    status = EntityStatus.LOW_DATA if count < descriptor.min_rows else EntityStatus.HEALTHY
    return EntityHealth(name=descriptor.name, exists=True, status=status, row_count=count, min_rows=descriptor.min_rows)

  async def _bounded_check(self, semaphore: asyncio.Semaphore, descriptor: EntityDescriptor) -> EntityHealth | None:
    async with semaphore:
      # Checks that have not started yet are dropped once cancellation is requested.
      if self._cancelled():
        return None
      return await self.check_entity(descriptor)

  async def check_entities(self) -> tuple[tuple[EntityHealth, ...], bool]:
    semaphore = asyncio.Semaphore(self._concurrency)
    results = await asyncio.gather(*(self._bounded_check(semaphore, descriptor) for descriptor in self._catalog))
    entities = tuple(item for item in results if item is not None)
    return entities, len(entities) == len(results)

  async def check_policy(self, entities: tuple[EntityHealth, ...] = ()) -> CheckResult:
    """Write and read a check row in the scratch entity, then read one readable domain entity."""
    row_name = f"check-{uuid.uuid4().hex[:12]}"
    written = await self._call("policy write check", self._client.insert(self._scratch_entity, {"name": row_name}))
    if written.error is not None:
      kind = "scratch_missing" if written.error.is_missing_relation else "write_denied"
      logger.warning("Policy write check failed on %s: %s", self._scratch_entity, written.error.describe())
      return CheckResult(status=CheckStatus.FAILED, message=f"Write to {self._scratch_entity} failed: {written.error.message}", kind=kind, error=written.error)

    try:
      read = await self._call("policy read check", self._client.select(self._scratch_entity, limit=1))
      if read.error is not None:
        logger.warning("Policy read check failed on %s: %s", self._scratch_entity, read.error.describe())
        return CheckResult(status=CheckStatus.FAILED, message=f"Read from {self._scratch_entity} failed: {read.error.message}", kind="read_denied", error=read.error)
    finally:
      await self._remove_check_row(row_name)

    # Domain entities must be readable too, not just the scratch entity.
    readable = next((item.name for item in entities if item.exists), None)
    if readable is not None:
      domain_read = await self._call(f"policy read of {readable}", self._client.select(readable, limit=1))
      if domain_read.error is not None and domain_read.error.category is ErrorCategory.PERMISSION:
        return CheckResult(status=CheckStatus.FAILED, message=f"Read from {readable} denied: {domain_read.error.message}", kind="domain_read_denied", error=domain_read.error)

    return CheckResult(status=CheckStatus.OK, message="Write and read access confirmed.")

  async def _remove_check_row(self, row_name: str) -> None:
    deleted = await self._call("policy check cleanup", self._client.delete(self._scratch_entity, {"name": row_name}))
    if deleted.error is not None:
      logger.warning("Could not remove policy check row %s from %s: %s", row_name, self._scratch_entity, deleted.error.describe())

  async def verify(self) -> HealthReport:
    """Run every check once and return a fresh report."""
    started_at = _now()
    logger.info("Verifying remote store (%s entities)", len(self._catalog))

    # Unreachable store: nothing else is worth asking.
    connection = await self.check_connection()
    if not connection.ok:
      return HealthReport(connection=connection, started_at=started_at, finished_at=_now())

    authentication = self.check_authentication()
    if self._cancelled():
      return HealthReport(connection=connection, authentication=authentication, started_at=started_at, finished_at=_now(), complete=False)

    entities, entities_complete = await self.check_entities()
    policy: CheckResult | None = None
    if self._check_policy and not self._cancelled():
      policy = await self.check_policy(entities)

    complete = entities_complete and (policy is not None or not self._check_policy)
    report = HealthReport(connection=connection, authentication=authentication, entities=entities, policy=policy, complete=complete, started_at=started_at, finished_at=_now())
    logger.info(
      "Verification finished complete=%s missing=%s low_data=%s errored=%s policy=%s",
      report.complete,
      list(report.missing_entities),
      list(report.low_data_entities),
      list(report.errored_entities),
      policy.status.value if policy else None,
    )
    return report
