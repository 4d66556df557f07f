"""Load reference records parents-first, resolving foreign keys at runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor, ParentLink
from insights_bootstrap.catalog.feed import RecordFeed
from insights_bootstrap.core.errors import LoadOrderError, StoreFailure
from insights_bootstrap.services.cascade import CascadingInsertStrategy, describe_record
from insights_bootstrap.services.outcomes import EntityLoadSummary, InsertOutcome, LoadReport, OutcomeStatus
from insights_bootstrap.storage.contracts import StoreClient

logger = logging.getLogger(__name__)

# Keeps `in.(...)` filters well under common URL length limits.
_LOOKUP_CHUNK_SIZE = 100


def _reference(descriptor: EntityDescriptor, record: Mapping[str, Any]) -> str:
  """Name a feed record by its natural key and parent references."""
  keys = (*descriptor.natural_key, *(link.source_field for link in descriptor.parents))
  return describe_record(record, keys=keys)


def _repeat_outcome(ref: str, first: InsertOutcome | None) -> InsertOutcome | None:
  """Outcome for a feed record whose natural key an earlier record in the same feed claimed."""
  if first is None:
    return None
  if first.succeeded:
    return InsertOutcome.already_present(ref)
  return InsertOutcome(record_ref=ref, status=OutcomeStatus.FAILED, error=first.error, reason=f"repeats {first.record_ref}, which was not written")


class IdentifierLookupTable:
  """Per-run map of parent entity -> {natural key value: generated id}."""

  def __init__(self) -> None:
    self._ids: dict[str, dict[Any, Any]] = {}
    self._frozen: set[str] = set()

  def add(self, entity: str, key: Any, identifier: Any) -> None:
    if entity in self._frozen:
      raise RuntimeError(f"Identifiers for {entity} are already resolved.")
    self._ids.setdefault(entity, {})[key] = identifier

  def freeze(self, entity: str) -> None:
    self._ids.setdefault(entity, {})
    self._frozen.add(entity)

  def is_resolved(self, entity: str) -> bool:
    return entity in self._frozen

  def resolve(self, entity: str, key: Any) -> Any | None:
    return self._ids.get(entity, {}).get(key)

  def size(self, entity: str) -> int:
    return len(self._ids.get(entity, {}))


class DependencyOrderedLoader:
  """
  Insert feed records entity by entity in the catalog's topological order.

  Phases run one after another; inside a phase records are written concurrently through
  the cascading insert strategy. A failing record or phase never stops the run.
  """

  def __init__(
    self,
    client: StoreClient,
    catalog: Catalog,
    feed: RecordFeed,
    *,
    strategy: CascadingInsertStrategy | None = None,
    concurrency: int = 5,
    cancel_event: asyncio.Event | None = None,
  ) -> None:
    if concurrency <= 0:
      raise ValueError("concurrency must be positive.")
    self._client = client
    self._catalog = catalog
    self._feed = feed
    self._strategy = strategy or CascadingInsertStrategy(client)
    self._concurrency = concurrency
    self._cancel_event = cancel_event or asyncio.Event()

  def _cancelled(self) -> bool:
    return self._cancel_event.is_set()

  async def load(self, entity_names: Iterable[str] | None = None) -> LoadReport:
    """Load the requested entities (all by default), always parents before children."""
    # Requested order is ignored; the catalog decides.
    plan = self._catalog.order(entity_names) if entity_names is not None else self._catalog.topological_order()
    planned = {descriptor.name for descriptor in plan}
    records = {descriptor.name: self._feed.records_for(descriptor.name) for descriptor in plan}
    lookups = IdentifierLookupTable()
    completed: set[str] = set()
    report = LoadReport()
    logger.info("Loading entities in order: %s", [descriptor.name for descriptor in plan])

    for descriptor in plan:
      if self._cancelled():
        logger.warning("Load cancelled before %s", descriptor.name)
        report.complete = False
        break

      self._ensure_parents_completed(descriptor, planned, completed)
      summary = await self._load_entity(descriptor, records, lookups)
      report.summaries[descriptor.name] = summary
      completed.add(descriptor.name)
      # Records left unscheduled by a cancellation leave the report partial.
      if len(summary.outcomes) < len(records[descriptor.name]):
        report.complete = False
      logger.info(
        "Loaded %s attempted=%s succeeded=%s duplicate=%s failed=%s skipped=%s",
        descriptor.name,
        summary.attempted,
        summary.succeeded,
        summary.duplicate,
        summary.failed,
        summary.skipped,
      )

    return report

  def _ensure_parents_completed(self, descriptor: EntityDescriptor, planned: set[str], completed: set[str]) -> None:
    """Refuse to start a phase while a parent loaded in the same run has not finished."""
    pending = [parent for parent in descriptor.parent_names if parent in planned and parent not in completed]
    if pending:
      raise LoadOrderError(f"Cannot load {descriptor.name} before {', '.join(pending)}.")

  async def _load_entity(self, descriptor: EntityDescriptor, records: Mapping[str, list[dict[str, Any]]], lookups: IdentifierLookupTable) -> EntityLoadSummary:
    summary = EntityLoadSummary(entity=descriptor.name)
    own_records = records.get(descriptor.name, [])
    if not own_records:
      logger.info("No feed records for %s", descriptor.name)
      return summary

    # Resolve parent identifiers before any child record is written.
    for link in descriptor.parents:
      if not lookups.is_resolved(link.entity):
        failure = await self._resolve_parent(link, records, lookups)
        if failure is not None and link.required:
          summary.phase_error = failure
      if link.required and lookups.size(link.entity) == 0:
        summary.phase_reason = f"required parent {link.entity} has no entries"
        logger.error("Skipping %s: %s", descriptor.name, summary.phase_reason)
        summary.extend(InsertOutcome.skipped(_reference(descriptor, record), summary.phase_reason) for record in own_records)
        return summary

    existing = await self._existing_keys(descriptor)
    outcomes: list[InsertOutcome | None] = [None] * len(own_records)
    pending: dict[int, tuple[str, dict[str, Any]]] = {}
    first_by_key: dict[tuple[Any, ...], int] = {}
    repeats: dict[int, int] = {}

    for index, record in enumerate(own_records):
      ref = _reference(descriptor, record)
      resolved, skip_reason = self._resolve_record(descriptor, record, lookups)
      if resolved is None:
        logger.warning("Skipping %s record %s: %s", descriptor.name, ref, skip_reason)
        outcomes[index] = InsertOutcome.skipped(ref, skip_reason or "unresolved parent")
        continue

      # Natural-key idempotence: stored keys are never written again, and a key repeated in
      # the feed is written once and shares the outcome of that first write.
      key = descriptor.natural_key_value(resolved)
      if key is not None and key in existing:
        outcomes[index] = InsertOutcome.already_present(ref)
        continue
      if key is not None and key in first_by_key:
        repeats[index] = first_by_key[key]
        continue
      if key is not None:
        first_by_key[key] = index
      pending[index] = (ref, resolved)

    semaphore = asyncio.Semaphore(self._concurrency)

    async def write(ref: str, resolved: dict[str, Any]) -> InsertOutcome | None:
      async with semaphore:
        if self._cancelled():
          return None
        return await self._strategy.insert(descriptor.name, resolved, descriptor.shapes, record_ref=ref)

    written = await asyncio.gather(*(write(ref, resolved) for ref, resolved in pending.values()))
    for index, outcome in zip(pending, written, strict=True):
      outcomes[index] = outcome
    for index, first in repeats.items():
      outcomes[index] = _repeat_outcome(_reference(descriptor, own_records[index]), outcomes[first])

    summary.extend(outcome for outcome in outcomes if outcome is not None)
    return summary

  def _resolve_record(self, descriptor: EntityDescriptor, record: Mapping[str, Any], lookups: IdentifierLookupTable) -> tuple[dict[str, Any] | None, str | None]:
    """Return the record with parent ids filled in, or None and the reason it cannot be written."""
    resolved = dict(record)
    for link in descriptor.parents:
      reference = record.get(link.source_field)
      identifier = lookups.resolve(link.entity, reference) if reference is not None else None
      if identifier is not None:
        resolved[link.target_field] = identifier
        continue
      if link.required:
        if reference is None:
          return None, f"no {link.source_field} reference"
        return None, f"unresolved {link.entity} {reference!r}"
      # Optional links degrade to a null reference.
      resolved[link.target_field] = None
    return resolved, None

  async def _resolve_parent(self, link: ParentLink, records: Mapping[str, list[dict[str, Any]]], lookups: IdentifierLookupTable) -> StoreFailure | None:
    """Read back ids for every key of `link.entity` the planned records reference, then freeze them."""
    keys: set[Any] = set()
    for name, items in records.items():
      for child_link in self._catalog.get(name).parents:
        if child_link.entity == link.entity and child_link.parent_key == link.parent_key:
          keys.update(item[child_link.source_field] for item in items if item.get(child_link.source_field) is not None)

    failure: StoreFailure | None = None
    ordered = sorted(keys, key=str)
    for start in range(0, len(ordered), _LOOKUP_CHUNK_SIZE):
      chunk = ordered[start : start + _LOOKUP_CHUNK_SIZE]
      result = await self._client.select(link.entity, {link.parent_key: chunk}, columns=f"id,{link.parent_key}")
      if result.error is not None:
        logger.warning("Reading %s ids failed: %s", link.entity, result.error.describe())
        failure = result.error
        continue
      for row in result.data:
        if row.get("id") is not None and row.get(link.parent_key) is not None:
          lookups.add(link.entity, row[link.parent_key], row["id"])

    lookups.freeze(link.entity)
    unresolved = len(keys) - lookups.size(link.entity)
    if unresolved > 0:
      logger.warning("%s of %s referenced %s keys have no row", unresolved, len(keys), link.entity)
    return failure

  async def _existing_keys(self, descriptor: EntityDescriptor) -> set[tuple[Any, ...]]:
    """Read the natural keys already stored; an unreadable entity yields an empty set."""
    result = await self._client.select(descriptor.name, columns=",".join(descriptor.natural_key))
    if result.error is not None:
      logger.debug("Natural-key precheck for %s unavailable: %s", descriptor.name, result.error.describe())
      return set()
    keys = (descriptor.natural_key_from_row(row) for row in result.data)
    return {key for key in keys if key is not None}
