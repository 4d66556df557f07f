"""Insert one record by walking an ordered list of shapes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from insights_bootstrap.catalog.entities import Shape
from insights_bootstrap.core.errors import StoreFailure, connectivity_failure, unexpected_failure
from insights_bootstrap.services.outcomes import InsertOutcome, OutcomeStatus, ShapeAttempt
from insights_bootstrap.storage.contracts import StoreClient

logger = logging.getLogger(__name__)


def describe_record(record: Mapping[str, Any], *, keys: Sequence[str] = ("name", "procedure", "company", "year", "region")) -> str:
  """Build a short human reference for logs and reports."""
  parts = [f"{key}={record[key]}" for key in keys if key in record and record[key] is not None]
  return ", ".join(parts) if parts else "<record>"


class CascadingInsertStrategy:
  """
  Write a record with the most detailed shape the remote entity accepts.

  Schema mismatches move on to the next shape, a duplicate key counts as already present,
  and anything else (access rules, sessions, network, timeouts, unknown) stops at once.
  Failures come back as InsertOutcome values; only cancellation propagates.
  """

  def __init__(self, client: StoreClient, *, attempt_timeout_seconds: float | None = None) -> None:
    self._client = client
    self._attempt_timeout = attempt_timeout_seconds

  async def _attempt(self, entity: str, payload: dict[str, Any]) -> StoreFailure | None:
    """Run one insert and return its failure, if any."""
    try:
      async with asyncio.timeout(self._attempt_timeout):
        result = await self._client.insert(entity, payload)
    except TimeoutError:
      return connectivity_failure(f"Insert into {entity} exceeded {self._attempt_timeout}s", kind="timeout")
    except Exception as exc:  # noqa: BLE001
      logger.exception("Unexpected error inserting into %s", entity)
      return unexpected_failure(exc)
    return result.error

  async def insert(self, entity: str, record: Mapping[str, Any], shapes: Sequence[Shape], *, record_ref: str | None = None) -> InsertOutcome:
    """Insert one record, cascading through shapes from full to minimal."""
    ref = record_ref or describe_record(record)
    if not shapes:
      return InsertOutcome(record_ref=ref, status=OutcomeStatus.FAILED, reason="no shapes declared")

    attempts: list[ShapeAttempt] = []
    last_error: StoreFailure | None = None
    for level, shape in enumerate(shapes):
      payload = shape.project(record)
      if not payload:
        continue

      # Try this shape and stop at the first accepted one.
      failure = await self._attempt(entity, payload)
      attempts.append(ShapeAttempt(level=level, shape=shape.name, error=failure))
      if failure is None:
        if level > 0:
          logger.info("Inserted %s into %s with reduced shape %s (level %s)", ref, entity, shape.name, level)
        return InsertOutcome(record_ref=ref, status=OutcomeStatus.INSERTED, shape_level=level, attempts=tuple(attempts))

      if failure.is_duplicate:
        logger.debug("Record %s already present in %s", ref, entity)
        return InsertOutcome.already_present(ref, attempts=tuple(attempts))

      if failure.is_schema_mismatch:
        logger.debug("Shape %s rejected by %s for %s: %s", shape.name, entity, ref, failure.describe())
        last_error = failure
        continue

      # Access, session, network and unknown failures would fail the same way with a smaller shape.
      logger.warning("Insert of %s into %s failed: %s", ref, entity, failure.describe())
      return InsertOutcome(record_ref=ref, status=OutcomeStatus.FAILED, error=failure, reason=failure.kind, attempts=tuple(attempts))

    logger.warning("All %s shapes rejected by %s for %s: %s", len(attempts), entity, ref, last_error.describe() if last_error else "no payload")
    return InsertOutcome(record_ref=ref, status=OutcomeStatus.FAILED, error=last_error, reason="shapes exhausted", attempts=tuple(attempts))
