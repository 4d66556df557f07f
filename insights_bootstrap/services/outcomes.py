"""Per-record and per-entity load outcomes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from insights_bootstrap.core.errors import StoreFailure


class OutcomeStatus(str, Enum):
  INSERTED = "inserted"
  DUPLICATE = "duplicate"
  SKIPPED = "skipped"
  FAILED = "failed"


@dataclass(frozen=True)
class ShapeAttempt:
  """One insert attempt with one shape."""

  level: int
  shape: str
  error: StoreFailure | None = None


@dataclass(frozen=True)
class InsertOutcome:
  """Result of writing one record.

  shape_level is the index of the shape that was accepted (0 = full fidelity). It is None
  when nothing was written: the record was already present, skipped, or every shape failed.
  """

  record_ref: str
  status: OutcomeStatus
  shape_level: int | None = None
  error: StoreFailure | None = None
  reason: str | None = None
  attempts: tuple[ShapeAttempt, ...] = ()

  @property
  def succeeded(self) -> bool:
    return self.status in {OutcomeStatus.INSERTED, OutcomeStatus.DUPLICATE}

  @classmethod
  def skipped(cls, record_ref: str, reason: str) -> InsertOutcome:
    return cls(record_ref=record_ref, status=OutcomeStatus.SKIPPED, reason=reason)

  @classmethod
  def already_present(cls, record_ref: str, *, attempts: tuple[ShapeAttempt, ...] = ()) -> InsertOutcome:
    return cls(record_ref=record_ref, status=OutcomeStatus.DUPLICATE, reason="already present", attempts=attempts)


@dataclass
class EntityLoadSummary:
  """Aggregated outcomes of one entity phase."""

  entity: str
  attempted: int = 0
  succeeded: int = 0
  duplicate: int = 0
  failed: int = 0
  skipped: int = 0
  phase_error: StoreFailure | None = None
  phase_reason: str | None = None
  outcomes: list[InsertOutcome] = field(default_factory=list)

  def add(self, outcome: InsertOutcome) -> None:
    self.outcomes.append(outcome)
    if outcome.status is OutcomeStatus.SKIPPED:
      self.skipped += 1
      return
    self.attempted += 1
    if outcome.status is OutcomeStatus.INSERTED:
      self.succeeded += 1
    elif outcome.status is OutcomeStatus.DUPLICATE:
      self.succeeded += 1
      self.duplicate += 1
    else:
      self.failed += 1

  def extend(self, outcomes: Iterable[InsertOutcome]) -> None:
    for outcome in outcomes:
      self.add(outcome)

  @property
  def phase_failed(self) -> bool:
    return self.phase_reason is not None

  @property
  def ok(self) -> bool:
    return not self.phase_failed and self.failed == 0


@dataclass
class LoadReport:
  """Loader output: one summary per entity in the order the phases ran."""

  summaries: dict[str, EntityLoadSummary] = field(default_factory=dict)
  complete: bool = True

  def summary_for(self, entity: str) -> EntityLoadSummary | None:
    return self.summaries.get(entity)

  @property
  def entities(self) -> tuple[str, ...]:
    return tuple(self.summaries)

  @property
  def failed_records(self) -> int:
    return sum(summary.failed for summary in self.summaries.values())

  @property
  def ok(self) -> bool:
    return self.complete and all(summary.ok for summary in self.summaries.values())
