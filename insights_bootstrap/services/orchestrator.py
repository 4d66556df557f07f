"""Diagnose the remote store and repair what can be repaired, in one pass.

States run in a fixed sequence: VERIFY -> CLASSIFY -> REMEDIATE -> CONFIRM. CONFIRM runs
exactly once, even when remediation was cancelled, and sorts every original issue, entity
by entity, into fixed or remaining. Newly created and under-filled entities are loaded in
one ordered pass after the other handlers ran, so a parent is filled before its children.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from insights_bootstrap.catalog.entities import Catalog
from insights_bootstrap.catalog.feed import RecordFeed
from insights_bootstrap.config import Settings
from insights_bootstrap.core.errors import ErrorCategory
from insights_bootstrap.services.cascade import CascadingInsertStrategy
from insights_bootstrap.services.health import EntityStatus, HealthReport
from insights_bootstrap.services.loader import DependencyOrderedLoader
from insights_bootstrap.services.outcomes import LoadReport
from insights_bootstrap.services.reconciler import PolicyResult, ReconcileResult, SchemaReconciler
from insights_bootstrap.services.verifier import SchemaVerifier
from insights_bootstrap.storage.contracts import Credentials, StoreClient

logger = logging.getLogger(__name__)


class IssueType(str, Enum):
  CONNECTION = "connection"
  AUTH = "auth"
  MISSING_ENTITIES = "missing-entities"
  EMPTY_ENTITIES = "empty-entities"
  POLICY = "policy"


class Severity(str, Enum):
  CRITICAL = "critical"
  WARNING = "warning"


class RemediationState(str, Enum):
  VERIFY = "verify"
  CLASSIFY = "classify"
  REMEDIATE = "remediate"
  CONFIRM = "confirm"


@dataclass(frozen=True)
class Issue:
  type: IssueType
  description: str
  severity: Severity
  entities: tuple[str, ...] = ()

  @property
  def critical(self) -> bool:
    return self.severity is Severity.CRITICAL

  def narrowed(self, entities: Iterable[str]) -> Issue:
    """Return the same issue restricted to a subset of its entities."""
    return Issue(type=self.type, description=self.description, severity=self.severity, entities=tuple(entities))


@dataclass(frozen=True)
class RemediationAction:
  issue_type: IssueType
  succeeded: bool
  detail: str
  entities: tuple[str, ...] = ()


@dataclass
class RemediationResult:
  """Everything one diagnose-and-fix pass learned and did."""

  initial_report: HealthReport
  issues: list[Issue] = field(default_factory=list)
  actions: list[RemediationAction] = field(default_factory=list)
  final_report: HealthReport | None = None
  fixed: list[Issue] = field(default_factory=list)
  remaining: list[Issue] = field(default_factory=list)
  new_issues: list[Issue] = field(default_factory=list)
  reconcile_result: ReconcileResult | None = None
  policy_result: PolicyResult | None = None
  load_reports: list[LoadReport] = field(default_factory=list)
  states: list[RemediationState] = field(default_factory=list)
  cancelled: bool = False

  @property
  def remaining_critical(self) -> list[Issue]:
    return [issue for issue in [*self.remaining, *self.new_issues] if issue.critical]

  @property
  def exit_code(self) -> int:
    return 0 if not self.remaining_critical else 1


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1}


def sort_issues(issues: Iterable[Issue]) -> list[Issue]:
  """Critical issues first; emission order is kept within a severity."""
  return sorted(issues, key=lambda issue: _SEVERITY_RANK[issue.severity])


def classify_issues(report: HealthReport) -> list[Issue]:
  """Turn a health report into remediable issues, critical first."""
  if not report.connected:
    return [Issue(type=IssueType.CONNECTION, description=f"Remote store unreachable: {report.connection.message}", severity=Severity.CRITICAL)]

  issues: list[Issue] = []
  if report.authentication is not None and not report.authentication.ok:
    issues.append(Issue(type=IssueType.AUTH, description=report.authentication.message, severity=Severity.WARNING))

  # Entities rejected by access rules belong to the policy issue, not the missing one.
  denied = tuple(item.name for item in report.entities if item.status is EntityStatus.ERROR and item.error is not None and item.error.category is ErrorCategory.PERMISSION)
  unreadable = tuple(item.name for item in report.entities if item.status is EntityStatus.ERROR and item.name not in denied)
  policy_failed = report.policy is not None and report.policy.failed
  if policy_failed or denied:
    message = report.policy.message if policy_failed and report.policy is not None else "Entities rejected by access rules."
    issues.append(Issue(type=IssueType.POLICY, description=message, severity=Severity.CRITICAL, entities=denied))

  missing = report.missing_entities + unreadable
  if missing:
    issues.append(Issue(type=IssueType.MISSING_ENTITIES, description=f"Missing or unreadable entities: {', '.join(missing)}", severity=Severity.CRITICAL, entities=missing))

  if report.low_data_entities:
    low = report.low_data_entities
    issues.append(Issue(type=IssueType.EMPTY_ENTITIES, description=f"Entities below their minimum row count: {', '.join(low)}", severity=Severity.CRITICAL, entities=low))

  return sort_issues(issues)


def _entity_resolved(issue_type: IssueType, name: str, report: HealthReport) -> bool:
  health = report.entity(name)
  if health is None:
    return False
  if issue_type is IssueType.MISSING_ENTITIES:
    return health.exists
  if issue_type is IssueType.EMPTY_ENTITIES:
    return health.status is EntityStatus.HEALTHY
  if issue_type is IssueType.POLICY:
    return health.status is not EntityStatus.ERROR
  return False


def confirm_issues(issues: Iterable[Issue], report: HealthReport) -> tuple[list[Issue], list[Issue]]:
  """Split each issue into its fixed and remaining parts, entity by entity."""
  fixed: list[Issue] = []
  remaining: list[Issue] = []
  for issue in issues:
    if issue.type is IssueType.CONNECTION:
      (fixed if report.connected else remaining).append(issue)
      continue
    if not report.connected:
      remaining.append(issue)
      continue
    if issue.type is IssueType.AUTH:
      (fixed if report.authentication is not None and report.authentication.ok else remaining).append(issue)
      continue

    if issue.type is IssueType.POLICY:
      # The policy check itself must pass before any part of the issue counts as fixed.
      policy_ok = report.policy is not None and report.policy.ok
      if not policy_ok:
        remaining.append(issue)
        continue
      if not issue.entities:
        fixed.append(issue)
        continue

    done = [name for name in issue.entities if _entity_resolved(issue.type, name, report)]
    left = [name for name in issue.entities if name not in done]
    if done:
      fixed.append(issue.narrowed(done))
    if left:
      remaining.append(issue.narrowed(left))
  return fixed, remaining


def find_new_issues(original: Iterable[Issue], current: Iterable[Issue]) -> list[Issue]:
  """Return the parts of `current` not already covered by an original issue."""
  covered: dict[IssueType, set[str]] = {}
  whole: set[IssueType] = set()
  for issue in original:
    if issue.entities:
      covered.setdefault(issue.type, set()).update(issue.entities)
    else:
      whole.add(issue.type)

  new: list[Issue] = []
  for issue in current:
    # An original issue without entities covers every entity of its type.
    if issue.type in whole:
      continue
    if not issue.entities:
      if issue.type not in covered:
        new.append(issue)
      continue
    fresh = [name for name in issue.entities if name not in covered.get(issue.type, set())]
    if fresh:
      new.append(issue.narrowed(fresh))
  return new


def _load_action(issue: Issue, targets: tuple[str, ...], report: LoadReport) -> RemediationAction:
  """Summarize the shared load pass for the entities one issue asked for."""
  summaries = [summary for name in targets if (summary := report.summary_for(name)) is not None]
  inserted = sum(summary.succeeded - summary.duplicate for summary in summaries)
  succeeded = report.complete and len(summaries) == len(targets) and all(summary.ok for summary in summaries)
  return RemediationAction(issue_type=issue.type, succeeded=succeeded, detail=f"Loaded {inserted} new record(s) into {', '.join(targets)}.", entities=targets)


class RemediationOrchestrator:
  """Single-pass VERIFY -> CLASSIFY -> REMEDIATE -> CONFIRM driver."""

  def __init__(
    self,
    client: StoreClient,
    catalog: Catalog,
    feed: RecordFeed,
    *,
    credentials: Credentials | None = None,
    scratch_entity: str = "rls_test",
    verify_concurrency: int = 4,
    load_concurrency: int = 5,
    attempt_timeout_seconds: float | None = None,
  ) -> None:
    self._client = client
    self._catalog = catalog
    self._credentials = credentials
    self._cancel_event = asyncio.Event()
    self.verifier = SchemaVerifier(client, catalog, scratch_entity=scratch_entity, concurrency=verify_concurrency, cancel_event=self._cancel_event)
    self.reconciler = SchemaReconciler(client, catalog, scratch_entity=scratch_entity)
    strategy = CascadingInsertStrategy(client, attempt_timeout_seconds=attempt_timeout_seconds)
    self.loader = DependencyOrderedLoader(client, catalog, feed, strategy=strategy, concurrency=load_concurrency, cancel_event=self._cancel_event)

  @classmethod
  def from_settings(cls, settings: Settings, client: StoreClient, catalog: Catalog, feed: RecordFeed) -> RemediationOrchestrator:
    credentials = Credentials(email=settings.auth_email, password=settings.auth_password) if settings.auth_email and settings.auth_password else None
    return cls(
      client,
      catalog,
      feed,
      credentials=credentials,
      scratch_entity=settings.scratch_entity,
      verify_concurrency=settings.verify_concurrency,
      load_concurrency=settings.load_concurrency,
      attempt_timeout_seconds=settings.store_timeout_seconds,
    )

  @property
  def cancel_event(self) -> asyncio.Event:
    return self._cancel_event

  def cancel(self) -> None:
    """Ask the verifier and loader to stop scheduling new work."""
    if not self._cancel_event.is_set():
      logger.warning("Remediation cancellation requested.")
    self._cancel_event.set()

  @property
  def cancelled(self) -> bool:
    return self._cancel_event.is_set()

  async def diagnose_and_fix(self) -> RemediationResult:
    """Run one full remediation pass; never loops back to REMEDIATE."""
    initial = await self.verifier.verify()
    result = RemediationResult(initial_report=initial, states=[RemediationState.VERIFY])

    result.states.append(RemediationState.CLASSIFY)
    result.issues = classify_issues(initial)
    logger.info("Found %s issue(s): %s", len(result.issues), [issue.type.value for issue in result.issues])

    result.states.append(RemediationState.REMEDIATE)
    await self._remediate_all(result)

    result.states.append(RemediationState.CONFIRM)
    await self._confirm(result)
    return result

  def _record(self, result: RemediationResult, action: RemediationAction) -> None:
    result.actions.append(action)
    logger.info("Remediation of %s succeeded=%s: %s", action.issue_type.value, action.succeeded, action.detail)

  async def _remediate_all(self, result: RemediationResult) -> None:
    """Handle every issue, then load all affected entities in a single ordered pass."""
    # Created and under-filled entities share one load so parents always precede children.
    load_targets: dict[Issue, tuple[str, ...]] = {}
    for issue in result.issues:
      if self.cancelled:
        logger.warning("Skipping remediation of %s after cancellation", issue.type.value)
        continue
      if issue.type is IssueType.EMPTY_ENTITIES:
        load_targets[issue] = issue.entities
        continue
      self._record(result, await self._remediate(issue, result))
      if issue.type is IssueType.MISSING_ENTITIES and result.reconcile_result is not None and result.reconcile_result.created:
        load_targets[issue] = tuple(result.reconcile_result.created)

    names = list(dict.fromkeys(name for targets in load_targets.values() for name in targets))
    if not names:
      return
    if self.cancelled:
      logger.warning("Skipping load of %s after cancellation", names)
      return

    report = await self.loader.load(names)
    result.load_reports.append(report)
    for issue, targets in load_targets.items():
      self._record(result, _load_action(issue, targets, report))

  async def _confirm(self, result: RemediationResult) -> None:
    """Re-verify once and settle every original issue as fixed or remaining."""
    if self.cancelled:
      # No confirming pass after a cancellation: nothing can be claimed as fixed.
      result.cancelled = True
      result.remaining = list(result.issues)
      logger.warning("Remediation cancelled; %s issue(s) left unconfirmed", len(result.issues))
      return

    final = await self.verifier.verify()
    result.final_report = final
    result.fixed, result.remaining = confirm_issues(result.issues, final)
    result.new_issues = find_new_issues(result.issues, classify_issues(final))
    result.cancelled = self.cancelled
    logger.info("Confirmation: fixed=%s remaining=%s new=%s", len(result.fixed), len(result.remaining), len(result.new_issues))

  async def _remediate(self, issue: Issue, result: RemediationResult) -> RemediationAction:
    if issue.type is IssueType.AUTH:
      return await self._sign_in(issue)
    if issue.type is IssueType.MISSING_ENTITIES:
      return await self._create(issue, result)
    if issue.type is IssueType.POLICY:
      return await self._apply_policies(issue, result)
    return RemediationAction(issue_type=issue.type, succeeded=False, detail="No automatic remediation for an unreachable store.")

  async def _sign_in(self, issue: Issue) -> RemediationAction:
    if self._credentials is None:
      return RemediationAction(issue_type=issue.type, succeeded=False, detail="No stored credentials to sign in with.")
    outcome = await self._client.sign_in(self._credentials)
    if outcome.error is not None:
      return RemediationAction(issue_type=issue.type, succeeded=False, detail=f"Sign-in failed: {outcome.error.message}")
    return RemediationAction(issue_type=issue.type, succeeded=True, detail=f"Signed in as {self._credentials.email}.")

  async def _create(self, issue: Issue, result: RemediationResult) -> RemediationAction:
    reconciled = await self.reconciler.reconcile(issue.entities)
    result.reconcile_result = reconciled
    if not reconciled.created:
      return RemediationAction(issue_type=issue.type, succeeded=False, detail=f"Nothing could be created; still missing: {', '.join(reconciled.still_missing)}", entities=issue.entities)

    detail = f"Created {', '.join(reconciled.created)}"
    if reconciled.still_missing:
      detail = f"{detail}; still missing {', '.join(reconciled.still_missing)}"
    return RemediationAction(issue_type=issue.type, succeeded=reconciled.ok, detail=detail, entities=issue.entities)

  async def _apply_policies(self, issue: Issue, result: RemediationResult) -> RemediationAction:
    scratch_failure = await self.reconciler.ensure_scratch_entity()
    targets = issue.entities or tuple(item.name for item in result.initial_report.entities if item.exists)
    policies = await self.reconciler.apply_read_policies(targets)
    result.policy_result = policies
    succeeded = scratch_failure is None and policies.ok
    detail = f"Read policies applied to {len(policies.applied)} of {len(targets)} entities."
    if scratch_failure is not None:
      detail = f"{detail} Scratch entity not prepared: {scratch_failure.message}"
    return RemediationAction(issue_type=issue.type, succeeded=succeeded, detail=detail, entities=issue.entities)
