"""JSON run report shared by the CLI and the status service."""

from __future__ import annotations

import datetime
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from insights_bootstrap.core.errors import StoreFailure
from insights_bootstrap.services.health import CheckResult, HealthReport
from insights_bootstrap.services.orchestrator import Issue, RemediationAction, RemediationResult, classify_issues
from insights_bootstrap.services.outcomes import LoadReport
from insights_bootstrap.services.reconciler import ReconcileResult


def _to_camel(string: str) -> str:
  """Convert snake_case field names to the camelCase keys of the run report."""
  head, *tail = string.split("_")
  return head + "".join(part.capitalize() for part in tail)


class ReportModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class FailureModel(ReportModel):
  category: str
  kind: str
  message: str
  code: str | None = None
  status: int | None = None
  details: str | None = None
  hint: str | None = None


class CheckModel(ReportModel):
  status: str
  message: str
  kind: str | None = None
  error: FailureModel | None = None


class EntityHealthModel(ReportModel):
  name: str
  exists: bool
  status: str
  row_count: int | None = None
  min_rows: int = 0
  error: FailureModel | None = None


class HealthReportModel(ReportModel):
  connection: CheckModel
  authentication: CheckModel | None = None
  entities: list[EntityHealthModel] = Field(default_factory=list)
  policy: CheckModel | None = None
  complete: bool = True
  healthy: bool = False
  started_at: datetime.datetime
  finished_at: datetime.datetime


class IssueModel(ReportModel):
  type: str
  description: str
  severity: str
  entities: list[str] = Field(default_factory=list)


class InsertSummaryModel(ReportModel):
  attempted: int = 0
  succeeded: int = 0
  duplicate: int = 0
  failed: int = 0
  skipped: int = 0
  phase_reason: str | None = None


class ActionModel(ReportModel):
  issue_type: str
  succeeded: bool
  detail: str
  entities: list[str] = Field(default_factory=list)


class ReconcileModel(ReportModel):
  created: list[str] = Field(default_factory=list)
  still_missing: list[str] = Field(default_factory=list)
  failures: dict[str, FailureModel] = Field(default_factory=dict)


class RunReport(ReportModel):
  """Top-level report printed by the CLI and returned by the status service."""

  command: str
  health_report: HealthReportModel | None = None
  final_health_report: HealthReportModel | None = None
  issues: list[IssueModel] = Field(default_factory=list)
  fixed: list[IssueModel] = Field(default_factory=list)
  remaining: list[IssueModel] = Field(default_factory=list)
  new_issues: list[IssueModel] = Field(default_factory=list)
  actions: list[ActionModel] = Field(default_factory=list)
  insert_summary: dict[str, InsertSummaryModel] = Field(default_factory=dict)
  reconcile: ReconcileModel | None = None
  complete: bool = True
  cancelled: bool = False
  exit_code: int = 0

  def to_json(self) -> str:
    return self.model_dump_json(by_alias=True, indent=2)


def failure_model(failure: StoreFailure | None) -> FailureModel | None:
  if failure is None:
    return None
  return FailureModel(category=failure.category.value, kind=failure.kind, message=failure.message, code=failure.code, status=failure.status, details=failure.details, hint=failure.hint)


def _check_model(check: CheckResult | None) -> CheckModel | None:
  if check is None:
    return None
  return CheckModel(status=check.status.value, message=check.message, kind=check.kind, error=failure_model(check.error))


def health_report_model(report: HealthReport | None) -> HealthReportModel | None:
  if report is None:
    return None
  connection = _check_model(report.connection)
  assert connection is not None
  return HealthReportModel(
    connection=connection,
    authentication=_check_model(report.authentication),
    entities=[
      EntityHealthModel(name=item.name, exists=item.exists, status=item.status.value, row_count=item.row_count, min_rows=item.min_rows, error=failure_model(item.error)) for item in report.entities
    ],
    policy=_check_model(report.policy),
    complete=report.complete,
    healthy=report.healthy,
    started_at=report.started_at,
    finished_at=report.finished_at,
  )


def issue_models(issues: Iterable[Issue]) -> list[IssueModel]:
  return [IssueModel(type=issue.type.value, description=issue.description, severity=issue.severity.value, entities=list(issue.entities)) for issue in issues]


def _action_models(actions: Iterable[RemediationAction]) -> list[ActionModel]:
  return [ActionModel(issue_type=action.issue_type.value, succeeded=action.succeeded, detail=action.detail, entities=list(action.entities)) for action in actions]


def insert_summary_models(reports: Iterable[LoadReport]) -> dict[str, InsertSummaryModel]:
  """Merge per-entity summaries across load passes."""
  merged: dict[str, InsertSummaryModel] = {}
  for report in reports:
    for name, summary in report.summaries.items():
      current = merged.setdefault(name, InsertSummaryModel())
      current.attempted += summary.attempted
      current.succeeded += summary.succeeded
      current.duplicate += summary.duplicate
      current.failed += summary.failed
      current.skipped += summary.skipped
      current.phase_reason = summary.phase_reason or current.phase_reason
  return merged


def reconcile_model(result: ReconcileResult | None) -> ReconcileModel | None:
  if result is None:
    return None
  failures = {name: model for name, failure in result.failures.items() if (model := failure_model(failure)) is not None}
  return ReconcileModel(created=list(result.created), still_missing=list(result.still_missing), failures=failures)


def verify_run_report(report: HealthReport) -> RunReport:
  issues = classify_issues(report)
  critical = any(issue.critical for issue in issues)
  return RunReport(command="verify", health_report=health_report_model(report), issues=issue_models(issues), remaining=issue_models(issues), complete=report.complete, exit_code=1 if critical else 0)


def reconcile_run_report(result: ReconcileResult) -> RunReport:
  return RunReport(command="reconcile", reconcile=reconcile_model(result), exit_code=0 if result.ok else 1)


def load_run_report(report: LoadReport) -> RunReport:
  return RunReport(command="load", insert_summary=insert_summary_models([report]), complete=report.complete, cancelled=not report.complete, exit_code=0 if report.ok else 1)


def remediation_run_report(result: RemediationResult) -> RunReport:
  return RunReport(
    command="remediate",
    health_report=health_report_model(result.initial_report),
    final_health_report=health_report_model(result.final_report),
    issues=issue_models(result.issues),
    fixed=issue_models(result.fixed),
    remaining=issue_models(result.remaining),
    new_issues=issue_models(result.new_issues),
    actions=_action_models(result.actions),
    insert_summary=insert_summary_models(result.load_reports),
    reconcile=reconcile_model(result.reconcile_result),
    complete=not result.cancelled,
    cancelled=result.cancelled,
    exit_code=result.exit_code,
  )
