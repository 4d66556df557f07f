"""Run report serialization and the CLI entrypoint."""

from __future__ import annotations

import datetime
import json
from unittest.mock import AsyncMock, patch

from insights_bootstrap import cli
from insights_bootstrap.config import Settings
from insights_bootstrap.services.health import CheckResult, CheckStatus, EntityHealth, EntityStatus, HealthReport
from insights_bootstrap.services.orchestrator import Issue, IssueType, RemediationResult, Severity
from insights_bootstrap.services.outcomes import EntityLoadSummary, InsertOutcome, LoadReport, OutcomeStatus
from insights_bootstrap.services.report import RunReport, load_run_report, remediation_run_report, verify_run_report

NOW = datetime.datetime(2026, 1, 1, tzinfo=datetime.UTC)


def _settings(**overrides) -> Settings:
  values = {
    "environment": "test",
    "debug": False,
    "store_url": "https://store.example.com",
    "store_key": "key",
    "store_timeout_seconds": 5.0,
    "exec_function": "execute_sql",
    "auth_email": None,
    "auth_password": None,
    "verify_concurrency": 2,
    "load_concurrency": 2,
    "scratch_entity": "rls_test",
    "feed_path": None,
    "log_dir": "./logs",
    "log_max_bytes": 1024,
    "log_backup_count": 1,
    "ops_secret": None,
  }
  values.update(overrides)
  return Settings(**values)


def _report() -> HealthReport:
  return HealthReport(
    connection=CheckResult(status=CheckStatus.OK, message="Remote store reachable."),
    authentication=CheckResult(status=CheckStatus.OK, message="Signed in."),
    entities=(
      EntityHealth(name="categories", exists=True, status=EntityStatus.HEALTHY, row_count=4, min_rows=2),
      EntityHealth(name="regions", exists=False, status=EntityStatus.MISSING, min_rows=1),
    ),
    policy=CheckResult(status=CheckStatus.OK, message="ok"),
    started_at=NOW,
    finished_at=NOW,
  )


def test_verify_report_uses_camel_case_and_fails_on_critical_issue() -> None:
  report = verify_run_report(_report())
  payload = json.loads(report.to_json())

  assert payload["exitCode"] == 1
  assert payload["healthReport"]["entities"][0]["rowCount"] == 4
  assert payload["healthReport"]["entities"][1]["minRows"] == 1
  assert payload["issues"][0]["type"] == "missing-entities"
  assert "newIssues" in payload
  assert "insertSummary" in payload


def test_remediation_report_carries_fixed_and_remaining() -> None:
  missing = Issue(type=IssueType.MISSING_ENTITIES, description="Missing regions", severity=Severity.CRITICAL, entities=("regions",))
  auth = Issue(type=IssueType.AUTH, description="No session", severity=Severity.WARNING)
  result = RemediationResult(initial_report=_report(), issues=[missing, auth], fixed=[missing], remaining=[auth], final_report=_report())

  payload = json.loads(remediation_run_report(result).to_json())

  assert payload["command"] == "remediate"
  assert [issue["entities"] for issue in payload["fixed"]] == [["regions"]]
  assert payload["remaining"][0]["severity"] == "warning"
  assert payload["finalHealthReport"] is not None
  assert payload["exitCode"] == 0


def test_load_report_summaries() -> None:
  summary = EntityLoadSummary(entity="regions")
  summary.add(InsertOutcome(record_ref="Europe", status=OutcomeStatus.INSERTED, shape_level=0))
  summary.add(InsertOutcome.already_present("Asia"))
  report = load_run_report(LoadReport(summaries={"regions": summary}))

  regions = report.insert_summary["regions"]
  assert regions.attempted == 2
  assert regions.succeeded == 2
  assert regions.duplicate == 1
  assert report.exit_code == 0


def test_format_summary_lists_entities_and_issues() -> None:
  text = cli.format_summary(verify_run_report(_report()))
  assert text.splitlines()[0] == "verify: exit code 1"
  assert "categories: healthy rows=4 min=2" in text
  assert "regions: missing rows=- min=1" in text
  assert "[remaining] critical missing-entities" in text


def test_main_returns_two_on_invalid_configuration(capsys) -> None:
  with patch("insights_bootstrap.cli.get_settings", side_effect=ValueError("INSIGHTS_STORE_URL must start with 'http://'")):
    assert cli.main(["verify"]) == 2
  assert "Invalid configuration" in capsys.readouterr().err


def test_main_returns_two_when_store_is_not_configured() -> None:
  with (
    patch("insights_bootstrap.cli.get_settings", return_value=_settings(store_url=None)),
    patch("insights_bootstrap.cli.setup_logging"),
    patch("insights_bootstrap.cli._run", new=AsyncMock(side_effect=RuntimeError("INSIGHTS_STORE_URL is not configured."))),
  ):
    assert cli.main(["load"]) == 2


def test_main_prints_json_and_returns_report_exit_code(capsys) -> None:
  report = RunReport(command="verify", exit_code=1)
  with (
    patch("insights_bootstrap.cli.get_settings", return_value=_settings()),
    patch("insights_bootstrap.cli.setup_logging"),
    patch("insights_bootstrap.cli._run", new=AsyncMock(return_value=report)),
  ):
    assert cli.main(["--json", "verify"]) == 1
  assert json.loads(capsys.readouterr().out)["command"] == "verify"
