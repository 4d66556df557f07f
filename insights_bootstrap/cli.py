"""Command line entry point: verify, reconcile, load or remediate the remote store."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable, Sequence

from insights_bootstrap.catalog.defaults import DEFAULT_CATALOG
from insights_bootstrap.catalog.feed import JsonRecordFeed, default_feed_path
from insights_bootstrap.config import Settings, get_settings
from insights_bootstrap.core.logging import setup_logging
from insights_bootstrap.services.cascade import CascadingInsertStrategy
from insights_bootstrap.services.loader import DependencyOrderedLoader
from insights_bootstrap.services.orchestrator import RemediationOrchestrator
from insights_bootstrap.services.reconciler import SchemaReconciler
from insights_bootstrap.services.report import RunReport, load_run_report, reconcile_run_report, remediation_run_report, verify_run_report
from insights_bootstrap.services.verifier import SchemaVerifier
from insights_bootstrap.storage.client import RemoteStoreClient, build_store_client

logger = logging.getLogger("insights_bootstrap.cli")


def _build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="insights-bootstrap", description="Verify and repair the market-insights reference store.")
  parser.add_argument("--json", action="store_true", help="Print the run report as JSON.")
  parser.add_argument("--feed", default=None, help="Path to a JSON reference feed (defaults to INSIGHTS_FEED_PATH or the bundled feed).")
  commands = parser.add_subparsers(dest="command", required=True)

  verify = commands.add_parser("verify", help="Report entity presence, row counts, session and access policy.")
  verify.add_argument("--skip-policy", action="store_true", help="Skip the scratch write/read policy check.")

  reconcile = commands.add_parser("reconcile", help="Create missing entities (all missing ones when none are named).")
  reconcile.add_argument("entities", nargs="*", help="Entity names to create.")

  load = commands.add_parser("load", help="Load reference records parents-first (all entities when none are named).")
  load.add_argument("entities", nargs="*", help="Entity names to load.")

  commands.add_parser("remediate", help="Diagnose, fix and confirm in a single pass.")
  return parser


def _install_signal_handlers(cancel: Callable[[], None]) -> None:
  """Route SIGINT/SIGTERM to cooperative cancellation so a partial report still prints."""
  loop = asyncio.get_running_loop()
  for sig in (signal.SIGINT, signal.SIGTERM):
    try:
      loop.add_signal_handler(sig, cancel)
    except (NotImplementedError, RuntimeError):
      logger.debug("Signal handler for %s not supported on this platform", sig)


def _load_feed(settings: Settings, override: str | None) -> JsonRecordFeed:
  return JsonRecordFeed.from_path(default_feed_path(override or settings.feed_path))


async def _verify(client: RemoteStoreClient, settings: Settings, args: argparse.Namespace) -> RunReport:
  cancel_event = asyncio.Event()
  _install_signal_handlers(cancel_event.set)
  verifier = SchemaVerifier(client, DEFAULT_CATALOG, scratch_entity=settings.scratch_entity, concurrency=settings.verify_concurrency, cancel_event=cancel_event, check_policy=not args.skip_policy)
  return verify_run_report(await verifier.verify())


async def _reconcile(client: RemoteStoreClient, settings: Settings, args: argparse.Namespace) -> RunReport:
  names = list(args.entities)
  if not names:
    # Discover what is missing with a count-only pass.
    verifier = SchemaVerifier(client, DEFAULT_CATALOG, scratch_entity=settings.scratch_entity, concurrency=settings.verify_concurrency, check_policy=False)
    report = await verifier.verify()
    names = list(report.missing_entities)
    if not names:
      logger.info("No missing entities to create.")
  reconciler = SchemaReconciler(client, DEFAULT_CATALOG, scratch_entity=settings.scratch_entity)
  return reconcile_run_report(await reconciler.reconcile(names))


async def _load(client: RemoteStoreClient, settings: Settings, args: argparse.Namespace) -> RunReport:
  cancel_event = asyncio.Event()
  _install_signal_handlers(cancel_event.set)
  feed = _load_feed(settings, args.feed)
  strategy = CascadingInsertStrategy(client, attempt_timeout_seconds=settings.store_timeout_seconds)
  loader = DependencyOrderedLoader(client, DEFAULT_CATALOG, feed, strategy=strategy, concurrency=settings.load_concurrency, cancel_event=cancel_event)
  return load_run_report(await loader.load(args.entities or None))


async def _remediate(client: RemoteStoreClient, settings: Settings, args: argparse.Namespace) -> RunReport:
  feed = _load_feed(settings, args.feed)
  orchestrator = RemediationOrchestrator.from_settings(settings, client, DEFAULT_CATALOG, feed)
  _install_signal_handlers(orchestrator.cancel)
  return remediation_run_report(await orchestrator.diagnose_and_fix())


_COMMANDS = {"verify": _verify, "reconcile": _reconcile, "load": _load, "remediate": _remediate}


async def _run(settings: Settings, args: argparse.Namespace) -> RunReport:
  async with build_store_client(settings) as client:
    return await _COMMANDS[args.command](client, settings, args)


def format_summary(report: RunReport) -> str:
  """Render a short human-readable summary of a run report."""
  lines = [f"{report.command}: exit code {report.exit_code}{' (cancelled)' if report.cancelled else ''}"]
  health = report.final_health_report or report.health_report
  if health is not None:
    lines.append(f"  connection: {health.connection.status} ({health.connection.message})")
    if health.authentication is not None:
      lines.append(f"  session: {health.authentication.status}")
    for entity in health.entities:
      count = "-" if entity.row_count is None else entity.row_count
      lines.append(f"  {entity.name}: {entity.status} rows={count} min={entity.min_rows}")
    if health.policy is not None:
      lines.append(f"  policy: {health.policy.status} ({health.policy.message})")
  if report.reconcile is not None:
    lines.append(f"  created: {', '.join(report.reconcile.created) or '-'}")
    lines.append(f"  still missing: {', '.join(report.reconcile.still_missing) or '-'}")
  for name, summary in report.insert_summary.items():
    lines.append(f"  {name}: attempted={summary.attempted} succeeded={summary.succeeded} duplicate={summary.duplicate} failed={summary.failed} skipped={summary.skipped}")
  for label, issues in (("fixed", report.fixed), ("remaining", report.remaining), ("new", report.new_issues)):
    for issue in issues:
      lines.append(f"  [{label}] {issue.severity} {issue.type}: {issue.description}")
  return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
  """Entrypoint for the insights-bootstrap console script."""
  args = _build_parser().parse_args(argv)
  try:
    settings = get_settings()
  except ValueError as exc:
    print(f"Invalid configuration: {exc}", file=sys.stderr)
    return 2

  setup_logging(settings, prefix=args.command)
  try:
    report = asyncio.run(_run(settings, args))
  except (RuntimeError, ValueError) as exc:
    logger.error("%s failed: %s", args.command, exc)
    return 2

  print(report.to_json() if args.json else format_summary(report))
  return report.exit_code


if __name__ == "__main__":
  raise SystemExit(main())
