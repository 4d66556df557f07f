from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from insights_bootstrap.api.deps import get_app_settings, get_catalog, get_feed, get_store_client, require_ops_secret
from insights_bootstrap.catalog.entities import Catalog
from insights_bootstrap.catalog.feed import RecordFeed
from insights_bootstrap.config import Settings
from insights_bootstrap.services.orchestrator import RemediationOrchestrator
from insights_bootstrap.services.report import RunReport, remediation_run_report, verify_run_report
from insights_bootstrap.services.verifier import SchemaVerifier
from insights_bootstrap.storage.contracts import StoreClient

router = APIRouter(prefix="/store", tags=["store"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=RunReport, response_model_by_alias=True)
async def store_health(
  settings: Annotated[Settings, Depends(get_app_settings)], catalog: Annotated[Catalog, Depends(get_catalog)], client: Annotated[StoreClient, Depends(get_store_client)]
) -> RunReport:
  """Run a read-only verification pass (no policy check) and return the report with its classified issues."""
  verifier = SchemaVerifier(client, catalog, scratch_entity=settings.scratch_entity, concurrency=settings.verify_concurrency, check_policy=False)
  report = await verifier.verify()
  return verify_run_report(report)


@router.post("/verify", response_model=RunReport, response_model_by_alias=True, dependencies=[Depends(require_ops_secret)])
async def store_verify(
  settings: Annotated[Settings, Depends(get_app_settings)], catalog: Annotated[Catalog, Depends(get_catalog)], client: Annotated[StoreClient, Depends(get_store_client)]
) -> RunReport:
  """Run the full verification pass, including the scratch write/read policy check."""
  verifier = SchemaVerifier(client, catalog, scratch_entity=settings.scratch_entity, concurrency=settings.verify_concurrency)
  report = await verifier.verify()
  return verify_run_report(report)


@router.post("/remediate", response_model=RunReport, response_model_by_alias=True, dependencies=[Depends(require_ops_secret)])
async def store_remediate(
  request: Request,
  settings: Annotated[Settings, Depends(get_app_settings)],
  catalog: Annotated[Catalog, Depends(get_catalog)],
  client: Annotated[StoreClient, Depends(get_store_client)],
  feed: Annotated[RecordFeed, Depends(get_feed)],
) -> RunReport:
  """Run one diagnose-and-fix pass; concurrent passes are refused."""
  lock = request.app.state.remediation_lock
  if lock.locked():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A remediation pass is already running.")

  async with lock:
    logger.info("Remediation requested over HTTP")
    orchestrator = RemediationOrchestrator.from_settings(settings, client, catalog, feed)
    result = await orchestrator.diagnose_and_fix()
  return remediation_run_report(result)
