from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from insights_bootstrap.catalog.entities import Catalog
from insights_bootstrap.catalog.feed import RecordFeed
from insights_bootstrap.config import Settings
from insights_bootstrap.storage.contracts import StoreClient


def get_app_settings(request: Request) -> Settings:
  return request.app.state.settings


def get_catalog(request: Request) -> Catalog:
  return request.app.state.catalog


def get_store_client(request: Request) -> StoreClient:
  client = getattr(request.app.state, "store_client", None)
  if client is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Remote store is not configured.")
  return client


def get_feed(request: Request) -> RecordFeed:
  feed = getattr(request.app.state, "feed", None)
  if feed is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Reference feed is not available.")
  return feed


def require_ops_secret(settings: Annotated[Settings, Depends(get_app_settings)], x_insights_ops_secret: str | None = Header(default=None)) -> None:
  """Reject mutating calls that do not carry the shared operations secret."""
  # Closed by default: no configured secret means nobody may remediate over HTTP.
  if not settings.ops_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operations authentication is not configured.")
  if not secrets.compare_digest(x_insights_ops_secret or "", settings.ops_secret):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid operations secret.")
