import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from insights_bootstrap.catalog.defaults import DEFAULT_CATALOG
from insights_bootstrap.catalog.feed import JsonRecordFeed, default_feed_path
from insights_bootstrap.config import get_settings
from insights_bootstrap.core.logging import setup_logging
from insights_bootstrap.storage.client import build_store_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the shared store client and feed on startup, close the client on shutdown."""
  settings = get_settings()
  setup_logging(settings, prefix="service")
  logger = logging.getLogger("insights_bootstrap.core.lifespan")

  app.state.settings = settings
  app.state.catalog = DEFAULT_CATALOG
  app.state.remediation_lock = asyncio.Lock()
  app.state.store_client = None
  app.state.feed = None

  # An unconfigured store leaves the service up; store routes answer 503 until it is configured.
  if settings.store_url and settings.store_key:
    app.state.store_client = build_store_client(settings)
    logger.info("Store client ready for %s", settings.store_url)
  else:
    logger.warning("Remote store is not configured; store routes are disabled.")

  try:
    app.state.feed = JsonRecordFeed.from_path(default_feed_path(settings.feed_path))
  except ValueError:
    logger.error("Reference feed could not be loaded; remediation is disabled.", exc_info=True)

  try:
    yield
  finally:
    if app.state.store_client is not None:
      await app.state.store_client.aclose()
      logger.info("Store client closed.")
