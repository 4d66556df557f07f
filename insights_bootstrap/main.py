from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from insights_bootstrap import __version__
from insights_bootstrap.api.routes import store
from insights_bootstrap.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from insights_bootstrap.core.lifespan import lifespan

app = FastAPI(title="insights-bootstrap", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple liveness status."""
  return {"status": "ok", "version": __version__}


app.include_router(store.router, prefix="/v1")
