import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("uvicorn.error")


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build an error body that carries no internal diagnostics."""
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: Any) -> list[dict[str, Any]]:
  """Drop submitted input values from validation errors."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {str(key): value for key, value in dict(error).items() if key not in {"input", "ctx", "url"}}
    scrubbed["loc"] = [str(part) for part in scrubbed.get("loc", ())]
    sanitized.append(scrubbed)
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch anything the routes did not handle."""
  request_id = request.headers.get("x-request-id")
  logger.error("Unhandled exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  request_id = request.headers.get("x-request-id")
  sanitized = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s errors=%s", request_id, request.url.path, sanitized)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Keep 4xx details for callers; hide 5xx details behind a generic message."""
  request_id = request.headers.get("x-request-id")
  if exc.status_code >= 500 and exc.status_code != status.HTTP_503_SERVICE_UNAVAILABLE:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  logger.info("HTTPException request_id=%s path=%s status_code=%s", request_id, request.url.path, exc.status_code)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))
