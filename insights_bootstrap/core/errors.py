"""Remote store failure taxonomy and classification.

Every failure reported by the remote store is reduced to one of six categories so the
pipeline can decide, per record or per check, whether to degrade, retry with another
shape, treat the outcome as benign, or stop.

  connectivity    network, DNS, timeouts, gateway errors. Fatal only at the first check.
  authentication  missing/expired session, rejected API key. Degrades, never fatal.
  schema          unknown relation, column or function. Drives shape cascading and creation.
  constraint      duplicate key. Always benign (idempotent re-run).
  permission      write/read rejected by access rules. Critical, fixed by policies.
  unknown         anything else. Terminal for the single unit involved.

Primary signal: Postgres SQLSTATE / PostgREST error code.
Fallback: message patterns, then HTTP status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
  """Coarse failure classes shared by every pipeline component."""

  CONNECTIVITY = "connectivity"
  AUTHENTICATION = "authentication"
  SCHEMA = "schema"
  CONSTRAINT = "constraint"
  PERMISSION = "permission"
  UNKNOWN = "unknown"


@dataclass(frozen=True)
class FailureClassification:
  """Classification result for a remote store failure."""

  category: ErrorCategory
  kind: str
  reason: str


@dataclass(frozen=True)
class StoreFailure:
  """Structured failure returned by the remote store client instead of raising."""

  category: ErrorCategory
  kind: str
  message: str
  code: str | None = None
  status: int | None = None
  details: str | None = None
  hint: str | None = None
  extra: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

  @property
  def is_missing_relation(self) -> bool:
    return self.kind == "undefined_table"

  @property
  def is_schema_mismatch(self) -> bool:
    return self.category is ErrorCategory.SCHEMA

  @property
  def is_duplicate(self) -> bool:
    return self.category is ErrorCategory.CONSTRAINT

  def describe(self) -> str:
    """Return a one-line description suitable for logs and reports."""
    prefix = f"[{self.category.value}/{self.kind}]"
    if self.code:
      prefix = f"{prefix} {self.code}"
    return f"{prefix} {self.message}"

  def as_dict(self) -> dict[str, Any]:
    return {"category": self.category.value, "kind": self.kind, "code": self.code, "status": self.status, "message": self.message, "details": self.details, "hint": self.hint}


_INTEGRITY_KINDS = {
  "23000": "integrity_constraint_violation",
  "23001": "restrict_violation",
  "23502": "not_null_violation",
  "23503": "foreign_key_violation",
  "23514": "check_violation",
  "23P01": "exclusion_violation",
}

_CODE_TABLE: dict[str, FailureClassification] = {
  # Relations
  "42P01": FailureClassification(ErrorCategory.SCHEMA, "undefined_table", "Relation does not exist"),
  "PGRST205": FailureClassification(ErrorCategory.SCHEMA, "undefined_table", "Table not found in the schema cache"),
  "PGRST200": FailureClassification(ErrorCategory.SCHEMA, "undefined_relationship", "Relationship not found in the schema cache"),
  # Columns
  "42703": FailureClassification(ErrorCategory.SCHEMA, "undefined_column", "Column does not exist"),
  "PGRST204": FailureClassification(ErrorCategory.SCHEMA, "undefined_column", "Column not found in the schema cache"),
  # Functions used for raw statements
  "42883": FailureClassification(ErrorCategory.SCHEMA, "undefined_function", "Function does not exist"),
  "PGRST202": FailureClassification(ErrorCategory.SCHEMA, "undefined_function", "Function not found in the schema cache"),
  # Duplicates
  "23505": FailureClassification(ErrorCategory.CONSTRAINT, "unique_violation", "Duplicate key"),
  # Access rules
  "42501": FailureClassification(ErrorCategory.PERMISSION, "insufficient_privilege", "Rejected by access rules"),
  # Sessions and keys
  "PGRST300": FailureClassification(ErrorCategory.AUTHENTICATION, "jwt_secret_missing", "Server JWT secret missing"),
  "PGRST301": FailureClassification(ErrorCategory.AUTHENTICATION, "invalid_jwt", "JWT could not be decoded"),
  "PGRST302": FailureClassification(ErrorCategory.AUTHENTICATION, "anonymous_disabled", "Anonymous access disabled"),
  "PGRST303": FailureClassification(ErrorCategory.AUTHENTICATION, "jwt_claims_invalid", "JWT claims validation failed"),
  # Timeouts reported by Postgres
  "57014": FailureClassification(ErrorCategory.CONNECTIVITY, "query_timeout", "Statement canceled (timeout)"),
}

_NOT_FOUND_PHRASES = ("does not exist", "could not find", "not found")


def _classify_message(message: str) -> FailureClassification | None:
  lowered = message.lower()
  if "duplicate key" in lowered or "already exists" in lowered:
    return FailureClassification(ErrorCategory.CONSTRAINT, "unique_violation", "Duplicate key (message)")
  if "row-level security" in lowered or "permission denied" in lowered:
    return FailureClassification(ErrorCategory.PERMISSION, "insufficient_privilege", "Rejected by access rules (message)")
  if "jwt expired" in lowered or "invalid api key" in lowered or "invalid jwt" in lowered:
    return FailureClassification(ErrorCategory.AUTHENTICATION, "invalid_jwt", "Session or API key rejected (message)")

  if not any(phrase in lowered for phrase in _NOT_FOUND_PHRASES):
    return None
  # Most specific subject first: 'column "x" of relation "y" does not exist' is a column problem.
  if "column" in lowered:
    return FailureClassification(ErrorCategory.SCHEMA, "undefined_column", "Column not recognized (message)")
  if "function" in lowered:
    return FailureClassification(ErrorCategory.SCHEMA, "undefined_function", "Function not recognized (message)")
  if "relation" in lowered or "table" in lowered:
    return FailureClassification(ErrorCategory.SCHEMA, "undefined_table", "Relation not recognized (message)")
  return None


def _classify_status(status: int | None) -> FailureClassification:
  if status == 401:
    return FailureClassification(ErrorCategory.AUTHENTICATION, "unauthorized", "HTTP 401 from remote store")
  if status == 403:
    return FailureClassification(ErrorCategory.PERMISSION, "forbidden", "HTTP 403 from remote store")
  if status == 404:
    return FailureClassification(ErrorCategory.SCHEMA, "undefined_table", "HTTP 404 from remote store")
  if status == 409:
    return FailureClassification(ErrorCategory.CONSTRAINT, "conflict", "HTTP 409 from remote store")
  if status in {408, 502, 503, 504}:
    return FailureClassification(ErrorCategory.CONNECTIVITY, "gateway_unavailable", f"HTTP {status} from remote store")
  return FailureClassification(ErrorCategory.UNKNOWN, "unknown_error", f"Unclassified failure (HTTP {status})" if status else "Unclassified failure")


def classify_store_failure(*, code: str | None, message: str | None, status: int | None) -> FailureClassification:
  """
  Classify a remote store failure.

  Codes win over messages, messages win over HTTP status. Integrity violations other
  than duplicates are deliberately *not* constraint-class: dropping fields cannot fix
  them and they must not be mistaken for an already-present record.
  """
  normalized_code = (code or "").strip().upper() or None
  if normalized_code:
    known = _CODE_TABLE.get(normalized_code)
    if known is not None:
      return known
    if normalized_code in _INTEGRITY_KINDS:
      return FailureClassification(ErrorCategory.UNKNOWN, _INTEGRITY_KINDS[normalized_code], "Integrity violation")
    if normalized_code.startswith("28"):
      return FailureClassification(ErrorCategory.AUTHENTICATION, "invalid_authorization", "Authentication/authorization error")
    if normalized_code.startswith("08"):
      return FailureClassification(ErrorCategory.CONNECTIVITY, "connection_exception", "Database connection exception")

  if message:
    by_message = _classify_message(message)
    if by_message is not None:
      return by_message

  return _classify_status(status)


def failure_from_response(*, status: int, body: Any) -> StoreFailure:
  """Build a StoreFailure from an HTTP error response body (PostgREST or GoTrue shape)."""
  payload = body if isinstance(body, dict) else {}
  code = payload.get("code")
  code = str(code) if code is not None else None
  message = payload.get("message") or payload.get("msg") or payload.get("error_description") or payload.get("error")
  if not message:
    message = str(body)[:500] if body else f"HTTP {status}"
  classification = classify_store_failure(code=code, message=str(message), status=status)
  details = payload.get("details")
  hint = payload.get("hint")
  return StoreFailure(
    category=classification.category, kind=classification.kind, message=str(message), code=code, status=status, details=str(details) if details is not None else None, hint=str(hint) if hint is not None else None
  )


def connectivity_failure(message: str, *, kind: str = "network_error") -> StoreFailure:
  """Build a connectivity-class failure for transport errors and timeouts."""
  return StoreFailure(category=ErrorCategory.CONNECTIVITY, kind=kind, message=message)


def unexpected_failure(exc: BaseException) -> StoreFailure:
  """Wrap an unexpected exception so it can travel as data."""
  message = str(exc) or type(exc).__name__
  return StoreFailure(category=ErrorCategory.UNKNOWN, kind="unexpected_exception", message=f"{type(exc).__name__}: {message}")


class CatalogError(ValueError):
  """Raised when the static entity catalog is inconsistent."""


class LoadOrderError(RuntimeError):
  """Raised when an entity phase would run before one of its requested parents."""
