"""Unit tests for remote store failure classification."""

from __future__ import annotations

import pytest

from insights_bootstrap.core.errors import ErrorCategory, classify_store_failure, connectivity_failure, failure_from_response, unexpected_failure


@pytest.mark.parametrize(
  ("code", "category", "kind"),
  [
    ("42P01", ErrorCategory.SCHEMA, "undefined_table"),
    ("PGRST205", ErrorCategory.SCHEMA, "undefined_table"),
    ("42703", ErrorCategory.SCHEMA, "undefined_column"),
    ("PGRST204", ErrorCategory.SCHEMA, "undefined_column"),
    ("42883", ErrorCategory.SCHEMA, "undefined_function"),
    ("23505", ErrorCategory.CONSTRAINT, "unique_violation"),
    ("23503", ErrorCategory.UNKNOWN, "foreign_key_violation"),
    ("42501", ErrorCategory.PERMISSION, "insufficient_privilege"),
    ("PGRST301", ErrorCategory.AUTHENTICATION, "invalid_jwt"),
    ("28P01", ErrorCategory.AUTHENTICATION, "invalid_authorization"),
    ("57014", ErrorCategory.CONNECTIVITY, "query_timeout"),
    ("08006", ErrorCategory.CONNECTIVITY, "connection_exception"),
  ],
)
def test_codes_take_precedence(code: str, category: ErrorCategory, kind: str) -> None:
  """Codes decide the category even when the message suggests something else."""
  classification = classify_store_failure(code=code, message="duplicate key value", status=500)
  assert classification.category is category
  assert classification.kind == kind


def test_messages_classify_when_code_is_unknown() -> None:
  assert classify_store_failure(code=None, message='column "outlook" of relation "procedures" does not exist', status=400).kind == "undefined_column"
  assert classify_store_failure(code=None, message="function public.execute_sql(text) does not exist", status=404).kind == "undefined_function"
  assert classify_store_failure(code=None, message='relation "regions" does not exist', status=404).kind == "undefined_table"
  assert classify_store_failure(code="XX000", message="new row violates row-level security policy", status=400).category is ErrorCategory.PERMISSION


def test_http_status_is_the_last_resort() -> None:
  assert classify_store_failure(code=None, message="boom", status=401).category is ErrorCategory.AUTHENTICATION
  assert classify_store_failure(code=None, message="boom", status=503).category is ErrorCategory.CONNECTIVITY
  assert classify_store_failure(code=None, message="boom", status=500).category is ErrorCategory.UNKNOWN


def test_failure_from_response_keeps_raw_detail() -> None:
  failure = failure_from_response(status=409, body={"code": "23505", "message": "duplicate key", "details": "Key (name)=(Preventive) already exists.", "hint": None})
  assert failure.is_duplicate
  assert not failure.is_schema_mismatch
  assert failure.details == "Key (name)=(Preventive) already exists."
  assert failure.as_dict()["code"] == "23505"
  assert failure.describe().startswith("[constraint/unique_violation] 23505")


def test_failure_from_non_json_body() -> None:
  failure = failure_from_response(status=502, body="<html>Bad gateway</html>")
  assert failure.category is ErrorCategory.CONNECTIVITY
  assert "Bad gateway" in failure.message


def test_gotrue_error_shape() -> None:
  failure = failure_from_response(status=400, body={"error": "invalid_grant", "error_description": "Invalid login credentials"})
  assert failure.message == "Invalid login credentials"


def test_helpers() -> None:
  assert connectivity_failure("down", kind="timeout").kind == "timeout"
  wrapped = unexpected_failure(KeyError("id"))
  assert wrapped.category is ErrorCategory.UNKNOWN
  assert wrapped.message.startswith("KeyError")
