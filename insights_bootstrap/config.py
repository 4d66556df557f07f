"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from insights_bootstrap.utils.env import load_default_env_files

load_default_env_files()


@dataclass(frozen=True)
class Settings:
  """Typed settings for the bootstrap pipeline, its CLI and the status service."""

  environment: str
  debug: bool
  store_url: str | None
  store_key: str | None
  store_timeout_seconds: float
  exec_function: str
  auth_email: str | None
  auth_password: str | None
  verify_concurrency: int
  load_concurrency: int
  scratch_entity: str
  feed_path: str | None
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  ops_secret: str | None

  @property
  def has_credentials(self) -> bool:
    """Return True when a stored sign-in credential pair is configured."""
    return bool(self.auth_email and self.auth_password)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _first_env(*names: str) -> str | None:
  """Return the first non-empty value among several env var names."""
  # Accept the dashboard's historical variable names alongside the INSIGHTS_ prefix.
  for name in names:
    value = _optional_str(os.getenv(name))
    if value:
      return value
  return None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("INSIGHTS_ENV", "development").strip().lower()
  debug = _parse_bool(os.getenv("INSIGHTS_DEBUG"))

  store_url = _first_env("INSIGHTS_STORE_URL", "SUPABASE_URL", "VITE_SUPABASE_URL")
  if store_url and not store_url.startswith(("http://", "https://")):
    raise ValueError("INSIGHTS_STORE_URL must start with 'http://' or 'https://'.")

  # Prefer the service key so reconciliation statements are not blocked by row-level policies.
  store_key = _first_env("INSIGHTS_STORE_KEY", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY")

  store_timeout_seconds = float(os.getenv("INSIGHTS_STORE_TIMEOUT_SECONDS", "15"))
  if store_timeout_seconds <= 0:
    raise ValueError("INSIGHTS_STORE_TIMEOUT_SECONDS must be positive.")

  exec_function = (os.getenv("INSIGHTS_EXEC_FUNCTION") or "execute_sql").strip()
  if not exec_function.replace("_", "").isalnum():
    raise ValueError("INSIGHTS_EXEC_FUNCTION must be a plain function name.")

  verify_concurrency = _positive_int("INSIGHTS_VERIFY_CONCURRENCY", "4")
  load_concurrency = _positive_int("INSIGHTS_LOAD_CONCURRENCY", "5")

  scratch_entity = (os.getenv("INSIGHTS_SCRATCH_ENTITY") or "rls_test").strip()
  if not scratch_entity.replace("_", "").isalnum():
    raise ValueError("INSIGHTS_SCRATCH_ENTITY must be a plain table name.")

  log_max_bytes = _positive_int("INSIGHTS_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("INSIGHTS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("INSIGHTS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    store_url=store_url,
    store_key=store_key,
    store_timeout_seconds=store_timeout_seconds,
    exec_function=exec_function,
    auth_email=_first_env("INSIGHTS_AUTH_EMAIL", "VITE_SUPABASE_USER"),
    auth_password=_first_env("INSIGHTS_AUTH_PASSWORD", "VITE_SUPABASE_PASSWORD"),
    verify_concurrency=verify_concurrency,
    load_concurrency=load_concurrency,
    scratch_entity=scratch_entity,
    feed_path=_optional_str(os.getenv("INSIGHTS_FEED_PATH")),
    log_dir=(os.getenv("INSIGHTS_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    ops_secret=_optional_str(os.getenv("INSIGHTS_OPS_SECRET")),
  )
