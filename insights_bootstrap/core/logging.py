import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from insights_bootstrap.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

_LOG_FILE_PATH: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Formatter that truncates the stack trace to the last few lines."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    # Keep header + last 5 lines of traceback
    if len(lines) > 6:
      return "".join(lines[:1] + ["    ...\n"] + lines[-5:])
    return "".join(lines)


def _backup_namer(default_name: str) -> str:
  """Name rotated files run.log-1 instead of run.log.1."""
  base, _, suffix = default_name.rpartition(".")
  if suffix.isdigit():
    return f"{base}-{suffix}"
  return default_name


def _build_handlers(settings: Settings, *, prefix: str) -> tuple[logging.Handler, logging.Handler, Path]:
  """Create a stdout handler and a rotating per-run file handler."""
  log_dir = Path(settings.log_dir).expanduser().resolve()
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log directory at {log_dir}: {exc}") from exc

  # One file per run so every bootstrap pass leaves its own audit trail.
  log_path = log_dir / f"{prefix}_{time.strftime('%Y%m%d_%H%M%S')}.log"
  try:
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log file at {log_path}: {exc}") from exc

  stream = logging.StreamHandler(sys.stderr)
  stream.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))

  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _backup_namer
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return stream, file_handler, log_path


def setup_logging(settings: Settings, *, prefix: str = "bootstrap") -> Path:
  """Route the root logger and the uvicorn loggers through the run handlers."""
  global _LOG_FILE_PATH
  if _LOG_FILE_PATH is not None:
    return _LOG_FILE_PATH

  stream_handler, file_handler, log_path = _build_handlers(settings, prefix=prefix)
  for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
    log = logging.getLogger(logger_name)
    log.handlers = [stream_handler, file_handler]
    log.propagate = False

  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=[stream_handler, file_handler], force=True)
  # httpx logs every request at INFO; keep it out of run logs unless debugging.
  logging.getLogger("httpx").setLevel(logging.DEBUG if settings.debug else logging.WARNING)

  _LOG_FILE_PATH = log_path
  logging.getLogger(__name__).info("Logging initialized. Writing to %s", log_path)
  return log_path
