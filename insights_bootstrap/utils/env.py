"""Minimal .env support so CLI runs and the status service share one configuration source."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_paths() -> tuple[Path, ...]:
  """Return candidate .env files, most specific first."""
  # The working directory wins over the checkout root so operators can keep per-target files.
  repo_root = Path(__file__).resolve().parents[2]
  cwd_env = Path.cwd() / ".env"
  root_env = repo_root / ".env"
  if cwd_env == root_env:
    return (root_env,)
  return (cwd_env, root_env)


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
  """Split one .env line into a key/value pair, or None for blanks and comments."""
  line = raw_line.strip()
  if not line or line.startswith("#"):
    return None
  if line.startswith("export "):
    line = line[len("export ") :].lstrip()
  key, sep, value = line.partition("=")
  key = key.strip()
  if not sep or not key:
    return None
  value = value.strip()
  # Strip one level of matching quotes.
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    value = value[1:-1]
  return key, value


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Load key=value pairs from a .env file into the process environment and return the keys applied."""
  if not path.is_file():
    return []

  applied: list[str] = []
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    parsed = _parse_env_line(raw_line)
    if parsed is None:
      continue
    key, value = parsed
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied


def load_default_env_files() -> list[str]:
  """Load every default .env candidate without overriding values already set."""
  applied: list[str] = []
  for path in default_env_paths():
    applied.extend(load_env_file(path, override=False))
  return applied
