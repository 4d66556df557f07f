"""Reference record feeds consumed by the loader."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Annotated, Any, Protocol

import msgspec

from insights_bootstrap.catalog.entities import Catalog

logger = logging.getLogger(__name__)

DEFAULT_FEED_PATH = Path(__file__).with_name("reference_feed.json")


class FeedDocument(msgspec.Struct, forbid_unknown_fields=True):
  """On-disk layout of a reference feed: records grouped by entity name."""

  entities: dict[str, list[dict[str, Any]]]
  version: Annotated[int, msgspec.Meta(ge=1)] = 1
  source: str | None = None


class RecordFeed(Protocol):
  """Source of raw records per entity."""

  def records_for(self, entity: str) -> list[dict[str, Any]]:
    """Return the records for one entity (empty when the feed has none)."""
    ...


class StaticRecordFeed:
  """In-memory feed, mainly for tests and embedding."""

  def __init__(self, records: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
    self._records = {name: [dict(record) for record in items] for name, items in records.items()}

  def records_for(self, entity: str) -> list[dict[str, Any]]:
    return [dict(record) for record in self._records.get(entity, [])]

  @property
  def entity_names(self) -> tuple[str, ...]:
    return tuple(self._records)


class JsonRecordFeed(StaticRecordFeed):
  """Feed decoded from a JSON document on disk."""

  def __init__(self, document: FeedDocument, *, path: Path | None = None) -> None:
    super().__init__(document.entities)
    self.path = path
    self.source = document.source

  @classmethod
  def from_bytes(cls, payload: bytes, *, path: Path | None = None) -> JsonRecordFeed:
    try:
      document = msgspec.json.decode(payload, type=FeedDocument)
    except msgspec.ValidationError as exc:
      raise ValueError(f"Invalid reference feed{f' at {path}' if path else ''}: {exc}") from exc
    except msgspec.DecodeError as exc:
      raise ValueError(f"Reference feed{f' at {path}' if path else ''} is not valid JSON: {exc}") from exc
    return cls(document, path=path)

  @classmethod
  def from_path(cls, path: str | Path) -> JsonRecordFeed:
    resolved = Path(path).expanduser()
    try:
      payload = resolved.read_bytes()
    except OSError as exc:
      raise ValueError(f"Failed to read reference feed at {resolved}: {exc}") from exc
    feed = cls.from_bytes(payload, path=resolved)
    logger.info("Loaded reference feed path=%s entities=%s", resolved, len(feed.entity_names))
    return feed


def default_feed_path(configured: str | None = None) -> Path:
  """Return the configured feed path, or the feed shipped with the package."""
  if configured:
    return Path(configured).expanduser()
  return DEFAULT_FEED_PATH


def unknown_feed_entities(feed: StaticRecordFeed, catalog: Catalog) -> list[str]:
  """Return entity names present in the feed that the catalog does not declare."""
  return sorted(name for name in feed.entity_names if name not in catalog)
