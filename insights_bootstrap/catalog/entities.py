"""Entity descriptors: the only schema knowledge the pipeline hard-codes."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table

from insights_bootstrap.core.errors import CatalogError


@dataclass(frozen=True)
class Shape:
  """One candidate field set used when inserting a record.

  Each target column lists candidate source keys; the first key present in the record wins.
  Columns whose sources are all absent are left out of the payload rather than sent as null.
  """

  name: str
  fields: tuple[tuple[str, tuple[str, ...]], ...]

  @classmethod
  def of(cls, name: str, mapping: Mapping[str, str | Sequence[str]]) -> Shape:
    frozen = tuple((target, (sources,) if isinstance(sources, str) else tuple(sources)) for target, sources in mapping.items())
    return cls(name=name, fields=frozen)

  @property
  def columns(self) -> tuple[str, ...]:
    return tuple(target for target, _ in self.fields)

  def project(self, record: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for target, sources in self.fields:
      for source in sources:
        if source in record:
          payload[target] = record[source]
          break
    return payload


@dataclass(frozen=True)
class ParentLink:
  """Declares that records of an entity reference a parent entity by natural key."""

  entity: str
  source_field: str
  target_field: str
  parent_key: str = "name"
  required: bool = True


@dataclass(frozen=True)
class EntityDescriptor:
  """Static description of one expected entity."""

  name: str
  min_rows: int
  shapes: tuple[Shape, ...]
  natural_key: tuple[str, ...]
  parents: tuple[ParentLink, ...] = ()
  table: Table | None = field(default=None, compare=False, repr=False)
  description: str = ""

  def __post_init__(self) -> None:
    if not self.shapes:
      raise CatalogError(f"Entity {self.name!r} declares no shapes.")
    if not self.natural_key:
      raise CatalogError(f"Entity {self.name!r} declares no natural key.")
    if self.min_rows < 0:
      raise CatalogError(f"Entity {self.name!r} has a negative minimum row count.")
    # Every shape, down to the minimal one, must still identify the record.
    for shape in self.shapes:
      missing = [column for column in self.natural_key if column not in shape.columns]
      if missing:
        raise CatalogError(f"Shape {shape.name!r} of {self.name!r} omits natural key column(s): {', '.join(missing)}")
    if self.table is not None and self.table.name != self.name:
      raise CatalogError(f"Entity {self.name!r} is bound to table {self.table.name!r}.")

  @property
  def is_lookup(self) -> bool:
    return not self.parents

  @property
  def parent_names(self) -> tuple[str, ...]:
    return tuple(link.entity for link in self.parents)

  @property
  def full_shape(self) -> Shape:
    return self.shapes[0]

  def natural_key_value(self, record: Mapping[str, Any]) -> tuple[Any, ...] | None:
    """Return the natural key of a resolved record, or None when a key column is absent."""
    payload = self.full_shape.project(record)
    if any(column not in payload for column in self.natural_key):
      return None
    return tuple(payload[column] for column in self.natural_key)

  def natural_key_from_row(self, row: Mapping[str, Any]) -> tuple[Any, ...] | None:
    """Return the natural key of a row read back from the store."""
    if any(column not in row for column in self.natural_key):
      return None
    return tuple(row[column] for column in self.natural_key)


class Catalog:
  """Ordered, validated collection of entity descriptors."""

  def __init__(self, descriptors: Iterable[EntityDescriptor]) -> None:
    self._descriptors = tuple(descriptors)
    self._by_name: dict[str, EntityDescriptor] = {}
    for descriptor in self._descriptors:
      if descriptor.name in self._by_name:
        raise CatalogError(f"Entity {descriptor.name!r} is declared twice.")
      self._by_name[descriptor.name] = descriptor

    for descriptor in self._descriptors:
      for link in descriptor.parents:
        if link.entity not in self._by_name:
          raise CatalogError(f"Entity {descriptor.name!r} depends on unknown entity {link.entity!r}.")
        if link.entity == descriptor.name:
          raise CatalogError(f"Entity {descriptor.name!r} depends on itself.")

    self._order = self._topological_order()

  def _topological_order(self) -> tuple[EntityDescriptor, ...]:
    """Order entities parents-first, breaking ties by declaration order."""
    emitted: list[EntityDescriptor] = []
    emitted_names: set[str] = set()
    pending = list(self._descriptors)
    while pending:
      # First ready entity in declaration order keeps run logs reproducible.
      ready = next((item for item in pending if all(parent in emitted_names for parent in item.parent_names)), None)
      if ready is None:
        cycle = ", ".join(item.name for item in pending)
        raise CatalogError(f"Entity dependencies contain a cycle among: {cycle}")
      emitted.append(ready)
      emitted_names.add(ready.name)
      pending.remove(ready)
    return tuple(emitted)

  def __iter__(self) -> Iterator[EntityDescriptor]:
    return iter(self._descriptors)

  def __len__(self) -> int:
    return len(self._descriptors)

  def __contains__(self, name: object) -> bool:
    return name in self._by_name

  @property
  def names(self) -> tuple[str, ...]:
    return tuple(descriptor.name for descriptor in self._descriptors)

  def get(self, name: str) -> EntityDescriptor:
    try:
      return self._by_name[name]
    except KeyError:
      raise CatalogError(f"Entity {name!r} is not part of the catalog.") from None

  def topological_order(self) -> tuple[EntityDescriptor, ...]:
    return self._order

  def order(self, names: Iterable[str]) -> tuple[EntityDescriptor, ...]:
    """Return the requested entities in topological order, whatever order they were given in."""
    requested = set(names)
    unknown = sorted(requested - set(self._by_name))
    if unknown:
      raise CatalogError(f"Unknown entities requested: {', '.join(unknown)}")
    return tuple(descriptor for descriptor in self._order if descriptor.name in requested)

  def children_of(self, name: str) -> tuple[EntityDescriptor, ...]:
    return tuple(descriptor for descriptor in self._order if name in descriptor.parent_names)

  def has_children(self, name: str) -> bool:
    return any(name in descriptor.parent_names for descriptor in self._descriptors)
