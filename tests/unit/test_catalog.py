"""Unit tests for entity descriptors, the default catalog, DDL builders and feeds."""

from __future__ import annotations

import json

import pytest

from insights_bootstrap.catalog import ddl
from insights_bootstrap.catalog.defaults import DEFAULT_CATALOG
from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor, ParentLink, Shape
from insights_bootstrap.catalog.feed import DEFAULT_FEED_PATH, JsonRecordFeed, StaticRecordFeed, default_feed_path, unknown_feed_entities
from insights_bootstrap.core.errors import CatalogError


def _entity(name: str, *parents: str) -> EntityDescriptor:
  return EntityDescriptor(name=name, min_rows=0, natural_key=("name",), shapes=(Shape.of("full", {"name": "name"}),), parents=tuple(ParentLink(entity=parent, source_field=parent, target_field=f"{parent}_id") for parent in parents))


def test_shape_projects_first_present_source() -> None:
  shape = Shape.of("full", {"future_outlook": ("futureOutlook", "outlook"), "name": "name", "missing": "absent"})
  assert shape.project({"name": "Implants", "outlook": "old", "futureOutlook": "new"}) == {"future_outlook": "new", "name": "Implants"}
  assert shape.project({"name": "Implants", "outlook": "old"}) == {"future_outlook": "old", "name": "Implants"}


def test_topological_order_breaks_ties_by_declaration() -> None:
  catalog = Catalog([_entity("child", "parent_b"), _entity("parent_a"), _entity("parent_b"), _entity("grandchild", "child", "parent_a")])
  assert [item.name for item in catalog.topological_order()] == ["parent_a", "parent_b", "child", "grandchild"]


def test_order_resorts_requested_names() -> None:
  catalog = Catalog([_entity("parent"), _entity("child", "parent")])
  assert [item.name for item in catalog.order(["child", "parent"])] == ["parent", "child"]
  with pytest.raises(CatalogError):
    catalog.order(["nope"])


def test_catalog_rejects_cycles_and_unknown_parents() -> None:
  with pytest.raises(CatalogError):
    Catalog([_entity("a", "b"), _entity("b", "a")])
  with pytest.raises(CatalogError):
    Catalog([_entity("a", "ghost")])
  with pytest.raises(CatalogError):
    Catalog([_entity("a"), _entity("a")])


def test_every_shape_must_keep_the_natural_key() -> None:
  with pytest.raises(CatalogError):
    EntityDescriptor(name="x", min_rows=0, natural_key=("name",), shapes=(Shape.of("full", {"name": "name"}), Shape.of("bad", {"label": "label"})))


def test_default_catalog_parents_come_first() -> None:
  order = [item.name for item in DEFAULT_CATALOG.topological_order()]
  for descriptor in DEFAULT_CATALOG:
    for parent in descriptor.parent_names:
      assert order.index(parent) < order.index(descriptor.name)
  assert all(descriptor.table is not None for descriptor in DEFAULT_CATALOG)


def test_procedure_shapes_prefer_future_outlook() -> None:
  procedures = DEFAULT_CATALOG.get("dental_procedures")
  assert "future_outlook" in procedures.shapes[0].columns
  assert "outlook" in procedures.shapes[1].columns
  assert procedures.shapes[-1].columns == ("procedure_name", "category_id")


def test_create_statement_is_idempotent_postgres_ddl() -> None:
  statement = ddl.create_statement_for(DEFAULT_CATALOG.get("dental_procedures"))
  assert statement.startswith("CREATE TABLE IF NOT EXISTS dental_procedures")
  assert "REFERENCES categories (id)" in statement
  assert "SERIAL" in statement


def test_read_policy_tolerates_existing_policy() -> None:
  statement = ddl.read_policy_statement("companies")
  assert "CREATE POLICY companies_public_read ON public.companies FOR SELECT" in statement
  assert "EXCEPTION WHEN duplicate_object" in statement
  assert ddl.enable_row_security_statement("companies") == "ALTER TABLE public.companies ENABLE ROW LEVEL SECURITY;"


def test_scratch_statements_follow_configured_name() -> None:
  statements = ddl.scratch_entity_statements("policy_scratch")
  assert statements[0].startswith("CREATE TABLE IF NOT EXISTS policy_scratch")
  assert any("WITH CHECK (true)" in statement for statement in statements)


def test_bundled_feed_meets_minimum_rows() -> None:
  feed = JsonRecordFeed.from_path(default_feed_path())
  assert unknown_feed_entities(feed, DEFAULT_CATALOG) == []
  for descriptor in DEFAULT_CATALOG:
    assert len(feed.records_for(descriptor.name)) >= descriptor.min_rows, descriptor.name


def test_feed_rejects_unknown_top_level_fields(tmp_path) -> None:
  path = tmp_path / "feed.json"
  path.write_text(json.dumps({"entities": {}, "extra": 1}))
  with pytest.raises(ValueError):
    JsonRecordFeed.from_path(path)


def test_feed_paths_and_static_feed() -> None:
  assert default_feed_path() == DEFAULT_FEED_PATH
  assert str(default_feed_path("/tmp/feed.json")) == "/tmp/feed.json"
  feed = StaticRecordFeed({"category": [{"label": "Preventive"}]})
  records = feed.records_for("category")
  records[0]["label"] = "changed"
  assert feed.records_for("category") == [{"label": "Preventive"}]
  assert feed.records_for("unknown") == []
