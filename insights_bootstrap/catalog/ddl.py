"""Statement builders used by schema reconciliation."""

from __future__ import annotations

from sqlalchemy import MetaData, Table
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from insights_bootstrap.catalog.entities import EntityDescriptor
from insights_bootstrap.catalog.tables import PolicyProbe

_DIALECT = postgresql.dialect()


def quote_identifier(name: str) -> str:
  """Quote an identifier the way postgres expects."""
  return _DIALECT.identifier_preparer.quote(name)


def _qualified(name: str, schema: str) -> str:
  return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def create_table_statement(table: Table) -> str:
  """Compile an idempotent CREATE TABLE for the postgres dialect."""
  # Compile once per call; the statement is sent as text through the statement function.
  compiled = CreateTable(table, if_not_exists=True).compile(dialect=_DIALECT)
  return str(compiled).strip() + ";"


def create_statement_for(descriptor: EntityDescriptor) -> str:
  if descriptor.table is None:
    raise ValueError(f"Entity {descriptor.name!r} has no table definition to create from.")
  return create_table_statement(descriptor.table)


def enable_row_security_statement(name: str, *, schema: str = "public") -> str:
  return f"ALTER TABLE {_qualified(name, schema)} ENABLE ROW LEVEL SECURITY;"


def read_policy_name(name: str) -> str:
  return f"{name}_public_read"


def read_policy_statement(name: str, *, schema: str = "public") -> str:
  """Build a permissive SELECT policy; re-running it is a no-op."""
  policy = quote_identifier(read_policy_name(name))
  return (
    "DO $$\n"
    "BEGIN\n"
    f"  CREATE POLICY {policy} ON {_qualified(name, schema)} FOR SELECT TO anon, authenticated USING (true);\n"
    "EXCEPTION WHEN duplicate_object THEN\n"
    "  NULL;\n"
    "END $$;"
  )


def scratch_table(name: str) -> Table:
  """Return the policy-check table definition under the configured name."""
  if name == PolicyProbe.__tablename__:
    return PolicyProbe.__table__
  return PolicyProbe.__table__.to_metadata(MetaData(), name=name)


def scratch_entity_statements(name: str, *, schema: str = "public") -> list[str]:
  """Statements that create the scratch entity and open it for the check write and read."""
  qualified = _qualified(name, schema)
  policy = quote_identifier(f"{name}_full_access")
  return [
    create_table_statement(scratch_table(name)),
    enable_row_security_statement(name, schema=schema),
    f"DROP POLICY IF EXISTS {policy} ON {qualified};",
    f"CREATE POLICY {policy} ON {qualified} USING (true) WITH CHECK (true);",
  ]
