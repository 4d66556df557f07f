"""SQLAlchemy models describing the expected remote entities.

The models are never used through an engine; they exist so that reconciliation can
compile `CREATE TABLE` statements for the postgres dialect from one definition.
"""

from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
  pass


class Category(Base):
  __tablename__ = "categories"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
  industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  position: Mapped[int | None] = mapped_column(Integer, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AestheticCategory(Base):
  __tablename__ = "aesthetic_categories"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
  parent_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Company(Base):
  __tablename__ = "companies"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
  industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  website: Mapped[str | None] = mapped_column(String(255), nullable=True)
  headquarters: Mapped[str | None] = mapped_column(String(255), nullable=True)
  founded_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
  market_cap: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)
  ticker_symbol: Mapped[str | None] = mapped_column(String(50), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Region(Base):
  __tablename__ = "regions"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class DentalProcedure(Base):
  __tablename__ = "dental_procedures"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  procedure_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
  category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
  yearly_growth_percentage: Mapped[float | None] = mapped_column(Numeric(8, 2), nullable=True)
  market_size_2025_usd_millions: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)
  age_range: Mapped[str | None] = mapped_column(String(50), nullable=True)
  recent_trends: Mapped[str | None] = mapped_column(Text, nullable=True)
  future_outlook: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AestheticProcedure(Base):
  __tablename__ = "aesthetic_procedures"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
  category_id: Mapped[int | None] = mapped_column(ForeignKey("aesthetic_categories.id", ondelete="SET NULL"), nullable=True)
  yearly_growth_percentage: Mapped[float | None] = mapped_column(Numeric(8, 2), nullable=True)
  market_size_2025_usd_millions: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)
  age_range: Mapped[str | None] = mapped_column(String(50), nullable=True)
  recent_trends: Mapped[str | None] = mapped_column(Text, nullable=True)
  future_outlook: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ProcedureCompany(Base):
  __tablename__ = "procedure_companies"
  __table_args__ = (UniqueConstraint("procedure_id", "company_id", name="uq_procedure_companies_pair"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  procedure_id: Mapped[int] = mapped_column(ForeignKey("dental_procedures.id", ondelete="CASCADE"), nullable=False)
  company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DentalMarketGrowth(Base):
  __tablename__ = "dental_market_growth"
  __table_args__ = (UniqueConstraint("year", "region", name="uq_dental_market_growth_year_region"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  year: Mapped[int] = mapped_column(Integer, nullable=False)
  region: Mapped[str] = mapped_column(String(100), nullable=False)
  category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
  growth_rate: Mapped[float | None] = mapped_column(Numeric(8, 2), nullable=True)
  market_size_usd: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)
  is_projected: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
  currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default="USD")


class AestheticMarketGrowth(Base):
  __tablename__ = "aesthetic_market_growth"
  __table_args__ = (UniqueConstraint("year", "region", name="uq_aesthetic_market_growth_year_region"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  year: Mapped[int] = mapped_column(Integer, nullable=False)
  region: Mapped[str] = mapped_column(String(100), nullable=False)
  category_id: Mapped[int | None] = mapped_column(ForeignKey("aesthetic_categories.id", ondelete="SET NULL"), nullable=True)
  growth_rate: Mapped[float | None] = mapped_column(Numeric(8, 2), nullable=True)
  market_size_usd: Mapped[float | None] = mapped_column(Numeric(18, 2), nullable=True)
  is_projected: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
  currency: Mapped[str] = mapped_column(String(10), nullable=False, server_default="USD")


class PolicyProbe(Base):
  """Disposable table used only by the access-policy check."""

  __tablename__ = "rls_test"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
