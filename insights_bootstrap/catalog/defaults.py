"""The fixed catalog of entities the insights dashboard expects."""

from __future__ import annotations

from insights_bootstrap.catalog import tables
from insights_bootstrap.catalog.entities import Catalog, EntityDescriptor, ParentLink, Shape

# Procedure shapes: current column names first, then the legacy column names some
# deployments still carry, then the bare minimum that identifies the record.
# The outlook text is read from futureOutlook, falling back to outlook.
_PROCEDURE_FULL = {
  "yearly_growth_percentage": ("growth", "yearlyGrowthPercentage"),
  "market_size_2025_usd_millions": ("marketSize2025", "marketSize"),
  "age_range": ("primaryAgeGroup", "ageRange"),
  "recent_trends": ("trends", "recentTrends"),
  "future_outlook": ("futureOutlook", "outlook"),
}
_PROCEDURE_LEGACY = {
  "growth": ("growth", "yearlyGrowthPercentage"),
  "market_size_2025": ("marketSize2025", "marketSize"),
  "primary_age_group": ("primaryAgeGroup", "ageRange"),
  "trends": ("trends", "recentTrends"),
  "outlook": ("futureOutlook", "outlook"),
}

CATEGORIES = EntityDescriptor(
  name="categories",
  min_rows=2,
  natural_key=("name",),
  shapes=(
    Shape.of("full", {"name": "name", "industry": "industry", "description": "description", "position": "position"}),
    Shape.of("labelled", {"name": "name", "industry": "industry"}),
    Shape.of("minimal", {"name": "name"}),
  ),
  table=tables.Category.__table__,
  description="Dental procedure categories.",
)

AESTHETIC_CATEGORIES = EntityDescriptor(
  name="aesthetic_categories",
  min_rows=1,
  natural_key=("name",),
  shapes=(
    Shape.of("full", {"name": "name", "parent_category": ("parentCategory", "parent_category"), "description": "description"}),
    Shape.of("minimal", {"name": "name"}),
  ),
  table=tables.AestheticCategory.__table__,
  description="Aesthetic procedure categories.",
)

COMPANIES = EntityDescriptor(
  name="companies",
  min_rows=5,
  natural_key=("name",),
  shapes=(
    Shape.of(
      "full",
      {
        "name": "name",
        "industry": "industry",
        "description": ("description", "services"),
        "website": "website",
        "headquarters": "headquarters",
        "founded_year": ("foundedYear", "founded_year"),
        "market_cap": ("marketCap", "market_cap"),
        "ticker_symbol": ("tickerSymbol", "ticker"),
      },
    ),
    Shape.of("profile", {"name": "name", "industry": "industry", "description": ("description", "services")}),
    Shape.of("minimal", {"name": "name"}),
  ),
  table=tables.Company.__table__,
  description="Companies active in the dental and aesthetic markets.",
)

REGIONS = EntityDescriptor(
  name="regions",
  min_rows=1,
  natural_key=("name",),
  shapes=(Shape.of("full", {"name": "name"}),),
  table=tables.Region.__table__,
  description="Geographic regions referenced by market growth data.",
)

DENTAL_PROCEDURES = EntityDescriptor(
  name="dental_procedures",
  min_rows=5,
  natural_key=("procedure_name",),
  parents=(ParentLink(entity="categories", source_field="category", target_field="category_id"),),
  shapes=(
    Shape.of("full", {"procedure_name": "name", "category_id": "category_id", **_PROCEDURE_FULL}),
    Shape.of("legacy", {"procedure_name": "name", "category_id": "category_id", **_PROCEDURE_LEGACY}),
    Shape.of("minimal", {"procedure_name": "name", "category_id": "category_id"}),
  ),
  table=tables.DentalProcedure.__table__,
  description="Dental procedures with market metrics.",
)

AESTHETIC_PROCEDURES = EntityDescriptor(
  name="aesthetic_procedures",
  min_rows=1,
  natural_key=("name",),
  parents=(ParentLink(entity="aesthetic_categories", source_field="category", target_field="category_id"),),
  shapes=(
    Shape.of("full", {"name": "name", "category_id": "category_id", **_PROCEDURE_FULL}),
    Shape.of("legacy", {"name": "name", "category_id": "category_id", **_PROCEDURE_LEGACY}),
    Shape.of("minimal", {"name": "name", "category_id": "category_id"}),
  ),
  table=tables.AestheticProcedure.__table__,
  description="Aesthetic procedures with market metrics.",
)

PROCEDURE_COMPANIES = EntityDescriptor(
  name="procedure_companies",
  min_rows=0,
  natural_key=("procedure_id", "company_id"),
  parents=(
    ParentLink(entity="dental_procedures", source_field="procedure", target_field="procedure_id", parent_key="procedure_name"),
    ParentLink(entity="companies", source_field="company", target_field="company_id"),
  ),
  shapes=(Shape.of("full", {"procedure_id": "procedure_id", "company_id": "company_id"}),),
  table=tables.ProcedureCompany.__table__,
  description="Links between dental procedures and the companies offering them.",
)

_GROWTH_SHAPES = (
  Shape.of(
    "full",
    {
      "year": "year",
      "region": "region",
      "category_id": "category_id",
      "growth_rate": ("growthRate", "growth_rate"),
      "market_size_usd": ("marketSize", "size"),
      "is_projected": "isProjected",
    },
  ),
  Shape.of("legacy", {"year": "year", "region": "region", "growth_rate": ("growthRate", "growth_rate"), "market_size": ("marketSize", "size")}),
  Shape.of("minimal", {"year": "year", "region": "region"}),
)

DENTAL_MARKET_GROWTH = EntityDescriptor(
  name="dental_market_growth",
  min_rows=3,
  natural_key=("year", "region"),
  parents=(ParentLink(entity="categories", source_field="category", target_field="category_id", required=False),),
  shapes=_GROWTH_SHAPES,
  table=tables.DentalMarketGrowth.__table__,
  description="Yearly dental market growth by region.",
)

AESTHETIC_MARKET_GROWTH = EntityDescriptor(
  name="aesthetic_market_growth",
  min_rows=3,
  natural_key=("year", "region"),
  parents=(ParentLink(entity="aesthetic_categories", source_field="category", target_field="category_id", required=False),),
  shapes=_GROWTH_SHAPES,
  table=tables.AestheticMarketGrowth.__table__,
  description="Yearly aesthetic market growth by region.",
)

DEFAULT_CATALOG = Catalog(
  [
    CATEGORIES,
    AESTHETIC_CATEGORIES,
    COMPANIES,
    REGIONS,
    DENTAL_PROCEDURES,
    AESTHETIC_PROCEDURES,
    PROCEDURE_COMPANIES,
    DENTAL_MARKET_GROWTH,
    AESTHETIC_MARKET_GROWTH,
  ]
)
