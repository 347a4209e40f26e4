"""
app/domain/company.py

Dataset row model for the SaaS companies table.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

_FIELD_DESCRIPTIONS: dict[str, str] = {
    "id": "string, row identifier",
    "name": "string, company name",
    "founded_year": "int, year founded (0 when unknown)",
    "hq": "string, headquarters location",
    "industry": "string, industry category",
    "total_funding": "string, funding raised with K/M/B/T suffix, e.g. '$1.5M', or 'N/A'",
    "arr": "string, annual recurring revenue with K/M/B/T suffix, e.g. '$2B', or 'N/A'",
    "valuation": "string, company valuation with K/M/B/T suffix, or 'N/A'",
    "employees": "string, employee count that may contain commas, e.g. '7,388'",
    "top_investors": "string, comma-separated key investors",
    "product": "string, main product or service",
    "g2_rating": "float, G2 rating out of 5 (0 when unknown)",
    "description": "string, short description",
}


class CompanyRecord(BaseModel):
    """One row of the companies dataset. Immutable once loaded."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    id: str = Field(min_length=1)
    name: str
    founded_year: int = 0
    hq: str = ""
    industry: str = ""
    total_funding: str = "N/A"
    arr: str = "N/A"
    valuation: str = "N/A"
    employees: str = "0"
    top_investors: str = ""
    product: str = ""
    g2_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    description: str = ""

    @classmethod
    def schema_lines(cls) -> list[str]:
        """Human-readable field list used in prompts."""
        return [
            f"- {name}: {_FIELD_DESCRIPTIONS.get(name, 'value')}"
            for name in cls.model_fields
        ]
