"""
Shared fixtures.
"""

from __future__ import annotations

import pytest

from app.domain.company import CompanyRecord
from tests.factories import make_company


@pytest.fixture()
def companies() -> list[CompanyRecord]:
    """Four companies: SaaS x2, FinTech, HealthTech, in that first-seen order."""
    return [
        make_company(1, "SaaS"),
        make_company(2, "FinTech"),
        make_company(3, "HealthTech"),
        make_company(4, "SaaS"),
    ]
