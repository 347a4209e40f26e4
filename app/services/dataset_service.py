"""
app/services/dataset_service.py

Loads the companies dataset, caching it in the key-value store.

The flat-file source is only consulted when the cache is empty; after the
first successful parse the serialized rows are written back so later loads
come straight from the store.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Protocol, Sequence

import pandas as pd
from pydantic import TypeAdapter, ValidationError

from app.domain.company import CompanyRecord
from app.errors import PersistenceFailure
from db.repositories.kv_repository import KeyValueStore

logger = logging.getLogger(__name__)

DATASET_KEY = "saas_companies_data"

_CompanyListAdapter = TypeAdapter(list[CompanyRecord])
_LEADING_INT = re.compile(r"^\s*-?\d+")
_LEADING_FLOAT = re.compile(r"^\s*-?\d+(?:\.\d+)?")

# Column order of the companies CSV export
_CSV_COLUMNS = (
    "name",
    "founded_year",
    "hq",
    "industry",
    "total_funding",
    "arr",
    "valuation",
    "employees",
    "top_investors",
    "product",
    "g2_rating",
)


class CompanySource(Protocol):
    def load(self) -> list[CompanyRecord]: ...


def _parse_int(raw: str) -> int:
    match = _LEADING_INT.match(raw or "")
    return int(match.group()) if match else 0


def _parse_rating(raw: str) -> float:
    match = _LEADING_FLOAT.match(raw or "")
    if not match:
        return 0.0
    return min(5.0, max(0.0, float(match.group())))


class CSVCompanySource:
    """
    Reads the companies CSV export by column position.

    Row ids are assigned 1..n in file order. Missing magnitude fields become
    "N/A", missing employee counts "0"; quotes are stripped from hq and
    employees. The product text doubles as the description.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> list[CompanyRecord]:
        frame = pd.read_csv(
            self._path,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
        ).fillna("")

        records: list[CompanyRecord] = []
        for index, row in enumerate(frame.itertuples(index=False, name=None)):
            values = [str(value).strip() for value in row]
            values += [""] * (len(_CSV_COLUMNS) - len(values))
            fields = dict(zip(_CSV_COLUMNS, values))
            records.append(
                CompanyRecord(
                    id=str(index + 1),
                    name=fields["name"],
                    founded_year=_parse_int(fields["founded_year"]),
                    hq=fields["hq"].replace('"', ""),
                    industry=fields["industry"],
                    total_funding=fields["total_funding"] or "N/A",
                    arr=fields["arr"] or "N/A",
                    valuation=fields["valuation"] or "N/A",
                    employees=fields["employees"].replace('"', "") or "0",
                    top_investors=fields["top_investors"],
                    product=fields["product"],
                    g2_rating=_parse_rating(fields["g2_rating"]),
                    description=fields["product"],
                )
            )
        logger.info("Parsed %d companies from %s", len(records), self._path)
        return records


class DatasetService:
    """
    Dataset track backend: cache-first load, source on miss.
    """

    def __init__(self, store: KeyValueStore, source: CompanySource | None = None) -> None:
        self._store = store
        self._source = source

    async def load_companies(self) -> list[CompanyRecord]:
        """
        Return the cached dataset, loading and caching it from the source
        when the cache is empty.

        Raises:
            PersistenceFailure: If the cache is unreadable or corrupt, or the
                cache is empty and the source is missing or fails.
        """

        cached = await self._store.get(DATASET_KEY)
        if cached is not None:
            try:
                return _CompanyListAdapter.validate_json(cached)
            except ValidationError as exc:
                raise PersistenceFailure(
                    f"Cached dataset is corrupt: {exc.error_count()} validation error(s)",
                    stage="dataset_cache",
                ) from exc

        if self._source is None:
            raise PersistenceFailure("No cached dataset and no dataset source configured", stage="dataset_source")

        try:
            companies = await asyncio.to_thread(self._source.load)
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            raise PersistenceFailure(f"Failed to load dataset: {exc}", stage="dataset_source") from exc

        await self.save_companies(companies)
        return companies

    async def save_companies(self, companies: Sequence[CompanyRecord]) -> None:
        payload = _CompanyListAdapter.dump_json(list(companies)).decode("utf-8")
        await self._store.set(DATASET_KEY, payload)
