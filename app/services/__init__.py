"""
app/services package marker.
"""

from app.services.collection_service import COLLECTION_KEY, VisualizationCollectionService
from app.services.dataset_service import (
    DATASET_KEY,
    CompanySource,
    CSVCompanySource,
    DatasetService,
)

__all__ = [
    "COLLECTION_KEY",
    "VisualizationCollectionService",
    "DATASET_KEY",
    "CompanySource",
    "CSVCompanySource",
    "DatasetService",
]
