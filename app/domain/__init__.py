"""
app/domain package marker.
"""

from app.domain.company import CompanyRecord
from app.domain.visualization import (
    ArtifactListAdapter,
    CategorySummary,
    VisualizationArtifact,
)

__all__ = [
    "ArtifactListAdapter",
    "CategorySummary",
    "CompanyRecord",
    "VisualizationArtifact",
]
