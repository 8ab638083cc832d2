"""
Entity catalog endpoints: mappable fields, relationships, HUVR connection status.
"""
from typing import List

from fastapi import APIRouter, HTTPException

from huvr_export.config import settings
from huvr_export.schemas.export import AvailableFieldResponse, RelationshipResponse
from huvr_export.services.relationship_catalog import default_catalog, normalize_entity_type

router = APIRouter()


def _canonical_or_404(entity_type: str) -> str:
    canonical = normalize_entity_type(entity_type)
    if canonical is None:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity_type}")
    return canonical


@router.get("/entities/{entity_type}/fields", response_model=List[AvailableFieldResponse])
def list_available_fields(entity_type: str):
    """Direct fields plus one-hop related fields ("Asset.Name") for field mapping."""
    return default_catalog.available_fields(_canonical_or_404(entity_type))


@router.get("/entities/{entity_type}/relationships", response_model=List[RelationshipResponse])
def list_relationships(entity_type: str):
    return default_catalog.relationships_of(_canonical_or_404(entity_type))


@router.get("/huvr/status")
def huvr_status():
    """
    Return HUVR API configuration status.
    Does not call the API; use this to verify credentials are set.
    """
    return {
        "configured": settings.huvr_configured,
        "base_url": settings.HUVR_BASE_URL,
        "page_size": settings.HUVR_PAGE_SIZE,
        "max_concurrency": settings.GATHER_MAX_CONCURRENCY,
    }
