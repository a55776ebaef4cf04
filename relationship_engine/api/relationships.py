"""
Relationships API Router.

REST endpoints for discovering and curating the relationships of a project's
active ontology:
- Discovery: run FK and/or pk_match discovery on a datasource
- Listing: all relationships of a project, optionally only active ones
- Curation: add manual relationships, remove, approve and reject

Engine errors map to HTTP status codes: NotFound -> 404, Conflict -> 409,
validation -> 400, anything else -> 500 with a generic message.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from ..core.database import get_db
from ..core.errors import ConflictError, EngineError, NotFoundError, RelationshipValidationError
from ..core.logging import get_logger
from ..db.models import DetectionMethod
from ..schemas.discovery import DiscoverRequestDTO, DiscoveryResults
from ..schemas.relationship import (
    DiagnosticsResponseDTO, ManualRelationshipCreateDTO,
    RelationshipListResponseDTO, RelationshipResponseDTO,
)
from ..services.relationship_service import RelationshipService
from ..services.schema_catalog import CatalogFactory, get_catalog_factory

logger = get_logger("api.relationships")

router = APIRouter(prefix="/api/v1/projects/{project_id}", tags=["Relationships"])

STRATEGY_METHODS = {
    "all": (DetectionMethod.FOREIGN_KEY, DetectionMethod.PK_MATCH),
    "foreign_key": (DetectionMethod.FOREIGN_KEY,),
    "pk_match": (DetectionMethod.PK_MATCH,),
}


def get_relationship_service(
    db: Session = Depends(get_db),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
) -> RelationshipService:
    return RelationshipService(db, catalog_factory)


def to_http_exception(e: EngineError, action: str) -> HTTPException:
    """Map an engine error to an HTTPException; unexpected errors get a generic message."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, RelationshipValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"Failed to {action}: {e}", exc_info=e)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )


@router.post(
    "/datasources/{datasource_id}/relationships/discover",
    response_model=DiscoveryResults
)
def discover_relationships(
    project_id: UUID,
    datasource_id: UUID,
    request: Optional[DiscoverRequestDTO] = None,
    service: RelationshipService = Depends(get_relationship_service)
):
    """
    Run relationship discovery on a datasource.

    Reads the datasource's catalog once, runs the requested strategies and
    merges the results into the project's active ontology. Declared foreign
    keys become confirmed relationships; pk_match inferences stay pending
    until approved.

    Example Response:
        ```json
        {
            "fk_relationships": 3,
            "inferred_relationships": 1,
            "total_relationships": 4,
            "empty_tables": ["audit_log"],
            "orphan_tables": ["audit_log", "settings"],
            "errors": []
        }
        ```
    """
    strategy = request.strategy if request is not None else "all"
    try:
        return service.discover_relationships(
            project_id, datasource_id, methods=STRATEGY_METHODS[strategy]
        )
    except EngineError as e:
        raise to_http_exception(e, "discover relationships")


@router.get(
    "/datasources/{datasource_id}/relationships/diagnostics",
    response_model=DiagnosticsResponseDTO
)
def get_diagnostics(
    project_id: UUID,
    datasource_id: UUID,
    service: RelationshipService = Depends(get_relationship_service)
):
    """Empty and orphan tables of a datasource, from the stored schema."""
    try:
        diagnostics = service.get_diagnostics(project_id, datasource_id)
    except EngineError as e:
        raise to_http_exception(e, "compute diagnostics")
    return DiagnosticsResponseDTO(**diagnostics.model_dump())


@router.get("/relationships", response_model=RelationshipListResponseDTO)
def list_relationships(
    project_id: UUID,
    active_only: bool = Query(False, description="Hide rejected relationships"),
    service: RelationshipService = Depends(get_relationship_service)
):
    """List the relationships of a project."""
    try:
        relationships = service.get_by_project(project_id, active_only=active_only)
    except EngineError as e:
        raise to_http_exception(e, "list relationships")
    items = [RelationshipResponseDTO.from_model(rel) for rel in relationships]
    return RelationshipListResponseDTO(relationships=items, total=len(items))


@router.post(
    "/datasources/{datasource_id}/relationships",
    response_model=RelationshipResponseDTO,
    status_code=status.HTTP_201_CREATED
)
def add_manual_relationship(
    project_id: UUID,
    datasource_id: UUID,
    request: ManualRelationshipCreateDTO,
    service: RelationshipService = Depends(get_relationship_service)
):
    """
    Add a relationship by hand.

    Both endpoints must exist in the datasource's synced schema. Manual
    relationships are confirmed immediately and are never changed by
    discovery.

    Raises:
        HTTPException 404: Datasource, table or column not found
        HTTPException 409: An active relationship already exists for the pair
    """
    try:
        rel = service.add_manual_relationship(project_id, datasource_id, request)
    except EngineError as e:
        raise to_http_exception(e, "add relationship")
    return RelationshipResponseDTO.from_model(rel)


@router.delete("/relationships/{relationship_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_relationship(
    project_id: UUID,
    relationship_id: UUID,
    service: RelationshipService = Depends(get_relationship_service)
):
    """
    Remove a relationship.

    The relationship is rejected rather than deleted so re-running discovery
    does not bring it back.
    """
    try:
        service.remove_relationship(project_id, relationship_id)
    except EngineError as e:
        raise to_http_exception(e, "remove relationship")
    return None


@router.post("/relationships/{relationship_id}/approve", response_model=RelationshipResponseDTO)
def approve_relationship(
    project_id: UUID,
    relationship_id: UUID,
    service: RelationshipService = Depends(get_relationship_service)
):
    """Confirm a pending relationship."""
    try:
        rel = service.approve_relationship(project_id, relationship_id)
    except EngineError as e:
        raise to_http_exception(e, "approve relationship")
    return RelationshipResponseDTO.from_model(rel)


@router.post("/relationships/{relationship_id}/reject", response_model=RelationshipResponseDTO)
def reject_relationship(
    project_id: UUID,
    relationship_id: UUID,
    service: RelationshipService = Depends(get_relationship_service)
):
    """Reject a pending or confirmed relationship."""
    try:
        rel = service.reject_relationship(project_id, relationship_id)
    except EngineError as e:
        raise to_http_exception(e, "reject relationship")
    return RelationshipResponseDTO.from_model(rel)
