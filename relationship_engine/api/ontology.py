"""
Ontology API Router.

This module provides the REST endpoints needed to set up relationship
discovery:
- Projects: top-level containers of datasources and ontologies
- Datasources: customer databases registered with a connection URL
- Schema: sync tables/columns from a datasource and select which tables
  take part in discovery
- Entities: business entities of the active ontology, used to label
  relationship endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ..core.database import get_db
from ..core.errors import EngineError
from ..db.models import Datasource, OntologyEntity, Project
from ..repositories.ontology_repository import OntologyRepository
from ..repositories.schema_repository import SchemaRepository
from ..schemas.ontology import (
    DatasourceCreateDTO, DatasourceResponseDTO,
    EntityCreateDTO, EntityResponseDTO,
    ProjectCreateDTO, ProjectResponseDTO,
    SchemaSyncResponseDTO, TableResponseDTO, TableSelectionUpdateDTO,
)
from ..services.relationship_service import RelationshipService
from ..core.logging import get_logger
from .relationships import get_relationship_service, to_http_exception

logger = get_logger("api.ontology")

router = APIRouter(prefix="/api/v1", tags=["Ontology"])


def _get_project_or_404(db: Session, project_id: UUID) -> Project:
    project = OntologyRepository(db).get_project(project_id)
    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project {project_id} not found"
        )
    return project


def _get_datasource_or_404(db: Session, project_id: UUID, datasource_id: UUID) -> Datasource:
    _get_project_or_404(db, project_id)
    datasource = OntologyRepository(db).get_datasource(project_id, datasource_id)
    if not datasource:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Datasource {datasource_id} not found"
        )
    return datasource


# ============================================================================
# Projects
# ============================================================================

@router.get("/projects", response_model=List[ProjectResponseDTO])
def list_projects(db: Session = Depends(get_db)):
    """Get all projects."""
    projects = db.query(Project).order_by(Project.name).all()
    return [ProjectResponseDTO.model_validate(p) for p in projects]


@router.post("/projects", response_model=ProjectResponseDTO, status_code=status.HTTP_201_CREATED)
def create_project(project_data: ProjectCreateDTO, db: Session = Depends(get_db)):
    """
    Create a new project.

    Raises:
        HTTPException 409: If a project with the same name exists
    """
    if db.query(Project).filter(Project.name == project_data.name).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Project with name '{project_data.name}' already exists"
        )

    project = Project(name=project_data.name, description=project_data.description)
    try:
        db.add(project)
        db.commit()
        db.refresh(project)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating project: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating project"
        )

    logger.info(f"Created project {project.id}: {project.name}")
    return ProjectResponseDTO.model_validate(project)


@router.get("/projects/{project_id}", response_model=ProjectResponseDTO)
def get_project(project_id: UUID, db: Session = Depends(get_db)):
    """Get a project by ID."""
    return ProjectResponseDTO.model_validate(_get_project_or_404(db, project_id))


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: UUID, db: Session = Depends(get_db)):
    """
    Delete a project.

    Cascades to its datasources, synced schema, ontologies, entities and
    relationships. This is the only way relationships are physically deleted.
    """
    project = _get_project_or_404(db, project_id)
    try:
        db.delete(project)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting project {project_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deleting project"
        )
    logger.info(f"Deleted project {project_id}")
    return None


# ============================================================================
# Datasources
# ============================================================================

@router.get("/projects/{project_id}/datasources", response_model=List[DatasourceResponseDTO])
def list_datasources(project_id: UUID, db: Session = Depends(get_db)):
    """Get all datasources of a project."""
    project = _get_project_or_404(db, project_id)
    return [DatasourceResponseDTO.model_validate(ds) for ds in project.datasources]


@router.post(
    "/projects/{project_id}/datasources",
    response_model=DatasourceResponseDTO,
    status_code=status.HTTP_201_CREATED
)
def create_datasource(
    project_id: UUID,
    datasource_data: DatasourceCreateDTO,
    db: Session = Depends(get_db)
):
    """
    Register a datasource.

    The connection URL is stored but never returned by the API.

    Raises:
        HTTPException 404: If the project doesn't exist
        HTTPException 409: If the project already has a datasource with this name
    """
    _get_project_or_404(db, project_id)
    existing = db.query(Datasource).filter(
        Datasource.project_id == project_id,
        Datasource.name == datasource_data.name
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Datasource with name '{datasource_data.name}' already exists"
        )

    datasource = Datasource(project_id=project_id, **datasource_data.model_dump())
    try:
        db.add(datasource)
        db.commit()
        db.refresh(datasource)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating datasource: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating datasource"
        )

    logger.info(f"Created datasource {datasource.id} ({datasource.engine.value}) in project {project_id}")
    return DatasourceResponseDTO.model_validate(datasource)


# ============================================================================
# Schema
# ============================================================================

@router.post(
    "/projects/{project_id}/datasources/{datasource_id}/schema/sync",
    response_model=SchemaSyncResponseDTO
)
def sync_schema(
    project_id: UUID,
    datasource_id: UUID,
    service: RelationshipService = Depends(get_relationship_service)
):
    """
    Read tables and columns from the datasource into the stored schema.

    Existing tables keep their selection; new tables are selected.
    Discovery runs sync automatically, this endpoint makes the schema
    available for table selection and manual relationships beforehand.
    """
    try:
        return service.refresh_schema(project_id, datasource_id)
    except EngineError as e:
        raise to_http_exception(e, "sync schema")


@router.get(
    "/projects/{project_id}/datasources/{datasource_id}/tables",
    response_model=List[TableResponseDTO]
)
def list_tables(project_id: UUID, datasource_id: UUID, db: Session = Depends(get_db)):
    """Get the synced tables of a datasource with their columns."""
    datasource = _get_datasource_or_404(db, project_id, datasource_id)
    tables = SchemaRepository(db).get_tables(datasource.id)
    return [TableResponseDTO.model_validate(t) for t in tables]


@router.patch(
    "/projects/{project_id}/datasources/{datasource_id}/tables/{table_id}",
    response_model=TableResponseDTO
)
def update_table_selection(
    project_id: UUID,
    datasource_id: UUID,
    table_id: UUID,
    selection: TableSelectionUpdateDTO,
    db: Session = Depends(get_db)
):
    """
    Include or exclude a table from discovery and diagnostics.

    Relationships already stored for the table are left untouched.
    """
    datasource = _get_datasource_or_404(db, project_id, datasource_id)
    table = SchemaRepository(db).get_table_by_id(datasource.id, table_id)
    if not table:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Table {table_id} not found"
        )

    table.is_selected = selection.is_selected
    try:
        db.commit()
        db.refresh(table)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating table {table_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating table"
        )
    return TableResponseDTO.model_validate(table)


# ============================================================================
# Entities
# ============================================================================

@router.get("/projects/{project_id}/entities", response_model=List[EntityResponseDTO])
def list_entities(project_id: UUID, db: Session = Depends(get_db)):
    """Get the entities of the project's active ontology."""
    _get_project_or_404(db, project_id)
    repo = OntologyRepository(db)
    ontology = repo.get_active_ontology(project_id)
    if ontology is None:
        return []
    return [EntityResponseDTO.model_validate(e) for e in repo.list_entities(ontology.id)]


@router.post(
    "/projects/{project_id}/entities",
    response_model=EntityResponseDTO,
    status_code=status.HTTP_201_CREATED
)
def create_entity(project_id: UUID, entity_data: EntityCreateDTO, db: Session = Depends(get_db)):
    """
    Register an entity in the project's active ontology.

    Relationships discovered or added afterwards whose source or target
    table is the entity's primary table reference the entity.

    Raises:
        HTTPException 409: If the ontology already has an entity with this name
    """
    _get_project_or_404(db, project_id)
    repo = OntologyRepository(db)
    try:
        ontology = repo.get_or_create_active_ontology(project_id)
        existing = db.query(OntologyEntity).filter(
            OntologyEntity.ontology_id == ontology.id,
            OntologyEntity.name == entity_data.name
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Entity with name '{entity_data.name}' already exists"
            )
        entity = OntologyEntity(ontology_id=ontology.id, **entity_data.model_dump())
        db.add(entity)
        db.commit()
        db.refresh(entity)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating entity: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating entity"
        )
    return EntityResponseDTO.model_validate(entity)
