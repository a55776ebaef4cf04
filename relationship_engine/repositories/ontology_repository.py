"""Data access for projects, datasources, ontologies and their entities"""

from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from uuid import UUID

from ..db.models import Datasource, Ontology, OntologyEntity, Project


class OntologyRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_project(self, project_id: UUID) -> Optional[Project]:
        return self.db.query(Project).filter(Project.id == project_id).first()

    def get_datasource(self, project_id: UUID, datasource_id: UUID) -> Optional[Datasource]:
        return self.db.query(Datasource).filter(
            Datasource.project_id == project_id,
            Datasource.id == datasource_id,
        ).first()

    def get_active_ontology(self, project_id: UUID) -> Optional[Ontology]:
        return self.db.query(Ontology).filter(
            Ontology.project_id == project_id,
            Ontology.is_active.is_(True),
        ).order_by(Ontology.version.desc()).first()

    def get_or_create_active_ontology(self, project_id: UUID) -> Ontology:
        """Active ontology of the project; version 1 is created on first use."""
        ontology = self.get_active_ontology(project_id)
        if ontology is not None:
            return ontology
        latest = self.db.query(func.max(Ontology.version)).filter(Ontology.project_id == project_id).scalar()
        ontology = Ontology(project_id=project_id, version=(latest or 0) + 1, is_active=True)
        self.db.add(ontology)
        self.db.flush()
        return ontology

    def list_entities(self, ontology_id: UUID) -> List[OntologyEntity]:
        return self.db.query(OntologyEntity).filter(
            OntologyEntity.ontology_id == ontology_id
        ).order_by(OntologyEntity.name).all()


class OntologyEntityRepository:
    def __init__(self, db: Session):
        self.db = db

    def resolve_table_entities(self, ontology_id: UUID) -> Dict[str, UUID]:
        """
        Map table name -> entity id for the ontology.

        When several entities share a primary table the alphabetically first
        entity wins, so resolution is stable across runs.
        """
        entities = self.db.query(OntologyEntity).filter(
            OntologyEntity.ontology_id == ontology_id
        ).order_by(OntologyEntity.name).all()
        resolved: Dict[str, UUID] = {}
        for entity in entities:
            resolved.setdefault(entity.primary_table, entity.id)
        return resolved
