"""
Data access for entity relationships.

Repositories only query and stage changes on the session; committing or
rolling back is left to the calling service so a discovery run stays one
transaction.
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Set, Tuple
from uuid import UUID

from ..db.models import DetectionMethod, EntityRelationship, RelationshipStatus

ColumnPair = Tuple[str, str, str, str]


class EntityRelationshipRepository:
    def __init__(self, db: Session):
        self.db = db

    def _pair_filter(self, query, ontology_id: UUID, datasource_id: UUID, pair: ColumnPair):
        source_table, source_column, target_table, target_column = pair
        return query.filter(
            EntityRelationship.ontology_id == ontology_id,
            EntityRelationship.datasource_id == datasource_id,
            EntityRelationship.source_table == source_table,
            EntityRelationship.source_column == source_column,
            EntityRelationship.target_table == target_table,
            EntityRelationship.target_column == target_column,
        )

    def get_by_project(self, project_id: UUID, active_only: bool = False) -> List[EntityRelationship]:
        query = self.db.query(EntityRelationship).filter(EntityRelationship.project_id == project_id)
        if active_only:
            query = query.filter(EntityRelationship.status != RelationshipStatus.REJECTED)
        return query.order_by(
            EntityRelationship.source_table,
            EntityRelationship.source_column,
            EntityRelationship.target_table,
            EntityRelationship.target_column,
        ).all()

    def get_by_ontology(
        self,
        ontology_id: UUID,
        datasource_id: Optional[UUID] = None,
        active_only: bool = False,
    ) -> List[EntityRelationship]:
        query = self.db.query(EntityRelationship).filter(EntityRelationship.ontology_id == ontology_id)
        if datasource_id is not None:
            query = query.filter(EntityRelationship.datasource_id == datasource_id)
        if active_only:
            query = query.filter(EntityRelationship.status != RelationshipStatus.REJECTED)
        return query.all()

    def get_by_id(self, project_id: UUID, relationship_id: UUID) -> Optional[EntityRelationship]:
        return self.db.query(EntityRelationship).filter(
            EntityRelationship.project_id == project_id,
            EntityRelationship.id == relationship_id,
        ).first()

    def get_active_by_column_pair(
        self,
        ontology_id: UUID,
        datasource_id: UUID,
        pair: ColumnPair,
        for_update: bool = False,
    ) -> Optional[EntityRelationship]:
        """The single non-rejected row for a column pair in a datasource, optionally row-locked."""
        query = self._pair_filter(self.db.query(EntityRelationship), ontology_id, datasource_id, pair).filter(
            EntityRelationship.status != RelationshipStatus.REJECTED
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def has_rejected(self, ontology_id: UUID, datasource_id: UUID, pair: ColumnPair) -> bool:
        query = self._pair_filter(self.db.query(EntityRelationship.id), ontology_id, datasource_id, pair).filter(
            EntityRelationship.status == RelationshipStatus.REJECTED
        )
        return query.first() is not None

    def active_foreign_key_sources(self, ontology_id: UUID, datasource_id: UUID) -> Set[Tuple[str, str]]:
        """(table, column) pairs that are already the source of an active foreign_key row."""
        rows = self.db.query(EntityRelationship.source_table, EntityRelationship.source_column).filter(
            EntityRelationship.ontology_id == ontology_id,
            EntityRelationship.datasource_id == datasource_id,
            EntityRelationship.detection_method == DetectionMethod.FOREIGN_KEY,
            EntityRelationship.status != RelationshipStatus.REJECTED,
        ).all()
        return {(row[0], row[1]) for row in rows}

    def create(self, **fields) -> EntityRelationship:
        rel = EntityRelationship(**fields)
        self.db.add(rel)
        self.db.flush()
        return rel

    def update(self, rel: EntityRelationship, **fields) -> EntityRelationship:
        for key, value in fields.items():
            setattr(rel, key, value)
        self.db.flush()
        return rel
