"""
Merge scored candidates into the relationship store.

Precedence between an incoming candidate and the active row for the same
column pair in the same datasource:

    existing manual                -> candidate discarded
    existing foreign_key, pk_match -> candidate discarded
    existing pk_match, foreign_key -> row upgraded to foreign_key / 1.0 / confirmed
    same detection method          -> confidence and cardinality refreshed, status untouched
    no active row                  -> inserted, unless the pair was rejected before

The reconciler stages changes on the session and never commits; the caller
owns the transaction.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Dict, Iterable, Optional
from uuid import UUID

from ..core.errors import ConflictError
from ..core.logging import get_logger
from ..db.models import DetectionMethod, Ontology, RelationshipStatus
from ..repositories.relationship_repository import EntityRelationshipRepository
from ..schemas.discovery import ReconciliationStats, ScoredCandidate
from .lifecycle import transition

logger = get_logger("services.reconciler")


class RelationshipReconciler:
    def __init__(self, db: Session, relationships: Optional[EntityRelationshipRepository] = None):
        self.db = db
        self.relationships = relationships or EntityRelationshipRepository(db)

    def reconcile(
        self,
        ontology: Ontology,
        datasource_id: UUID,
        candidates: Iterable[ScoredCandidate],
        table_entities: Optional[Dict[str, UUID]] = None,
    ) -> ReconciliationStats:
        """
        Apply every candidate to the store and return what happened.

        Raises:
            ConflictError: A concurrent writer inserted the same active pair
        """
        table_entities = table_entities or {}
        stats = ReconciliationStats()
        try:
            for candidate in candidates:
                self._apply(ontology, datasource_id, candidate, table_entities, stats)
        except IntegrityError as e:
            logger.warning(f"Concurrent relationship write detected for ontology {ontology.id}: {e.orig}")
            raise ConflictError("Relationships were modified concurrently, retry discovery") from e

        logger.info(
            f"Reconciled ontology {ontology.id}: fk_created={stats.fk_created} "
            f"pk_match_created={stats.pk_match_created} upgraded={stats.upgraded} "
            f"refreshed={stats.refreshed} discarded={stats.discarded} "
            f"skipped_rejected={stats.skipped_rejected}"
        )
        return stats

    def _apply(self, ontology, datasource_id, candidate, table_entities, stats):
        existing = self.relationships.get_active_by_column_pair(
            ontology.id, datasource_id, candidate.column_pair, for_update=True
        )

        if existing is None:
            if self.relationships.has_rejected(ontology.id, datasource_id, candidate.column_pair):
                # A user rejected this pair; discovery must not bring it back
                stats.skipped_rejected += 1
                return
            self.relationships.create(
                project_id=ontology.project_id,
                ontology_id=ontology.id,
                datasource_id=datasource_id,
                source_entity_id=table_entities.get(candidate.source_table),
                target_entity_id=table_entities.get(candidate.target_table),
                source_table=candidate.source_table,
                source_column=candidate.source_column,
                target_table=candidate.target_table,
                target_column=candidate.target_column,
                detection_method=candidate.method,
                confidence=candidate.confidence,
                cardinality=candidate.cardinality,
                status=candidate.status,
            )
            if candidate.method == DetectionMethod.FOREIGN_KEY:
                stats.fk_created += 1
            else:
                stats.pk_match_created += 1
            return

        if existing.detection_method == DetectionMethod.MANUAL:
            stats.discarded += 1
            return

        if existing.detection_method == candidate.method:
            if existing.confidence != candidate.confidence:
                self.relationships.update(existing, confidence=candidate.confidence)
                stats.refreshed += 1
            if existing.cardinality != candidate.cardinality:
                self.relationships.update(existing, cardinality=candidate.cardinality)
            return

        if candidate.method == DetectionMethod.FOREIGN_KEY:
            # existing pk_match is superseded by the declared constraint
            if existing.status != RelationshipStatus.CONFIRMED:
                transition(existing, RelationshipStatus.CONFIRMED)
            self.relationships.update(
                existing,
                detection_method=DetectionMethod.FOREIGN_KEY,
                confidence=1.0,
                cardinality=candidate.cardinality,
            )
            stats.upgraded += 1
            return

        stats.discarded += 1
