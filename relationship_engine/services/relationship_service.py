"""
Relationship discovery and management.

RelationshipService ties the pieces together:

    catalog -> snapshot -> FK / pk_match strategies -> scorer -> reconciler -> diagnostics

A discovery run reads the datasource's catalog exactly once into an
immutable SchemaSnapshot, runs the requested strategies against it and
merges the scored candidates in a single transaction. If one strategy fails
the other one's results are still persisted; the run only fails when every
requested strategy failed or the store could not be written.

List, manual add, remove, approve and reject work purely on the stored
relationships and schema and never query the customer database.
"""

from contextlib import contextmanager
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.cancellation import CancelToken
from ..core.config import settings
from ..core.errors import (
    CatalogUnavailableError, ConflictError, EngineError, InternalError, NotFoundError,
    RelationshipValidationError, SamplingFailedError,
)
from ..core.logging import get_logger
from ..db.models import Datasource, DetectionMethod, EntityRelationship, RelationshipStatus
from ..repositories.ontology_repository import OntologyEntityRepository, OntologyRepository
from ..repositories.relationship_repository import EntityRelationshipRepository
from ..repositories.schema_repository import SchemaRepository
from ..schemas.catalog import SchemaSnapshot
from ..schemas.discovery import (
    Diagnostics, DiscoveryResults, FKDiscoveryResult, PKMatchDiscoveryResult, ReconciliationStats,
)
from ..schemas.ontology import SchemaSyncResponseDTO
from ..schemas.relationship import ManualRelationshipCreateDTO
from .diagnostics import DiagnosticsCalculator
from .discovery_strategies import FKDiscoveryStrategy, PKMatchDiscoveryStrategy, ProgressCallback
from .lifecycle import transition
from .reconciler import RelationshipReconciler
from .schema_catalog import CatalogFactory, SchemaCatalog, default_catalog_factory
from .scoring import score_candidate

logger = get_logger("services.relationship_service")

ALL_METHODS = (DetectionMethod.FOREIGN_KEY, DetectionMethod.PK_MATCH)


class RelationshipService:
    def __init__(self, db: Session, catalog_factory: Optional[CatalogFactory] = None):
        self.db = db
        self.catalog_factory = catalog_factory or default_catalog_factory
        self.ontologies = OntologyRepository(db)
        self.entities = OntologyEntityRepository(db)
        self.schema = SchemaRepository(db)
        self.relationships = EntityRelationshipRepository(db)
        self.reconciler = RelationshipReconciler(db, self.relationships)
        self.diagnostics = DiagnosticsCalculator()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, action: str):
        """Commit on success; roll back and translate store errors otherwise."""
        try:
            yield
            self.db.commit()
        except EngineError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error while trying to {action}: {e.orig}")
            raise ConflictError("Relationship already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            raise InternalError(f"Failed to {action}") from e

    def _get_project(self, project_id: UUID):
        project = self.ontologies.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    def _get_datasource(self, project_id: UUID, datasource_id: UUID) -> Datasource:
        self._get_project(project_id)
        datasource = self.ontologies.get_datasource(project_id, datasource_id)
        if datasource is None:
            raise NotFoundError(f"Datasource {datasource_id} not found")
        return datasource

    def _get_relationship(self, project_id: UUID, relationship_id: UUID) -> EntityRelationship:
        rel = self.relationships.get_by_id(project_id, relationship_id)
        if rel is None:
            raise NotFoundError(f"Relationship {relationship_id} not found")
        return rel

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def build_snapshot(
        self,
        datasource: Datasource,
        catalog: SchemaCatalog,
        cancel: Optional[CancelToken] = None,
    ) -> SchemaSnapshot:
        """
        Read the catalog once, sync the stored schema and freeze the result.

        A failing table read is fatal (CatalogUnavailableError). A failing
        constraint read is recorded on the snapshot so only FK discovery is
        affected.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()
        tables = catalog.get_tables(cancel=cancel)
        stored = self.schema.sync(datasource, tables)
        tables = tuple(
            t.model_copy(update={"is_selected": stored[t.name].is_selected}) for t in tables
        )

        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            foreign_keys = tuple(catalog.get_foreign_keys())
            fk_error = None
        except CatalogUnavailableError as e:
            logger.error(f"Foreign key read failed for datasource {datasource.id}: {e}")
            foreign_keys = None
            fk_error = str(e)

        return SchemaSnapshot(
            datasource_id=datasource.id,
            tables=tables,
            foreign_keys=foreign_keys,
            fk_error=fk_error,
        )

    def refresh_schema(self, project_id: UUID, datasource_id: UUID) -> SchemaSyncResponseDTO:
        """Re-read tables and columns from the datasource into the stored schema."""
        datasource = self._get_datasource(project_id, datasource_id)
        catalog = self.catalog_factory(datasource)
        try:
            with self._transaction("sync schema"):
                before = {t.name for t in self.schema.get_tables(datasource.id)}
                tables = catalog.get_tables()
                self.schema.sync(datasource, tables)
        finally:
            catalog.close()

        names = {t.name for t in tables}
        logger.info(f"Synced schema of datasource {datasource.id}: {len(tables)} tables")
        return SchemaSyncResponseDTO(
            tables=len(tables),
            columns=sum(len(t.columns) for t in tables),
            removed_tables=len(before - names),
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _run(
        self,
        project_id: UUID,
        datasource_id: UUID,
        methods: Sequence[DetectionMethod],
        progress: Optional[ProgressCallback],
        cancel: Optional[CancelToken],
    ) -> Tuple[ReconciliationStats, Diagnostics, List[str]]:
        datasource = self._get_datasource(project_id, datasource_id)
        if cancel is None:
            cancel = CancelToken.with_timeout(settings.discovery_timeout_seconds)

        logger.info(
            f"Starting relationship discovery for datasource {datasource.id} "
            f"({', '.join(m.value for m in methods)})"
        )
        catalog = self.catalog_factory(datasource)
        errors: List[str] = []
        try:
            with self._transaction("persist discovered relationships"):
                ontology = self.ontologies.get_or_create_active_ontology(project_id)
                snapshot = self.build_snapshot(datasource, catalog, cancel)

                scored = []
                failures: List[EngineError] = []

                if DetectionMethod.FOREIGN_KEY in methods:
                    try:
                        candidates = FKDiscoveryStrategy(catalog).run(snapshot, progress=progress, cancel=cancel)
                        scored.extend(score_candidate(c) for c in candidates)
                    except CatalogUnavailableError as e:
                        logger.error(f"FK discovery failed for datasource {datasource.id}: {e}")
                        errors.append(f"foreign_key: {e}")
                        failures.append(e)

                if DetectionMethod.PK_MATCH in methods:
                    covered = {
                        (c.source_table, c.source_column)
                        for c in scored if c.method == DetectionMethod.FOREIGN_KEY
                    }
                    covered |= self.relationships.active_foreign_key_sources(ontology.id, datasource.id)
                    try:
                        candidates = PKMatchDiscoveryStrategy(catalog).run(
                            snapshot, exclude_sources=covered, progress=progress, cancel=cancel
                        )
                        scored.extend(score_candidate(c) for c in candidates)
                    except (CatalogUnavailableError, SamplingFailedError) as e:
                        logger.error(f"pk_match discovery failed for datasource {datasource.id}: {e}")
                        errors.append(f"pk_match: {e}")
                        failures.append(e)

                if len(failures) == len(methods):
                    raise failures[0]

                stats = self.reconciler.reconcile(
                    ontology,
                    datasource.id,
                    scored,
                    self.entities.resolve_table_entities(ontology.id),
                )
                diagnostics = self.diagnostics.compute(
                    snapshot.tables,
                    self.relationships.get_by_ontology(ontology.id, datasource.id, active_only=True),
                )
        finally:
            catalog.close()

        logger.info(
            f"Discovery finished for datasource {datasource_id}: created={stats.total_created} "
            f"upgraded={stats.upgraded} empty_tables={len(diagnostics.empty_tables)} "
            f"orphan_tables={len(diagnostics.orphan_tables)}"
        )
        return stats, diagnostics, errors

    def discover_fk_relationships(
        self,
        project_id: UUID,
        datasource_id: UUID,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> FKDiscoveryResult:
        stats, _, _ = self._run(project_id, datasource_id, (DetectionMethod.FOREIGN_KEY,), progress, cancel)
        return FKDiscoveryResult(created=stats.fk_created, upgraded=stats.upgraded)

    def discover_pk_match_relationships(
        self,
        project_id: UUID,
        datasource_id: UUID,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> PKMatchDiscoveryResult:
        stats, _, _ = self._run(project_id, datasource_id, (DetectionMethod.PK_MATCH,), progress, cancel)
        return PKMatchDiscoveryResult(created=stats.pk_match_created)

    def discover_relationships(
        self,
        project_id: UUID,
        datasource_id: UUID,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        methods: Sequence[DetectionMethod] = ALL_METHODS,
    ) -> DiscoveryResults:
        """Run the requested strategies (both by default) and report counts and diagnostics."""
        stats, diagnostics, errors = self._run(project_id, datasource_id, methods, progress, cancel)
        fk_count = stats.fk_created + stats.upgraded
        return DiscoveryResults(
            fk_relationships=fk_count,
            inferred_relationships=stats.pk_match_created,
            total_relationships=fk_count + stats.pk_match_created,
            upgraded=stats.upgraded,
            refreshed=stats.refreshed,
            discarded=stats.discarded,
            skipped_rejected=stats.skipped_rejected,
            empty_tables=diagnostics.empty_tables,
            orphan_tables=diagnostics.orphan_tables,
            errors=errors,
        )

    def get_diagnostics(self, project_id: UUID, datasource_id: UUID) -> Diagnostics:
        """Diagnostics from the stored schema and relationships, without touching the datasource."""
        datasource = self._get_datasource(project_id, datasource_id)
        ontology = self.ontologies.get_active_ontology(project_id)
        relationships = []
        if ontology is not None:
            relationships = self.relationships.get_by_ontology(ontology.id, datasource.id, active_only=True)
        return self.diagnostics.compute(self.schema.get_tables(datasource.id), relationships)

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def get_by_project(self, project_id: UUID, active_only: bool = False) -> List[EntityRelationship]:
        self._get_project(project_id)
        return self.relationships.get_by_project(project_id, active_only=active_only)

    def add_manual_relationship(
        self,
        project_id: UUID,
        datasource_id: UUID,
        request: ManualRelationshipCreateDTO,
    ) -> EntityRelationship:
        """
        Create a confirmed manual relationship.

        Raises:
            NotFoundError: Datasource, table or column does not exist
            RelationshipValidationError: Source and target are the same column
            ConflictError: An active relationship already exists for the pair in this datasource
        """
        datasource = self._get_datasource(project_id, datasource_id)
        if (request.source_table, request.source_column) == (request.target_table, request.target_column):
            raise RelationshipValidationError("A relationship cannot point a column at itself")

        for table_name, column_name in (
            (request.source_table, request.source_column),
            (request.target_table, request.target_column),
        ):
            table_node = self.schema.get_table(datasource.id, table_name)
            if table_node is None:
                raise NotFoundError(f"Table '{table_name}' not found")
            if self.schema.get_column(table_node, column_name) is None:
                raise NotFoundError(f"Column '{table_name}.{column_name}' not found")

        pair = (request.source_table, request.source_column, request.target_table, request.target_column)
        with self._transaction("add manual relationship"):
            ontology = self.ontologies.get_or_create_active_ontology(project_id)
            existing = self.relationships.get_active_by_column_pair(
                ontology.id, datasource.id, pair, for_update=True
            )
            if existing is not None:
                raise ConflictError("Relationship already exists")
            entities = self.entities.resolve_table_entities(ontology.id)
            rel = self.relationships.create(
                project_id=project_id,
                ontology_id=ontology.id,
                datasource_id=datasource.id,
                source_entity_id=entities.get(request.source_table),
                target_entity_id=entities.get(request.target_table),
                source_table=request.source_table,
                source_column=request.source_column,
                target_table=request.target_table,
                target_column=request.target_column,
                detection_method=DetectionMethod.MANUAL,
                confidence=1.0,
                cardinality=request.cardinality,
                status=RelationshipStatus.CONFIRMED,
                description=request.description,
            )
        self.db.refresh(rel)
        logger.info(f"Added manual relationship {rel.id}: {'.'.join(pair[:2])} -> {'.'.join(pair[2:])}")
        return rel

    def remove_relationship(self, project_id: UUID, relationship_id: UUID) -> EntityRelationship:
        """
        Soft-delete a relationship by rejecting it.

        The row stays in the store so future discovery runs do not recreate
        it. Removing an already removed relationship raises NotFoundError.
        """
        rel = self._get_relationship(project_id, relationship_id)
        if rel.status == RelationshipStatus.REJECTED:
            raise NotFoundError(f"Relationship {relationship_id} not found")
        with self._transaction("remove relationship"):
            transition(rel, RelationshipStatus.REJECTED)
        logger.info(f"Removed relationship {rel.id}")
        return rel

    def approve_relationship(self, project_id: UUID, relationship_id: UUID) -> EntityRelationship:
        rel = self._get_relationship(project_id, relationship_id)
        with self._transaction("approve relationship"):
            transition(rel, RelationshipStatus.CONFIRMED)
        logger.info(f"Approved relationship {rel.id}")
        return rel

    def reject_relationship(self, project_id: UUID, relationship_id: UUID) -> EntityRelationship:
        rel = self._get_relationship(project_id, relationship_id)
        with self._transaction("reject relationship"):
            transition(rel, RelationshipStatus.REJECTED)
        logger.info(f"Rejected relationship {rel.id}")
        return rel
