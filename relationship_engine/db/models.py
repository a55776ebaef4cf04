"""
SQLAlchemy database models for the Ontology Relationship Engine.

Models are organized into domains:
- Registry: projects and the datasources they own
- Physical schema: tables and columns synced from a datasource's catalog
- Ontology: versioned per-project ontologies, their entities and the
  relationships discovered between entity columns

Column types are portable (Uuid, non-native enums) so the same models run
against PostgreSQL in production and SQLite in the test-suite.
"""

from sqlalchemy import (
    Column, String, Text, Boolean, Integer, BigInteger, Float, ForeignKey,
    DateTime, Index, UniqueConstraint, Uuid, Enum as SQLEnum, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from enum import Enum as PyEnum
from ..core.database import Base


# ============================================================================
# Enums
# ============================================================================

class SQLEngineType(PyEnum):
    """
    SQL engine/dialect of a datasource.

    Values:
        POSTGRES: PostgreSQL database
        MYSQL: MySQL database
        SQLITE: SQLite file database
        TSQL: Microsoft SQL Server (T-SQL)
        SNOWFLAKE: Snowflake data warehouse
        BIGQUERY: Google BigQuery
    """
    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    TSQL = "tsql"
    SNOWFLAKE = "snowflake"
    BIGQUERY = "bigquery"


class DetectionMethod(PyEnum):
    """
    Provenance of a relationship.

    Values:
        FOREIGN_KEY: Declared foreign key constraint in the datasource
        PK_MATCH: Inferred from naming conventions and sampled value overlap
        MANUAL: Created by a user
    """
    FOREIGN_KEY = "foreign_key"
    PK_MATCH = "pk_match"
    MANUAL = "manual"


class RelationshipStatus(PyEnum):
    """
    Approval status of a relationship.

    Values:
        PENDING: Awaiting review (inferred relationships start here)
        CONFIRMED: Approved, usable for JOIN generation
        REJECTED: Soft-deleted; kept so discovery does not recreate it
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Cardinality(PyEnum):
    """
    How many rows on each side of a relationship join to one row on the other,
    written source:target.

    Values:
        ONE_TO_ONE: Each source row joins one target row and vice versa
        MANY_TO_ONE: Many source rows share a target row (the usual FK shape)
        ONE_TO_MANY: A source row joins several target rows
        MANY_TO_MANY: Both sides repeat
    """
    ONE_TO_ONE = "1:1"
    MANY_TO_ONE = "N:1"
    ONE_TO_MANY = "1:N"
    MANY_TO_MANY = "N:M"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================================
# Registry Models
# ============================================================================

class Project(Base):
    """
    Top-level tenant object. Owns datasources and ontologies.

    Attributes:
        id: Unique identifier (UUID)
        name: Human-readable, unique project name
        description: Optional description
    """
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    datasources = relationship("Datasource", back_populates="project", cascade="all, delete-orphan")
    ontologies = relationship("Ontology", back_populates="project", cascade="all, delete-orphan")


class Datasource(Base):
    """
    A customer database the engine discovers relationships in.

    The connection_url is an SQLAlchemy URL; schema_name restricts reflection
    to one schema (None means the connection's default schema).

    Relationships:
        tables: Tables synced from the datasource's catalog (cascade delete)
        relationships: Relationships discovered in this datasource (cascade delete)
    """
    __tablename__ = "datasources"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_datasources_project_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    engine = Column(
        SQLEnum(SQLEngineType, name="sql_engine_type", native_enum=False, length=20,
                values_callable=_enum_values),
        nullable=False,
        doc="SQL dialect (postgres, mysql, sqlite, ...)"
    )
    connection_url = Column(Text, nullable=False, doc="SQLAlchemy connection URL of the datasource")
    schema_name = Column(String(255), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    project = relationship("Project", back_populates="datasources")
    tables = relationship(
        "TableNode", back_populates="datasource", cascade="all, delete-orphan",
        order_by="TableNode.name"
    )
    relationships = relationship("EntityRelationship", back_populates="datasource", cascade="all, delete")


# ============================================================================
# Physical Schema Models
# ============================================================================

class TableNode(Base):
    """
    Stored copy of a table from the last schema sync.

    is_selected is controlled by the user and survives re-syncs; unselected
    tables are ignored by discovery and diagnostics.
    """
    __tablename__ = "table_nodes"
    __table_args__ = (
        UniqueConstraint("datasource_id", "name", name="uq_table_nodes_datasource_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    datasource_id = Column(Uuid, ForeignKey("datasources.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    row_count = Column(BigInteger, nullable=False, default=0)
    is_selected = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    datasource = relationship("Datasource", back_populates="tables")
    columns = relationship(
        "ColumnNode", back_populates="table", cascade="all, delete-orphan",
        order_by="ColumnNode.ordinal_position"
    )


class ColumnNode(Base):
    """Stored copy of a column from the last schema sync."""
    __tablename__ = "column_nodes"
    __table_args__ = (
        UniqueConstraint("table_id", "name", name="uq_column_nodes_table_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    table_id = Column(Uuid, ForeignKey("table_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    data_type = Column(String(100), nullable=False)
    is_primary_key = Column(Boolean, nullable=False, default=False)
    ordinal_position = Column(Integer, nullable=False, default=0)

    table = relationship("TableNode", back_populates="columns")


# ============================================================================
# Ontology Models
# ============================================================================

class Ontology(Base):
    """
    Versioned model of a project's entities and relationships.

    Only one ontology per project is active at a time; discovery and manual
    edits always target the active one.
    """
    __tablename__ = "ontologies"
    __table_args__ = (
        UniqueConstraint("project_id", "version", name="uq_ontologies_project_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="ontologies")
    entities = relationship("OntologyEntity", back_populates="ontology", cascade="all, delete-orphan")
    relationships = relationship("EntityRelationship", back_populates="ontology", cascade="all, delete-orphan")


class OntologyEntity(Base):
    """
    Business-level concept backed by a table (e.g. "Customer" -> customers).

    Relationships reference entities by resolving their source/target table
    against primary_table.
    """
    __tablename__ = "ontology_entities"
    __table_args__ = (
        UniqueConstraint("ontology_id", "name", name="uq_ontology_entities_ontology_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ontology_id = Column(Uuid, ForeignKey("ontologies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    primary_table = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    ontology = relationship("Ontology", back_populates="entities")


class EntityRelationship(Base):
    """
    A directed join relationship source_table.source_column -> target_table.target_column.

    Composite keys are stored as one row per column pair. Within an ontology
    and datasource there is at most one non-rejected row per column pair,
    enforced by the partial unique index uq_entity_relationships_active_tuple.

    Attributes:
        detection_method: foreign_key, pk_match or manual
        confidence: 1.0 for foreign_key and manual, match fraction for pk_match
        status: pending, confirmed or rejected (rejected rows are soft-deleted)
        cardinality: Join shape source:target (1:1, N:1, 1:N or N:M)
        source_entity_id / target_entity_id: Resolved ontology entities, if any
    """
    __tablename__ = "entity_relationships"
    __table_args__ = (
        Index(
            "uq_entity_relationships_active_tuple",
            "ontology_id", "datasource_id", "source_table", "source_column", "target_table", "target_column",
            unique=True,
            postgresql_where=text("status <> 'rejected'"),
            sqlite_where=text("status <> 'rejected'"),
        ),
        Index("idx_entity_relationships_project_id", "project_id"),
        Index("idx_entity_relationships_datasource_id", "datasource_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    ontology_id = Column(Uuid, ForeignKey("ontologies.id", ondelete="CASCADE"), nullable=False)
    datasource_id = Column(Uuid, ForeignKey("datasources.id", ondelete="CASCADE"), nullable=False)
    source_entity_id = Column(Uuid, ForeignKey("ontology_entities.id", ondelete="SET NULL"), nullable=True)
    target_entity_id = Column(Uuid, ForeignKey("ontology_entities.id", ondelete="SET NULL"), nullable=True)
    source_table = Column(String(255), nullable=False)
    source_column = Column(String(255), nullable=False)
    target_table = Column(String(255), nullable=False)
    target_column = Column(String(255), nullable=False)
    detection_method = Column(
        SQLEnum(DetectionMethod, name="detection_method", native_enum=False, length=20,
                values_callable=_enum_values),
        nullable=False
    )
    confidence = Column(Float, nullable=False, default=1.0)
    cardinality = Column(
        SQLEnum(Cardinality, name="relationship_cardinality", native_enum=False, length=10,
                values_callable=_enum_values),
        nullable=False,
        default=Cardinality.MANY_TO_ONE
    )
    status = Column(
        SQLEnum(RelationshipStatus, name="relationship_status", native_enum=False, length=20,
                values_callable=_enum_values),
        nullable=False,
        default=RelationshipStatus.PENDING
    )
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    ontology = relationship("Ontology", back_populates="relationships")
    datasource = relationship("Datasource", back_populates="relationships")

    @property
    def is_active(self) -> bool:
        return self.status != RelationshipStatus.REJECTED

    @property
    def column_pair(self):
        return (self.source_table, self.source_column, self.target_table, self.target_column)
