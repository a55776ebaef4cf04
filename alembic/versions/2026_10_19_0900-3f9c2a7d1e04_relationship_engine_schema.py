"""relationship_engine_schema

Initial schema of the relationship engine: projects, datasources, synced
tables/columns, ontologies, entities and entity relationships.

The partial unique index uq_entity_relationships_active_tuple allows at most
one non-rejected relationship per column pair within an ontology and
datasource while keeping rejected rows as tombstones.

Revision ID: 3f9c2a7d1e04
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9c2a7d1e04'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ========================================================================
    # 1. REGISTRY
    # ========================================================================
    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'datasources',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('engine', sa.String(20), nullable=False),
        sa.Column('connection_url', sa.Text(), nullable=False),
        sa.Column('schema_name', sa.String(255), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('project_id', 'name', name='uq_datasources_project_name'),
    )
    op.create_index('ix_datasources_project_id', 'datasources', ['project_id'])

    # ========================================================================
    # 2. SYNCED SCHEMA
    # ========================================================================
    op.create_table(
        'table_nodes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('datasource_id', sa.Uuid(), sa.ForeignKey('datasources.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('row_count', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_selected', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('datasource_id', 'name', name='uq_table_nodes_datasource_name'),
    )
    op.create_index('ix_table_nodes_datasource_id', 'table_nodes', ['datasource_id'])

    op.create_table(
        'column_nodes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('table_id', sa.Uuid(), sa.ForeignKey('table_nodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('data_type', sa.String(100), nullable=False),
        sa.Column('is_primary_key', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ordinal_position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('table_id', 'name', name='uq_column_nodes_table_name'),
    )
    op.create_index('ix_column_nodes_table_id', 'column_nodes', ['table_id'])

    # ========================================================================
    # 3. ONTOLOGY
    # ========================================================================
    op.create_table(
        'ontologies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'version', name='uq_ontologies_project_version'),
    )
    op.create_index('ix_ontologies_project_id', 'ontologies', ['project_id'])

    op.create_table(
        'ontology_entities',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('ontology_id', sa.Uuid(), sa.ForeignKey('ontologies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('primary_table', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('ontology_id', 'name', name='uq_ontology_entities_ontology_name'),
    )
    op.create_index('ix_ontology_entities_ontology_id', 'ontology_entities', ['ontology_id'])

    # ========================================================================
    # 4. RELATIONSHIPS
    # ========================================================================
    op.create_table(
        'entity_relationships',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('ontology_id', sa.Uuid(), sa.ForeignKey('ontologies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('datasource_id', sa.Uuid(), sa.ForeignKey('datasources.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_entity_id', sa.Uuid(),
                  sa.ForeignKey('ontology_entities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('target_entity_id', sa.Uuid(),
                  sa.ForeignKey('ontology_entities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('source_table', sa.String(255), nullable=False),
        sa.Column('source_column', sa.String(255), nullable=False),
        sa.Column('target_table', sa.String(255), nullable=False),
        sa.Column('target_column', sa.String(255), nullable=False),
        sa.Column('detection_method', sa.String(20), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('cardinality', sa.String(10), nullable=False, server_default='N:1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "detection_method IN ('foreign_key', 'pk_match', 'manual')",
            name='ck_entity_relationships_detection_method'
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected')",
            name='ck_entity_relationships_status'
        ),
        sa.CheckConstraint(
            'confidence >= 0.0 AND confidence <= 1.0',
            name='ck_entity_relationships_confidence'
        ),
        sa.CheckConstraint(
            "cardinality IN ('1:1', 'N:1', '1:N', 'N:M')",
            name='ck_entity_relationships_cardinality'
        ),
    )
    op.create_index('idx_entity_relationships_project_id', 'entity_relationships', ['project_id'])
    op.create_index('idx_entity_relationships_datasource_id', 'entity_relationships', ['datasource_id'])

    # One active (non-rejected) relationship per column pair, ontology and datasource
    op.create_index(
        'uq_entity_relationships_active_tuple',
        'entity_relationships',
        ['ontology_id', 'datasource_id', 'source_table', 'source_column', 'target_table', 'target_column'],
        unique=True,
        postgresql_where=sa.text("status <> 'rejected'"),
        sqlite_where=sa.text("status <> 'rejected'"),
    )


def downgrade() -> None:
    op.drop_index('uq_entity_relationships_active_tuple', table_name='entity_relationships')
    op.drop_index('idx_entity_relationships_datasource_id', table_name='entity_relationships')
    op.drop_index('idx_entity_relationships_project_id', table_name='entity_relationships')
    op.drop_table('entity_relationships')

    op.drop_index('ix_ontology_entities_ontology_id', table_name='ontology_entities')
    op.drop_table('ontology_entities')
    op.drop_index('ix_ontologies_project_id', table_name='ontologies')
    op.drop_table('ontologies')

    op.drop_index('ix_column_nodes_table_id', table_name='column_nodes')
    op.drop_table('column_nodes')
    op.drop_index('ix_table_nodes_datasource_id', table_name='table_nodes')
    op.drop_table('table_nodes')

    op.drop_index('ix_datasources_project_id', table_name='datasources')
    op.drop_table('datasources')
    op.drop_table('projects')
