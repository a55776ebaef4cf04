"""Pytest configuration and fixtures"""
import os

# The app's engine is created at import time; keep it off PostgreSQL in tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from relationship_engine.core.cancellation import CancelToken
from relationship_engine.core.database import Base, get_db
from relationship_engine.main import app
from relationship_engine.db.models import (
    Datasource, DetectionMethod, EntityRelationship, Project, RelationshipStatus, SQLEngineType,
)
from relationship_engine.repositories.ontology_repository import OntologyRepository
from relationship_engine.schemas.catalog import ColumnInfo, ForeignKeyInfo, TableInfo
from relationship_engine.schemas.discovery import JoinStats
from relationship_engine.services.schema_catalog import SchemaCatalog
from relationship_engine.core.errors import SamplingFailedError


# Engine store under test (in-memory SQLite unless overridden)
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

if TEST_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(TEST_DATABASE_URL)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============================================================================
# Customer databases (what the catalog reflects)
# ============================================================================

# users 1001-1020; channels.owner_id has 20 distinct values, 17 of them users
CHANNEL_OWNERS = list(range(1001, 1018)) + [9001, 9002, 9003]


def _build_sqlite_db(path, statements):
    url = f"sqlite:///{path}"
    customer_engine = create_engine(url)
    with customer_engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))
    customer_engine.dispose()
    return url


@pytest.fixture
def customer_db_url(tmp_path):
    """
    SaaS-style customer database:
    - orders.user_id is a declared FK to users.id, orders is empty
    - channels.owner_id has no FK, 85% of its values are user ids
    - settings is unrelated to everything
    """
    statements = [
        "CREATE TABLE users (id INTEGER PRIMARY KEY, email VARCHAR(255), name VARCHAR(100))",
        "CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER REFERENCES users(id), total REAL)",
        "CREATE TABLE channels (id INTEGER PRIMARY KEY, owner_id INTEGER, title VARCHAR(100))",
        "CREATE TABLE settings (id INTEGER PRIMARY KEY, setting VARCHAR(100), value TEXT)",
        "INSERT INTO settings (id, setting, value) VALUES (1, 'theme', 'dark')",
    ]
    for user_id in range(1001, 1021):
        statements.append(
            f"INSERT INTO users (id, email, name) VALUES ({user_id}, 'u{user_id}@example.com', 'User {user_id}')"
        )
    for index, owner_id in enumerate(CHANNEL_OWNERS, start=1):
        statements.append(
            f"INSERT INTO channels (id, owner_id, title) VALUES ({index}, {owner_id}, 'channel {index}')"
        )
    return _build_sqlite_db(tmp_path / "customer.db", statements)


@pytest.fixture
def billing_db_url(tmp_path):
    """invoices.customer_id is a declared FK to customers.id and every value matches"""
    statements = [
        "CREATE TABLE customers (id INTEGER PRIMARY KEY, name VARCHAR(100))",
        "CREATE TABLE invoices (id INTEGER PRIMARY KEY, "
        "customer_id INTEGER REFERENCES customers(id), amount REAL)",
    ]
    for customer_id in range(1, 6):
        statements.append(f"INSERT INTO customers (id, name) VALUES ({customer_id}, 'c{customer_id}')")
    for invoice_id in range(1, 11):
        statements.append(
            f"INSERT INTO invoices (id, customer_id, amount) "
            f"VALUES ({invoice_id}, {(invoice_id % 5) + 1}, 10.0)"
        )
    return _build_sqlite_db(tmp_path / "billing.db", statements)


# ============================================================================
# Store fixtures
# ============================================================================

@pytest.fixture
def sample_project(db_session):
    """Create a sample project for testing"""
    project = Project(name="test_project", description="Test project")
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def sample_datasource(db_session, sample_project, customer_db_url):
    """Datasource pointing at the SaaS customer database"""
    datasource = Datasource(
        project_id=sample_project.id,
        name="saas",
        engine=SQLEngineType.SQLITE,
        connection_url=customer_db_url,
    )
    db_session.add(datasource)
    db_session.commit()
    db_session.refresh(datasource)
    return datasource


@pytest.fixture
def replica_datasource(db_session, sample_project, customer_db_url):
    """Second datasource of the same project on the same customer database"""
    datasource = Datasource(
        project_id=sample_project.id,
        name="replica",
        engine=SQLEngineType.SQLITE,
        connection_url=customer_db_url,
    )
    db_session.add(datasource)
    db_session.commit()
    db_session.refresh(datasource)
    return datasource


@pytest.fixture
def billing_datasource(db_session, sample_project, billing_db_url):
    """Datasource pointing at the billing customer database"""
    datasource = Datasource(
        project_id=sample_project.id,
        name="billing",
        engine=SQLEngineType.SQLITE,
        connection_url=billing_db_url,
    )
    db_session.add(datasource)
    db_session.commit()
    db_session.refresh(datasource)
    return datasource


@pytest.fixture
def ontology(db_session, sample_project):
    ontology = OntologyRepository(db_session).get_or_create_active_ontology(sample_project.id)
    db_session.commit()
    return ontology


@pytest.fixture
def make_relationship(db_session, ontology, sample_datasource):
    """Factory inserting a relationship row directly into the store"""
    def _make(source, target, method=DetectionMethod.PK_MATCH, status=None, confidence=None):
        source_table, source_column = source.split(".")
        target_table, target_column = target.split(".")
        if status is None:
            status = RelationshipStatus.PENDING if method == DetectionMethod.PK_MATCH else RelationshipStatus.CONFIRMED
        rel = EntityRelationship(
            project_id=ontology.project_id,
            ontology_id=ontology.id,
            datasource_id=sample_datasource.id,
            source_table=source_table,
            source_column=source_column,
            target_table=target_table,
            target_column=target_column,
            detection_method=method,
            confidence=confidence if confidence is not None else (0.9 if method == DetectionMethod.PK_MATCH else 1.0),
            status=status,
        )
        db_session.add(rel)
        db_session.commit()
        db_session.refresh(rel)
        return rel
    return _make


# ============================================================================
# Fake catalog
# ============================================================================

class FakeCatalog(SchemaCatalog):
    """
    In-memory SchemaCatalog.

    values maps (table, column) -> list of column values (duplicates and
    None allowed); failing holds (table, column) pairs whose queries fail.
    analyze_join joins the value lists as if each value were one row.
    """

    def __init__(self, tables=(), foreign_keys=(), values=None, failing=()):
        self.tables = list(tables)
        self.foreign_keys = list(foreign_keys)
        self.values = values or {}
        self.failing = set(failing)
        self.sampled = []
        self.joined = []
        self.closed = False

    def get_tables(self, cancel=None):
        tables = []
        for tbl in self.tables:
            if cancel is not None:
                cancel.raise_if_cancelled()
            tables.append(tbl)
        return tables

    def get_foreign_keys(self):
        return list(self.foreign_keys)

    def get_row_count(self, table_name):
        return next(t.row_count for t in self.tables if t.name == table_name)

    def sample_column_values(self, table_name, column_name, limit):
        if (table_name, column_name) in self.failing:
            raise SamplingFailedError(f"cannot sample {table_name}.{column_name}")
        self.sampled.append((table_name, column_name))
        distinct = []
        for value in self.values.get((table_name, column_name), []):
            if value is not None and value not in distinct:
                distinct.append(value)
        return distinct[:limit]

    def check_value_membership(self, table_name, column_name, values):
        if (table_name, column_name) in self.failing:
            raise SamplingFailedError(f"cannot read {table_name}.{column_name}")
        present = set(self.values.get((table_name, column_name), []))
        return len({v for v in values if v in present})

    def analyze_join(self, source_table, source_column, target_table, target_column):
        for key in ((source_table, source_column), (target_table, target_column)):
            if key in self.failing:
                raise SamplingFailedError(f"cannot join {key[0]}.{key[1]}")
        self.joined.append((source_table, source_column, target_table, target_column))
        source = [v for v in self.values.get((source_table, source_column), []) if v is not None]
        target = [v for v in self.values.get((target_table, target_column), []) if v is not None]
        return JoinStats(
            join_count=sum(target.count(v) for v in source),
            source_rows=sum(1 for v in source if v in target),
            target_rows=sum(1 for v in target if v in source),
        )

    def close(self):
        self.closed = True


def int_table(name, rows, columns, pk=("id",), selected=True):
    """TableInfo with INTEGER columns; `pk` names the primary key columns"""
    return TableInfo(
        name=name,
        row_count=rows,
        is_selected=selected,
        columns=tuple(
            ColumnInfo(name=col, data_type="INTEGER", is_primary_key=col in pk, ordinal_position=i)
            for i, col in enumerate(columns, start=1)
        ),
    )


@pytest.fixture
def fake_catalog():
    return FakeCatalog


@pytest.fixture
def table_info():
    return int_table


@pytest.fixture
def foreign_key():
    def _fk(source, target, name=None):
        source_table, _, source_columns = source.partition(".")
        target_table, _, target_columns = target.partition(".")
        return ForeignKeyInfo(
            name=name,
            source_table=source_table,
            source_columns=tuple(source_columns.split(",")),
            target_table=target_table,
            target_columns=tuple(target_columns.split(",")),
        )
    return _fk


class CancelAfter(CancelToken):
    """CancelToken that cancels itself once it has been checked `checks` times"""

    def __init__(self, checks):
        super().__init__()
        self.remaining = checks

    def raise_if_cancelled(self):
        if self.remaining <= 0:
            self.cancel()
        self.remaining -= 1
        super().raise_if_cancelled()


@pytest.fixture
def cancel_after():
    return CancelAfter
