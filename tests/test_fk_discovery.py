"""Tests for foreign key discovery"""
import uuid
import pytest

from relationship_engine.core.errors import CatalogUnavailableError
from relationship_engine.db.models import Cardinality, DetectionMethod, EntityRelationship, RelationshipStatus
from relationship_engine.schemas.catalog import SchemaSnapshot
from relationship_engine.services.discovery_strategies import FKDiscoveryStrategy
from relationship_engine.services.relationship_service import RelationshipService


def _snapshot(tables, foreign_keys, fk_error=None):
    return SchemaSnapshot(
        datasource_id=uuid.uuid4(),
        tables=tuple(tables),
        foreign_keys=None if foreign_keys is None else tuple(foreign_keys),
        fk_error=fk_error,
    )


class TestFKDiscoveryStrategy:
    """Candidates come from declared constraints only"""

    def test_one_candidate_per_constraint(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("users", 10, ["id"]), table_info("orders", 0, ["id", "user_id"])],
            [foreign_key("orders.user_id", "users.id", name="fk_orders_user")],
        )
        candidates = FKDiscoveryStrategy().run(snapshot)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.column_pair == ("orders", "user_id", "users", "id")
        assert candidate.method == DetectionMethod.FOREIGN_KEY
        assert candidate.constraint_name == "fk_orders_user"

    def test_composite_constraint_is_decomposed(self, table_info, foreign_key):
        snapshot = _snapshot(
            [
                table_info("order_lines", 5, ["order_id", "line_no", "sku"], pk=("order_id", "line_no")),
                table_info("shipments", 5, ["id", "order_id", "line_no"]),
            ],
            [foreign_key("shipments.order_id,line_no", "order_lines.order_id,line_no")],
        )
        pairs = [c.column_pair for c in FKDiscoveryStrategy().run(snapshot)]
        assert pairs == [
            ("shipments", "order_id", "order_lines", "order_id"),
            ("shipments", "line_no", "order_lines", "line_no"),
        ]

    def test_self_reference_is_kept(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("employees", 3, ["id", "manager_id"])],
            [foreign_key("employees.manager_id", "employees.id")],
        )
        pairs = [c.column_pair for c in FKDiscoveryStrategy().run(snapshot)]
        assert pairs == [("employees", "manager_id", "employees", "id")]

    def test_unselected_tables_are_ignored(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("users", 10, ["id"], selected=False), table_info("orders", 1, ["id", "user_id"])],
            [foreign_key("orders.user_id", "users.id")],
        )
        assert FKDiscoveryStrategy().run(snapshot) == []

    def test_duplicate_constraints_yield_one_candidate(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("users", 10, ["id"]), table_info("orders", 1, ["id", "user_id"])],
            [foreign_key("orders.user_id", "users.id", "a"), foreign_key("orders.user_id", "users.id", "b")],
        )
        assert len(FKDiscoveryStrategy().run(snapshot)) == 1

    def test_unreadable_constraints_raise(self, table_info):
        snapshot = _snapshot([table_info("users", 10, ["id"])], None, fk_error="permission denied")
        with pytest.raises(CatalogUnavailableError, match="permission denied"):
            FKDiscoveryStrategy().run(snapshot)

    def test_without_catalog_cardinality_defaults_to_many_to_one(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("users", 10, ["id"]), table_info("orders", 1, ["id", "user_id"])],
            [foreign_key("orders.user_id", "users.id")],
        )
        assert FKDiscoveryStrategy().run(snapshot)[0].cardinality == Cardinality.MANY_TO_ONE

    def test_cardinality_is_measured_with_catalog(self, fake_catalog, table_info, foreign_key):
        users = table_info("users", 3, ["id"])
        profiles = table_info("profiles", 3, ["id", "user_id"])
        orders = table_info("orders", 4, ["id", "user_id"])
        catalog = fake_catalog(
            tables=[users, profiles, orders],
            values={
                ("users", "id"): [1, 2, 3],
                ("profiles", "user_id"): [1, 2, 3],
                ("orders", "user_id"): [1, 1, 2, 2],
            },
        )
        snapshot = _snapshot(
            [users, profiles, orders],
            [foreign_key("profiles.user_id", "users.id"), foreign_key("orders.user_id", "users.id")],
        )

        candidates = {c.source_table: c for c in FKDiscoveryStrategy(catalog).run(snapshot)}

        assert candidates["profiles"].cardinality == Cardinality.ONE_TO_ONE
        assert candidates["orders"].cardinality == Cardinality.MANY_TO_ONE

    def test_failed_measurement_defaults_to_many_to_one(self, fake_catalog, table_info, foreign_key):
        users = table_info("users", 3, ["id"])
        profiles = table_info("profiles", 3, ["id", "user_id"])
        catalog = fake_catalog(
            tables=[users, profiles],
            values={("users", "id"): [1, 2, 3], ("profiles", "user_id"): [1, 2, 3]},
            failing={("profiles", "user_id")},
        )
        snapshot = _snapshot([users, profiles], [foreign_key("profiles.user_id", "users.id")])

        candidates = FKDiscoveryStrategy(catalog).run(snapshot)

        assert candidates[0].cardinality == Cardinality.MANY_TO_ONE

    def test_progress_is_reported(self, table_info, foreign_key):
        snapshot = _snapshot(
            [table_info("users", 10, ["id"]), table_info("orders", 1, ["id", "user_id"])],
            [foreign_key("orders.user_id", "users.id")],
        )
        calls = []
        FKDiscoveryStrategy().run(snapshot, progress=lambda done, total, msg: calls.append((done, total)))
        assert calls == [(1, 1)]


class TestFKDiscoveryService:
    """Foreign key discovery against a real customer database"""

    def test_declared_fk_becomes_confirmed_relationship(self, db_session, sample_project, sample_datasource):
        service = RelationshipService(db_session)
        result = service.discover_fk_relationships(sample_project.id, sample_datasource.id)

        assert result.created == 1
        assert result.upgraded == 0

        rels = db_session.query(EntityRelationship).all()
        assert len(rels) == 1
        rel = rels[0]
        assert rel.column_pair == ("orders", "user_id", "users", "id")
        assert rel.detection_method == DetectionMethod.FOREIGN_KEY
        assert rel.confidence == 1.0
        assert rel.status == RelationshipStatus.CONFIRMED

    def test_fk_discovery_is_deterministic(self, db_session, sample_project, sample_datasource):
        service = RelationshipService(db_session)
        service.discover_fk_relationships(sample_project.id, sample_datasource.id)
        before = [
            (r.id, r.column_pair, r.confidence, r.status, r.updated_at)
            for r in db_session.query(EntityRelationship).all()
        ]

        second = service.discover_fk_relationships(sample_project.id, sample_datasource.id)

        after = [
            (r.id, r.column_pair, r.confidence, r.status, r.updated_at)
            for r in db_session.query(EntityRelationship).all()
        ]
        assert second.created == 0
        assert second.upgraded == 0
        assert after == before

    def test_progress_callback(self, db_session, sample_project, sample_datasource):
        calls = []
        RelationshipService(db_session).discover_fk_relationships(
            sample_project.id, sample_datasource.id,
            progress=lambda done, total, msg: calls.append((done, total, msg)),
        )
        assert calls[-1][0] == calls[-1][1] == 1
        assert "orders" in calls[-1][2]
