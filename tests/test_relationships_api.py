"""Tests for the relationships endpoints"""
import pytest
from unittest.mock import patch
from uuid import uuid4
from fastapi import status

from relationship_engine.core.errors import InternalError
from relationship_engine.db.models import DetectionMethod, RelationshipStatus
from relationship_engine.services.relationship_service import RelationshipService


def _base(project_id):
    return f"/api/v1/projects/{project_id}"


def _discover(client, project, datasource, json=None):
    return client.post(
        f"{_base(project.id)}/datasources/{datasource.id}/relationships/discover",
        json=json,
    )


def test_discover_without_body(client, sample_project, sample_datasource):
    """Test discovery runs every strategy by default"""
    response = _discover(client, sample_project, sample_datasource)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["fk_relationships"] == 1
    assert data["inferred_relationships"] == 1
    assert data["total_relationships"] == 2
    assert data["empty_tables"] == ["orders"]
    assert data["orphan_tables"] == ["settings"]
    assert data["errors"] == []


def test_discover_single_strategy(client, sample_project, sample_datasource):
    response = _discover(client, sample_project, sample_datasource, {"strategy": "pk_match"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["fk_relationships"] == 0
    assert data["inferred_relationships"] == 1


def test_discover_unknown_strategy(client, sample_project, sample_datasource):
    response = _discover(client, sample_project, sample_datasource, {"strategy": "embedding"})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_discover_unknown_datasource(client, sample_project):
    response = client.post(f"{_base(sample_project.id)}/datasources/{uuid4()}/relationships/discover")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_internal_errors_are_not_leaked(client, sample_project, sample_datasource):
    """Test unexpected failures return a generic message"""
    with patch.object(
        RelationshipService, "discover_relationships",
        side_effect=InternalError("password authentication failed for user admin"),
    ):
        response = _discover(client, sample_project, sample_datasource)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["detail"] == "Failed to discover relationships"


def test_list_relationships(client, sample_project, sample_datasource):
    _discover(client, sample_project, sample_datasource)

    response = client.get(f"{_base(sample_project.id)}/relationships")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 2

    by_type = {r["relationship_type"]: r for r in data["relationships"]}
    assert by_type["fk"]["is_validated"] is True
    assert by_type["fk"]["is_approved"] is True
    assert by_type["fk"]["confidence"] == 1.0
    assert by_type["inferred"]["is_validated"] is False
    assert by_type["inferred"]["is_approved"] is None
    assert by_type["inferred"]["confidence"] == pytest.approx(0.85)
    assert by_type["fk"]["cardinality"] == "N:1"
    assert by_type["inferred"]["cardinality"] == "1:1"


def test_list_relationships_unknown_project(client):
    response = client.get(f"{_base(uuid4())}/relationships")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_list_active_only(client, sample_project, make_relationship):
    make_relationship("orders.user_id", "users.id", DetectionMethod.FOREIGN_KEY)
    make_relationship("channels.owner_id", "users.id", DetectionMethod.PK_MATCH, status=RelationshipStatus.REJECTED)

    all_rows = client.get(f"{_base(sample_project.id)}/relationships").json()
    active = client.get(f"{_base(sample_project.id)}/relationships", params={"active_only": "true"}).json()

    assert all_rows["total"] == 2
    assert active["total"] == 1
    assert active["relationships"][0]["source_table"] == "orders"


def test_get_diagnostics(client, sample_project, sample_datasource):
    _discover(client, sample_project, sample_datasource)
    response = client.get(
        f"{_base(sample_project.id)}/datasources/{sample_datasource.id}/relationships/diagnostics"
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"empty_tables": ["orders"], "orphan_tables": ["settings"]}


def test_two_datasources_discover_independently(client, sample_project, sample_datasource, replica_datasource):
    """Test the same pairs are discovered again in a second datasource of the project"""
    assert _discover(client, sample_project, sample_datasource).json()["total_relationships"] == 2

    response = _discover(client, sample_project, replica_datasource)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["total_relationships"] == 2
    listed = client.get(f"{_base(sample_project.id)}/relationships").json()
    assert listed["total"] == 4


class TestManualRelationships:
    @pytest.fixture
    def synced(self, client, sample_project, sample_datasource):
        response = client.post(
            f"{_base(sample_project.id)}/datasources/{sample_datasource.id}/schema/sync"
        )
        assert response.status_code == status.HTTP_200_OK
        return f"{_base(sample_project.id)}/datasources/{sample_datasource.id}/relationships"

    def test_add_manual(self, client, synced):
        response = client.post(synced, json={
            "source_table": "channels",
            "source_column": "owner_id",
            "target_table": "users",
            "target_column": "id",
            "description": "Channel owner",
        })
        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["relationship_type"] == "manual"
        assert data["status"] == "confirmed"
        assert data["confidence"] == 1.0
        assert data["is_approved"] is True
        assert data["cardinality"] == "N:1"

    def test_add_with_cardinality(self, client, synced):
        response = client.post(synced, json={
            "source_table": "channels",
            "source_column": "owner_id",
            "target_table": "users",
            "target_column": "id",
            "cardinality": "1:1",
        })
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["cardinality"] == "1:1"

    def test_add_unknown_cardinality(self, client, synced):
        response = client.post(synced, json={
            "source_table": "channels",
            "source_column": "owner_id",
            "target_table": "users",
            "target_column": "id",
            "cardinality": "many",
        })
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_add_duplicate(self, client, synced):
        payload = {
            "source_table": "channels",
            "source_column": "owner_id",
            "target_table": "users",
            "target_column": "id",
        }
        assert client.post(synced, json=payload).status_code == status.HTTP_201_CREATED
        response = client.post(synced, json=payload)
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_add_unknown_column(self, client, synced):
        response = client.post(synced, json={
            "source_table": "channels",
            "source_column": "team_id",
            "target_table": "users",
            "target_column": "id",
        })
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_add_self_pair(self, client, synced):
        response = client.post(synced, json={
            "source_table": "users",
            "source_column": "id",
            "target_table": "users",
            "target_column": "id",
        })
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_add_blank_name(self, client, synced):
        response = client.post(synced, json={
            "source_table": "  ",
            "source_column": "owner_id",
            "target_table": "users",
            "target_column": "id",
        })
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestCuration:
    def test_remove(self, client, sample_project, make_relationship):
        rel = make_relationship("orders.user_id", "users.id", DetectionMethod.FOREIGN_KEY)

        response = client.delete(f"{_base(sample_project.id)}/relationships/{rel.id}")
        assert response.status_code == status.HTTP_204_NO_CONTENT

        listed = client.get(f"{_base(sample_project.id)}/relationships").json()
        assert listed["relationships"][0]["status"] == "rejected"
        assert listed["relationships"][0]["is_approved"] is False

        again = client.delete(f"{_base(sample_project.id)}/relationships/{rel.id}")
        assert again.status_code == status.HTTP_404_NOT_FOUND

    def test_approve_then_reject(self, client, sample_project, make_relationship):
        rel = make_relationship("channels.owner_id", "users.id", DetectionMethod.PK_MATCH)

        approved = client.post(f"{_base(sample_project.id)}/relationships/{rel.id}/approve")
        assert approved.status_code == status.HTTP_200_OK
        assert approved.json()["status"] == "confirmed"
        assert approved.json()["is_validated"] is True

        rejected = client.post(f"{_base(sample_project.id)}/relationships/{rel.id}/reject")
        assert rejected.status_code == status.HTTP_200_OK
        assert rejected.json()["status"] == "rejected"

    def test_approve_rejected_conflicts(self, client, sample_project, make_relationship):
        rel = make_relationship(
            "channels.owner_id", "users.id", DetectionMethod.PK_MATCH, status=RelationshipStatus.REJECTED
        )
        response = client.post(f"{_base(sample_project.id)}/relationships/{rel.id}/approve")
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_unknown_relationship(self, client, sample_project):
        response = client.post(f"{_base(sample_project.id)}/relationships/{uuid4()}/reject")
        assert response.status_code == status.HTTP_404_NOT_FOUND
