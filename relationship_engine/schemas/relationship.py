"""DTOs for entity relationships"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime

from ..db.models import Cardinality, DetectionMethod, EntityRelationship, RelationshipStatus


# Detection method -> external relationship_type
RELATIONSHIP_TYPES = {
    DetectionMethod.FOREIGN_KEY: "fk",
    DetectionMethod.PK_MATCH: "inferred",
    DetectionMethod.MANUAL: "manual",
}


def is_approved(rel_status: RelationshipStatus) -> Optional[bool]:
    """confirmed -> True, rejected -> False, pending -> None (not yet reviewed)"""
    if rel_status == RelationshipStatus.CONFIRMED:
        return True
    if rel_status == RelationshipStatus.REJECTED:
        return False
    return None


class ManualRelationshipCreateDTO(BaseModel):
    """DTO for adding a relationship by hand"""
    source_table: str = Field(..., min_length=1, max_length=255)
    source_column: str = Field(..., min_length=1, max_length=255)
    target_table: str = Field(..., min_length=1, max_length=255)
    target_column: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, description="Why the relationship exists")
    cardinality: Cardinality = Field(Cardinality.MANY_TO_ONE, description="Join shape source:target")

    @field_validator("source_table", "source_column", "target_table", "target_column")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v


class RelationshipResponseDTO(BaseModel):
    """DTO for relationship response"""
    id: UUID
    project_id: UUID
    ontology_id: UUID
    datasource_id: UUID
    source_entity_id: Optional[UUID]
    target_entity_id: Optional[UUID]
    source_table: str
    source_column: str
    target_table: str
    target_column: str
    relationship_type: Literal["fk", "inferred", "manual"]
    detection_method: DetectionMethod
    confidence: float
    cardinality: Cardinality
    status: RelationshipStatus
    is_validated: bool
    is_approved: Optional[bool]
    description: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_model(cls, rel: EntityRelationship) -> "RelationshipResponseDTO":
        return cls(
            id=rel.id,
            project_id=rel.project_id,
            ontology_id=rel.ontology_id,
            datasource_id=rel.datasource_id,
            source_entity_id=rel.source_entity_id,
            target_entity_id=rel.target_entity_id,
            source_table=rel.source_table,
            source_column=rel.source_column,
            target_table=rel.target_table,
            target_column=rel.target_column,
            relationship_type=RELATIONSHIP_TYPES[rel.detection_method],
            detection_method=rel.detection_method,
            confidence=rel.confidence,
            cardinality=rel.cardinality,
            status=rel.status,
            is_validated=rel.status == RelationshipStatus.CONFIRMED,
            is_approved=is_approved(rel.status),
            description=rel.description,
            created_at=rel.created_at,
            updated_at=rel.updated_at,
        )


class RelationshipListResponseDTO(BaseModel):
    """DTO for the relationship list of a project"""
    relationships: List[RelationshipResponseDTO]
    total: int


class DiagnosticsResponseDTO(BaseModel):
    """DTO for empty/orphan table diagnostics"""
    empty_tables: List[str]
    orphan_tables: List[str]
