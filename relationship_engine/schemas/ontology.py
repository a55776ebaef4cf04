"""DTOs for projects, datasources, synced schema and ontology entities"""
from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from ..db.models import SQLEngineType


# Project DTOs
class ProjectCreateDTO(BaseModel):
    """DTO for creating a project"""
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: Optional[str] = Field(None, description="Project description")


class ProjectResponseDTO(BaseModel):
    """DTO for project response"""
    id: UUID
    name: str
    description: Optional[str]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# Datasource DTOs
class DatasourceCreateDTO(BaseModel):
    """DTO for registering a datasource"""
    name: str = Field(..., min_length=1, max_length=255, description="Datasource name")
    engine: SQLEngineType = Field(..., description="SQL dialect")
    connection_url: str = Field(..., min_length=1, description="SQLAlchemy connection URL")
    schema_name: Optional[str] = Field(None, max_length=255, description="Schema to reflect")


class DatasourceResponseDTO(BaseModel):
    """DTO for datasource response. The connection URL is never returned."""
    id: UUID
    project_id: UUID
    name: str
    engine: SQLEngineType
    schema_name: Optional[str]
    last_synced_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# Schema DTOs
class ColumnResponseDTO(BaseModel):
    """DTO for a synced column"""
    id: UUID
    name: str
    data_type: str
    is_primary_key: bool
    ordinal_position: int

    model_config = ConfigDict(from_attributes=True)


class TableResponseDTO(BaseModel):
    """DTO for a synced table"""
    id: UUID
    datasource_id: UUID
    name: str
    row_count: int
    is_selected: bool
    columns: List[ColumnResponseDTO] = []

    model_config = ConfigDict(from_attributes=True)


class TableSelectionUpdateDTO(BaseModel):
    """DTO for including or excluding a table from discovery"""
    is_selected: bool


class SchemaSyncResponseDTO(BaseModel):
    """DTO for schema sync result"""
    tables: int
    columns: int
    removed_tables: int


# Entity DTOs
class EntityCreateDTO(BaseModel):
    """DTO for registering an ontology entity"""
    name: str = Field(..., min_length=1, max_length=255, description="Business name, e.g. Customer")
    primary_table: str = Field(..., min_length=1, max_length=255, description="Backing table")
    description: Optional[str] = None

    @field_validator("primary_table")
    @classmethod
    def validate_primary_table(cls, v: str) -> str:
        """Validate table name doesn't contain spaces"""
        if " " in v:
            raise ValueError("Table name cannot contain spaces")
        return v


class EntityResponseDTO(BaseModel):
    """DTO for entity response"""
    id: UUID
    ontology_id: UUID
    name: str
    primary_table: str
    description: Optional[str]

    model_config = ConfigDict(from_attributes=True)
