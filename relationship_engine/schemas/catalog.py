"""Immutable schema snapshot shared by the discovery strategies of one run"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Tuple
from uuid import UUID


class ColumnInfo(BaseModel):
    """A column as read from the datasource catalog"""
    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_primary_key: bool = False
    is_nullable: bool = True
    ordinal_position: int = 0


class TableInfo(BaseModel):
    """A table as read from the datasource catalog, with its selection flag"""
    model_config = ConfigDict(frozen=True)

    name: str
    row_count: int = Field(default=0, ge=0)
    columns: Tuple[ColumnInfo, ...] = ()
    is_selected: bool = True

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    @property
    def primary_key_columns(self) -> Tuple[ColumnInfo, ...]:
        return tuple(c for c in self.columns if c.is_primary_key)

    def column(self, name: str) -> Optional[ColumnInfo]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class ForeignKeyInfo(BaseModel):
    """A declared foreign key constraint; composite constraints list several columns"""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    source_table: str
    source_columns: Tuple[str, ...]
    target_table: str
    target_columns: Tuple[str, ...]


class SchemaSnapshot(BaseModel):
    """
    Read-only view of a datasource taken once per discovery run.

    foreign_keys is None when the constraint read failed; fk_error then holds
    the reason so the FK strategy can report it while PK-match still runs.
    """
    model_config = ConfigDict(frozen=True)

    datasource_id: UUID
    tables: Tuple[TableInfo, ...] = ()
    foreign_keys: Optional[Tuple[ForeignKeyInfo, ...]] = None
    fk_error: Optional[str] = None

    def table(self, name: str) -> Optional[TableInfo]:
        for tbl in self.tables:
            if tbl.name == name:
                return tbl
        return None

    def is_selected(self, table_name: str) -> bool:
        tbl = self.table(table_name)
        return tbl is not None and tbl.is_selected

    def selected_tables(self) -> List[TableInfo]:
        return [t for t in self.tables if t.is_selected]
