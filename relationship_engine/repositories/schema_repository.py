"""Data access for the stored copy of a datasource's tables and columns"""

from sqlalchemy.orm import Session, selectinload
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from ..db.models import ColumnNode, Datasource, TableNode
from ..schemas.catalog import TableInfo


class SchemaRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_tables(self, datasource_id: UUID) -> List[TableNode]:
        return self.db.query(TableNode).options(selectinload(TableNode.columns)).filter(
            TableNode.datasource_id == datasource_id
        ).order_by(TableNode.name).all()

    def get_table(self, datasource_id: UUID, name: str) -> Optional[TableNode]:
        return self.db.query(TableNode).filter(
            TableNode.datasource_id == datasource_id,
            TableNode.name == name,
        ).first()

    def get_table_by_id(self, datasource_id: UUID, table_id: UUID) -> Optional[TableNode]:
        return self.db.query(TableNode).filter(
            TableNode.datasource_id == datasource_id,
            TableNode.id == table_id,
        ).first()

    def get_column(self, table: TableNode, name: str) -> Optional[ColumnNode]:
        return self.db.query(ColumnNode).filter(
            ColumnNode.table_id == table.id,
            ColumnNode.name == name,
        ).first()

    def sync(self, datasource: Datasource, tables: Sequence[TableInfo]) -> Dict[str, TableNode]:
        """
        Replace the stored schema of a datasource with what the catalog returned.

        Existing tables keep their id and is_selected flag, new tables start
        selected, and tables no longer in the catalog are deleted together
        with their columns. Returns the stored tables by name.
        """
        existing = {t.name: t for t in self.get_tables(datasource.id)}
        seen: Dict[str, TableNode] = {}

        for info in tables:
            node = existing.get(info.name)
            if node is None:
                node = TableNode(datasource_id=datasource.id, name=info.name, is_selected=True)
                self.db.add(node)
            node.row_count = info.row_count

            stored_columns = {c.name: c for c in node.columns}
            for col in info.columns:
                col_node = stored_columns.pop(col.name, None)
                if col_node is None:
                    col_node = ColumnNode(name=col.name)
                    node.columns.append(col_node)
                col_node.data_type = col.data_type
                col_node.is_primary_key = col.is_primary_key
                col_node.ordinal_position = col.ordinal_position
            for stale in stored_columns.values():
                node.columns.remove(stale)
            seen[info.name] = node

        for name, node in existing.items():
            if name not in seen:
                self.db.delete(node)

        datasource.last_synced_at = datetime.now(timezone.utc)
        self.db.flush()
        return seen
