"""Empty and orphan table diagnostics."""

from typing import Iterable

from ..schemas.discovery import Diagnostics


class DiagnosticsCalculator:
    """
    Compute advisory table lists after a discovery run.

    Tables are any objects with name, row_count and is_selected (snapshot
    TableInfo or stored TableNode); relationships any objects with
    source_table, target_table and is_active. Unselected tables never appear.
    """

    def compute(self, tables: Iterable, relationships: Iterable) -> Diagnostics:
        selected = [t for t in tables if t.is_selected]

        connected = set()
        for rel in relationships:
            if not rel.is_active:
                continue
            connected.add(rel.source_table)
            connected.add(rel.target_table)

        return Diagnostics(
            empty_tables=sorted(t.name for t in selected if t.row_count == 0),
            orphan_tables=sorted(t.name for t in selected if t.name not in connected),
        )
