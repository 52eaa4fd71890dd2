from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List

from adapters.db.base import StoreAdapter
from inspector.identifiers import ORM_MARKER_TABLE
from inspector.schema import SchemaIntrospector, read_failure
from inspector.types import (
    Cardinality,
    ColumnDescriptor,
    ErdGraph,
    ErdTable,
    ForeignKeyEdge,
    Relationship,
)

log = logging.getLogger(__name__)


def cardinality_for(column: ColumnDescriptor | None) -> Cardinality:
    """
    The referenced table is always the "one" side; the referencing column
    decides the other: a key column can appear once, anything else many times.
    """
    if column is not None and column.pk > 0:
        return Cardinality.ONE_TO_ONE
    return Cardinality.MANY_TO_ONE


class ERDRelationshipBuilder:
    """Derives a typed relationship graph from foreign-key metadata."""

    def __init__(self, introspector: SchemaIntrospector) -> None:
        self.introspector = introspector

    def build_graph(self, source: str) -> ErdGraph:
        adapter = self.introspector.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                graph = self._build(adapter, conn, source)
            except sqlite3.Error as e:
                raise read_failure(source, e) from e
        log.debug(
            "Built relationship graph",
            extra={
                "source": source,
                "table_count": len(graph.tables),
                "relationship_count": len(graph.relationships),
            },
        )
        return graph

    def _build(
        self, adapter: StoreAdapter, conn: sqlite3.Connection, source: str
    ) -> ErdGraph:
        names = self.introspector.visible_tables(adapter, conn)
        columns_by_table: Dict[str, List[ColumnDescriptor]] = {
            name: self.introspector.reflect_columns(adapter, conn, name)
            for name in names
        }

        tables: List[ErdTable] = []
        relationships: List[Relationship] = []
        for name in names:
            columns = columns_by_table[name]
            edges = self._foreign_keys(adapter, conn, name, columns_by_table)
            tables.append(ErdTable(name=name, columns=columns, foreign_keys=edges))

            by_name = {c.name: c for c in columns}
            for fk in edges:
                relationships.append(
                    Relationship(
                        from_table=name,
                        from_column=fk.from_column,
                        to_table=fk.table,
                        to_column=fk.to_column,
                        cardinality=cardinality_for(by_name.get(fk.from_column)),
                    )
                )

        return ErdGraph(
            source=source,
            tables=tables,
            relationships=relationships,
            orm_managed=adapter.has_table(conn, ORM_MARKER_TABLE),
        )

    def _foreign_keys(
        self,
        adapter: StoreAdapter,
        conn: sqlite3.Connection,
        table: str,
        columns_by_table: Dict[str, List[ColumnDescriptor]],
    ) -> List[ForeignKeyEdge]:
        edges: List[ForeignKeyEdge] = []
        for row in adapter.foreign_key_list(conn, table):
            fk_id, seq, target, from_col, to_col, on_update, on_delete = row[:7]
            if to_col is None:
                to_col = self._implicit_target(
                    conn, adapter, target, int(seq), from_col, columns_by_table
                )
            edges.append(
                ForeignKeyEdge(
                    id=int(fk_id),
                    seq=int(seq),
                    table=target,
                    from_column=from_col,
                    to_column=to_col,
                    on_update=on_update or "NO ACTION",
                    on_delete=on_delete or "NO ACTION",
                )
            )
        return edges

    def _implicit_target(
        self,
        conn: sqlite3.Connection,
        adapter: StoreAdapter,
        target: str,
        seq: int,
        from_col: str,
        columns_by_table: Dict[str, List[ColumnDescriptor]],
    ) -> str:
        # "REFERENCES parent" without a column list targets parent's primary key
        target_cols = columns_by_table.get(target)
        if target_cols is None:
            target_cols = self.introspector.reflect_columns(adapter, conn, target)
        key = [c.name for c in sorted(target_cols, key=lambda c: c.pk) if c.pk > 0]
        if seq < len(key):
            return key[seq]
        return from_col
