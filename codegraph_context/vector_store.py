"""Vector store backed by LanceDB – serverless, local-first vector database.

Install with ``pip install codegraph-context[lance]``.  All data stays on
disk under the configured directory.

Schema per row:

========= ============ =====================================
Column    Type         Description
========= ============ =====================================
id        utf8         Unit identifier
vector    float32[dim] Embedding vector
type      utf8         Unit type (``model``, ``service``, ...)
file_path utf8         Source file path
========= ============ =====================================
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .models import VectorHit
from .storage import VectorStore

logger = logging.getLogger(__name__)

try:
    import lancedb  # type: ignore[import-untyped]
    import pyarrow as pa  # type: ignore[import-untyped]
    LANCE_AVAILABLE = True
except ImportError:
    LANCE_AVAILABLE = False

METADATA_COLUMNS = ("type", "file_path")


class LanceVectorStore(VectorStore):
    """LanceDB-backed :class:`VectorStore` using cosine distance.

    Scores are reported as similarity (``1 - cosine distance``), so higher is
    better, matching the in-memory store.
    """

    def __init__(self, db_path: Union[str, Path], table_name: str = "units") -> None:
        if not LANCE_AVAILABLE:
            raise ImportError(
                "lancedb is not installed. Install with: pip install codegraph-context[lance]"
            )

        self.db_path = Path(db_path).expanduser()
        self.db_path.mkdir(parents=True, exist_ok=True)
        self.table_name = table_name

        self._db: Any = lancedb.connect(str(self.db_path))
        self._table: Optional[Any] = None
        if table_name in self._db.table_names():
            self._table = self._db.open_table(table_name)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def store(self, id: str, vector: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        self.store_batch([{"id": id, "vector": vector, "metadata": metadata or {}}])

    def store_batch(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Upsert entries by deleting existing ids, then appending."""
        rows = [
            {
                "id": entry["id"],
                "vector": [float(v) for v in entry["vector"]],
                "type": str((entry.get("metadata") or {}).get("type", "")),
                "file_path": str((entry.get("metadata") or {}).get("file_path", "")),
            }
            for entry in entries
        ]
        if not rows:
            return

        if self._table is None:
            schema = pa.schema([
                pa.field("id", pa.utf8()),
                pa.field("vector", pa.list_(pa.float32(), len(rows[0]["vector"]))),
                pa.field("type", pa.utf8()),
                pa.field("file_path", pa.utf8()),
            ])
            self._table = self._db.create_table(self.table_name, data=rows, schema=schema, mode="overwrite")
            logger.debug("Created LanceDB table '%s' with %d rows", self.table_name, len(rows))
            return

        ids = ", ".join(_quote(row["id"]) for row in rows)
        self._table.delete(f"id IN ({ids})")
        self._table.add(rows)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        vector: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[VectorHit]:
        if self._table is None:
            return []

        query = self._table.search(vector).metric("cosine").limit(limit)
        where = _where_clause(filters)
        if where:
            query = query.where(where, prefilter=True)

        hits = []
        for row in query.to_list():
            distance = row.get("_distance", 0.0)
            hits.append(VectorHit(
                id=row.get("id", ""),
                score=1.0 - distance,
                metadata={column: row.get(column, "") for column in METADATA_COLUMNS},
            ))
        return hits

    # ------------------------------------------------------------------
    # Delete / informational
    # ------------------------------------------------------------------

    def delete(self, id: str) -> None:
        if self._table is not None:
            self._table.delete(f"id = {_quote(id)}")

    def delete_by_filter(self, filters: Dict[str, Any]) -> None:
        where = _where_clause(filters)
        if self._table is not None and where:
            self._table.delete(where)

    def count(self) -> int:
        if self._table is None:
            return 0
        return self._table.count_rows()

    def clear(self) -> None:
        """Drop all data; the table is recreated on the next write."""
        if self.table_name in self._db.table_names():
            self._db.drop_table(self.table_name)
        self._table = None


def _quote(value: Any) -> str:
    # Escape single quotes in values to avoid SQL injection
    return "'" + str(value).replace("'", "''") + "'"


def _where_clause(filters: Optional[Dict[str, Any]]) -> str:
    if not filters:
        return ""
    clauses = []
    for key, value in filters.items():
        if key not in METADATA_COLUMNS:
            raise ValueError(
                f"Unknown filter column: '{key}'. Available: {', '.join(METADATA_COLUMNS)}"
            )
        clauses.append(f"{key} = {_quote(value)}")
    return " AND ".join(clauses)
