"""Store interfaces consumed by the retrieval engine, plus local adapters.

Three store roles back retrieval:

- :class:`VectorStore` — similarity search over unit embeddings.
- :class:`MetadataStore` — unit records by identifier, type, or text.
- :class:`GraphStore` — forward/reverse dependency lookups.

The engine only talks to the abstract interfaces; concrete backends are
chosen by :mod:`codegraph_context.builder`.  Local adapters:

- **In-memory** vector and metadata stores for tests and small projects.
- **SQLite** metadata store (JSON column, upsert, batch lookups).
- **Memory** graph store wrapping a :class:`DependencyGraph`.

The LanceDB vector store lives in :mod:`codegraph_context.vector_store`.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .dependency_graph import DependencyGraph
from .models import Unit, VectorHit, type_name

logger = logging.getLogger(__name__)


# ===================================================================
# Interfaces
# ===================================================================

class VectorStore(ABC):
    """Similarity search over embedding vectors."""

    @abstractmethod
    def store(self, id: str, vector: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        ...

    def store_batch(self, entries: Iterable[Dict[str, Any]]) -> None:
        """Store many ``{"id", "vector", "metadata"}`` entries."""
        for entry in entries:
            self.store(entry["id"], entry["vector"], entry.get("metadata") or {})

    @abstractmethod
    def search(
        self,
        vector: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[VectorHit]:
        """Return hits sorted by descending similarity."""
        ...

    @abstractmethod
    def delete(self, id: str) -> None:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        ...


class MetadataStore(ABC):
    """Unit records keyed by identifier."""

    @abstractmethod
    def store(self, id: str, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def find(self, id: str) -> Optional[Dict[str, Any]]:
        ...

    def find_batch(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Resolve many identifiers at once; unknown ids are omitted.

        Adapters should override this with a single round-trip.
        """
        found: Dict[str, Dict[str, Any]] = {}
        for id in ids:
            record = self.find(id)
            if record is not None:
                found[id] = record
        return found

    @abstractmethod
    def find_by_type(self, unit_type: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def search(self, text: str) -> List[Dict[str, Any]]:
        """Records whose content contains *text* (case-insensitive)."""
        ...

    @abstractmethod
    def delete(self, id: str) -> None:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        ...


class GraphStore(ABC):
    """Dependency lookups; unknown identifiers yield empty lists."""

    @abstractmethod
    def dependencies_of(self, id: str) -> List[str]:
        ...

    @abstractmethod
    def dependents_of(self, id: str) -> List[str]:
        ...


# ===================================================================
# In-memory adapters
# ===================================================================

class InMemoryVectorStore(VectorStore):
    """Dictionary-backed vector store scored by cosine similarity."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}

    def store(self, id: str, vector: List[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._entries[id] = {"vector": list(vector), "metadata": dict(metadata or {})}

    def search(
        self,
        vector: List[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[VectorHit]:
        hits = [
            VectorHit(id=id, score=_cosine(vector, entry["vector"]), metadata=entry["metadata"])
            for id, entry in self._entries.items()
            if _matches(entry["metadata"], filters)
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    def delete(self, id: str) -> None:
        self._entries.pop(id, None)

    def delete_by_filter(self, filters: Dict[str, Any]) -> None:
        doomed = [id for id, entry in self._entries.items() if _matches(entry["metadata"], filters)]
        for id in doomed:
            del self._entries[id]

    def count(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class InMemoryMetadataStore(MetadataStore):
    """Dictionary-backed metadata store; search scans records in insertion order."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        self._haystacks: Dict[str, str] = {}

    def store(self, id: str, record: Dict[str, Any]) -> None:
        payload = dict(record)
        payload["id"] = id
        self._records[id] = payload
        self._haystacks[id] = json.dumps(payload, default=str).lower()

    def find(self, id: str) -> Optional[Dict[str, Any]]:
        return self._records.get(id)

    def find_batch(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        return {id: self._records[id] for id in ids if id in self._records}

    def find_by_type(self, unit_type: str) -> List[Dict[str, Any]]:
        wanted = type_name(unit_type)
        return [r for r in self._records.values() if type_name(r.get("type")) == wanted]

    def search(self, text: str) -> List[Dict[str, Any]]:
        needle = text.lower()
        return [self._records[id] for id, hay in self._haystacks.items() if needle in hay]

    def delete(self, id: str) -> None:
        self._records.pop(id, None)
        self._haystacks.pop(id, None)

    def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._haystacks.clear()


# ===================================================================
# SQLite metadata store
# ===================================================================

class SQLiteMetadataStore(MetadataStore):
    """Unit records stored as JSON in a single SQLite table."""

    def __init__(self, db_path: Union[str, Path] = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS units (
                id         TEXT PRIMARY KEY,
                type       TEXT,
                data       TEXT NOT NULL,
                updated_at TEXT
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_units_type ON units(type)")
        self.conn.commit()

    def store(self, id: str, record: Dict[str, Any]) -> None:
        payload = dict(record)
        payload["id"] = id
        self.conn.execute(
            """
            INSERT INTO units (id, type, data, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type = excluded.type,
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            (
                id,
                type_name(payload.get("type")),
                json.dumps(payload, default=str),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self.conn.commit()

    def find(self, id: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute("SELECT data FROM units WHERE id = ?", (id,)).fetchone()
        return json.loads(row["data"]) if row else None

    def find_batch(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return {}
        placeholders = ",".join("?" * len(id_list))
        rows = self.conn.execute(
            f"SELECT id, data FROM units WHERE id IN ({placeholders})", id_list,
        ).fetchall()
        return {row["id"]: json.loads(row["data"]) for row in rows}

    def find_by_type(self, unit_type: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT data FROM units WHERE type = ? ORDER BY rowid", (type_name(unit_type),),
        ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def search(self, text: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT data FROM units WHERE lower(data) LIKE ? ESCAPE '\\' ORDER BY rowid",
            (f"%{_escape_like(text.lower())}%",),
        ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def delete(self, id: str) -> None:
        self.conn.execute("DELETE FROM units WHERE id = ?", (id,))
        self.conn.commit()

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM units").fetchone()[0]

    def clear(self) -> None:
        self.conn.execute("DELETE FROM units")
        self.conn.commit()


# ===================================================================
# Graph store
# ===================================================================

class MemoryGraphStore(GraphStore):
    """Graph store delegating to an in-process :class:`DependencyGraph`."""

    def __init__(self, graph: Optional[DependencyGraph] = None) -> None:
        self.graph = graph if graph is not None else DependencyGraph()

    def register(self, unit: Unit) -> None:
        self.graph.register(unit)

    def dependencies_of(self, id: str) -> List[str]:
        return self.graph.dependencies_of(id)

    def dependents_of(self, id: str) -> List[str]:
        return self.graph.dependents_of(id)

    def affected_by(self, changed_files: Iterable[str], max_depth: Optional[int] = None) -> List[str]:
        return self.graph.affected_by(changed_files, max_depth=max_depth)

    def by_type(self, unit_type: str) -> List[str]:
        return self.graph.units_of_type(unit_type)

    def pagerank(self, damping: float = 0.85, iterations: int = 20) -> Dict[str, float]:
        return self.graph.pagerank(damping=damping, iterations=iterations)


# ===================================================================
# Indexing helper
# ===================================================================

def index_units(
    units: Iterable[Unit],
    metadata_store: MetadataStore,
    graph_store: Optional[MemoryGraphStore] = None,
    vector_store: Optional[VectorStore] = None,
    embedder: Any = None,
) -> Dict[str, int]:
    """Load extracted *units* into the stores.

    The graph is registered first so every unit's metadata can carry an
    ``importance`` bucket derived from PageRank.  Vectors are written only
    when both *vector_store* and *embedder* are given.  Units already in a
    supplied graph are registered again, which is a no-op for their edges.
    """
    from .ranker import importance_buckets

    unit_list = list(units)
    buckets: Dict[str, str] = {}
    if graph_store is not None:
        for unit in unit_list:
            graph_store.register(unit)
        buckets = importance_buckets(graph_store.pagerank())

    for unit in unit_list:
        record = unit.to_dict()
        if unit.identifier in buckets:
            record["metadata"] = {**record["metadata"], "importance": buckets[unit.identifier]}
        metadata_store.store(unit.identifier, record)

    vectors = 0
    if vector_store is not None and embedder is not None:
        texts = [_embedding_text(unit) for unit in unit_list]
        embeddings = embedder.embed_batch(texts)
        vector_store.store_batch(
            {
                "id": unit.identifier,
                "vector": vector,
                "metadata": {"type": type_name(unit.type), "file_path": unit.file_path or ""},
            }
            for unit, vector in zip(unit_list, embeddings)
        )
        vectors = len(embeddings)

    logger.info("Indexed %d units (%d vectors)", len(unit_list), vectors)
    return {"units": len(unit_list), "vectors": vectors}


_MAX_EMBED_CODE = 1500


def _embedding_text(unit: Unit) -> str:
    parts = [
        f"identifier: {unit.identifier}",
        f"type: {type_name(unit.type)}",
    ]
    if unit.file_path:
        parts.append(f"file: {unit.file_path}")
    code = unit.source_code or ""
    if len(code) > _MAX_EMBED_CODE:
        code = code[:_MAX_EMBED_CODE]
    if code:
        parts.append(code)
    return "\n".join(parts)


def _matches(metadata: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(metadata.get(key) == value for key, value in filters.items())


def _cosine(vec_a: List[float], vec_b: List[float]) -> float:
    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector dimension mismatch ({len(vec_a)} vs {len(vec_b)})")
    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a < 1e-12 or norm_b < 1e-12:
        return 0.0
    return dot / (norm_a * norm_b)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
