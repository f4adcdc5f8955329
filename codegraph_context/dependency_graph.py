"""Bidirectional dependency graph over extracted code units.

The graph tracks both what a unit depends on (forward edges) and what depends
on that unit (reverse edges).  It backs three things:

- **Blast radius** — which units are transitively affected by changed files.
- **Importance** — PageRank over the reverse edges.
- **Graph retrieval** — dependency traversal for the ``graph`` strategy.

The graph is built by a single writer calling :meth:`DependencyGraph.register`
for every unit and is treated as read-only once handed to readers.  When the
unit set changes, build a fresh graph with :func:`build_graph`; re-registering
a unit replaces its edges but there is no removal API for deleted units.

Example::

    graph = build_graph(units)
    graph.affected_by(["app/models/user.rb"], max_depth=2)
    graph.pagerank()
"""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .models import TypeTag, Unit, coerce_unit_type, type_name

logger = logging.getLogger(__name__)


class DependencyGraph:
    """In-memory directed graph keyed by unit identifier."""

    def __init__(self) -> None:
        self._nodes: Dict[str, Dict[str, Any]] = {}
        self._edges: Dict[str, List[str]] = {}
        self._reverse: Dict[str, List[str]] = {}
        self._file_map: Dict[str, str] = {}
        self._type_index: Dict[TypeTag, List[str]] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._nodes

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def register(self, unit: Unit) -> None:
        """Insert or update *unit* and its forward/reverse edges.

        Re-registering an identifier drops the reverse edges, file mapping
        and type entry left over from its previous registration.
        """
        identifier = unit.identifier
        unit_type = coerce_unit_type(unit.type)
        previous = self._nodes.get(identifier)
        targets = list(unit.dependency_targets)

        if previous is not None:
            self._forget(identifier, previous, set(targets), unit_type)

        self._nodes[identifier] = {
            "type": unit_type,
            "file_path": unit.file_path,
            "namespace": unit.namespace,
        }

        self._edges[identifier] = targets
        if unit.file_path:
            self._file_map[unit.file_path] = identifier

        bucket = self._type_index.setdefault(unit_type, [])
        if identifier not in bucket:
            bucket.append(identifier)

        for target in targets:
            dependents = self._reverse.setdefault(target, [])
            if identifier not in dependents:
                dependents.append(identifier)

    def _forget(self, identifier: str, previous: Dict[str, Any], keep_targets: set, new_type: TypeTag) -> None:
        for target in self._edges.get(identifier, []):
            if target in keep_targets:
                continue
            dependents = self._reverse.get(target)
            if dependents and identifier in dependents:
                dependents.remove(identifier)
                if not dependents:
                    del self._reverse[target]

        old_path = previous.get("file_path")
        if old_path and self._file_map.get(old_path) == identifier:
            del self._file_map[old_path]

        if previous["type"] == new_type:
            return
        old_bucket = self._type_index.get(previous["type"])
        if old_bucket and identifier in old_bucket:
            old_bucket.remove(identifier)
            if not old_bucket:
                del self._type_index[previous["type"]]

    # ------------------------------------------------------------------
    # Lookups (never raise for unknown identifiers)
    # ------------------------------------------------------------------

    def node(self, identifier: str) -> Optional[Dict[str, Any]]:
        return self._nodes.get(identifier)

    def nodes(self) -> Dict[str, Dict[str, Any]]:
        """Return the node table.  Callers must not mutate it."""
        return self._nodes

    def node_exists(self, identifier: str) -> bool:
        return identifier in self._nodes

    def find_node_by_suffix(self, suffix: str) -> Optional[str]:
        """Find the first node whose identifier ends in ``"::" + suffix``.

        Bare identifiers without a namespace separator never match; use
        :meth:`node_exists` for exact lookups.
        """
        target = f"::{suffix}"
        for identifier in self._nodes:
            if identifier.endswith(target):
                return identifier
        return None

    def dependencies_of(self, identifier: str) -> List[str]:
        return self._edges.get(identifier, [])

    def dependents_of(self, identifier: str) -> List[str]:
        return self._reverse.get(identifier, [])

    def units_of_type(self, unit_type: TypeTag) -> List[str]:
        return self._type_index.get(coerce_unit_type(unit_type), [])

    # ------------------------------------------------------------------
    # Blast radius
    # ------------------------------------------------------------------

    def affected_by(
        self,
        changed_files: Iterable[str],
        max_depth: Optional[int] = None,
    ) -> List[str]:
        """Return every unit reachable over reverse edges from *changed_files*.

        Args:
            changed_files: File paths that changed.  Paths not in the file
                           index are ignored.
            max_depth:     Maximum number of hops; ``None`` for unlimited.

        Returns:
            Affected identifiers, directly changed units first, then in BFS
            discovery order.
        """
        directly_changed = [
            self._file_map[path] for path in changed_files if path in self._file_map
        ]

        affected: Dict[str, None] = dict.fromkeys(directly_changed)
        queue = deque((identifier, 0) for identifier in affected)

        while queue:
            current, depth = queue.popleft()
            if max_depth is not None and depth >= max_depth:
                continue
            for dependent in self.dependents_of(current):
                if dependent not in affected:
                    affected[dependent] = None
                    queue.append((dependent, depth + 1))

        return list(affected)

    # ------------------------------------------------------------------
    # PageRank
    # ------------------------------------------------------------------

    def pagerank(self, damping: float = 0.85, iterations: int = 20) -> Dict[str, float]:
        """Compute PageRank using reverse edges as the link structure.

        A node accumulates rank from the nodes that depend on it, each
        contributing ``score / out_degree``.  Rank held by dangling nodes
        (no outgoing edges) is spread uniformly every iteration, so the
        scores always sum to ~1.0.

        Edges pointing at identifiers that were never registered (external
        constants, framework classes) are ignored for out-degree so their
        share of rank is not lost.
        """
        n = len(self._nodes)
        if n == 0:
            return {}

        out_degree = {
            identifier: len({t for t in self._edges.get(identifier, []) if t in self._nodes})
            for identifier in self._nodes
        }
        dangling = [identifier for identifier, degree in out_degree.items() if degree == 0]

        base = 1.0 / n
        scores = {identifier: base for identifier in self._nodes}

        for _ in range(iterations):
            dangling_sum = sum(scores[identifier] for identifier in dangling)

            new_scores: Dict[str, float] = {}
            for identifier in self._nodes:
                rank_sum = 0.0
                for src in self.dependents_of(identifier):
                    if out_degree.get(src):
                        rank_sum += scores[src] / out_degree[src]
                new_scores[identifier] = (1.0 - damping) / n + damping * (
                    rank_sum + dangling_sum / n
                )
            scores = new_scores

        return scores

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain structures that survive a JSON round-trip."""
        return {
            "nodes": {
                identifier: {
                    "type": type_name(node["type"]),
                    "file_path": node["file_path"],
                    "namespace": node["namespace"],
                }
                for identifier, node in self._nodes.items()
            },
            "edges": {k: list(v) for k, v in self._edges.items()},
            "reverse": {k: list(v) for k, v in self._reverse.items()},
            "file_map": dict(self._file_map),
            "type_index": {type_name(k): list(v) for k, v in self._type_index.items()},
            "stats": {
                "node_count": len(self._nodes),
                "edge_count": sum(len(v) for v in self._edges.values()),
                "types": {type_name(k): len(v) for k, v in self._type_index.items()},
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyGraph":
        """Restore a graph produced by :meth:`to_dict`.

        Missing keys default to empty maps.  ``type`` fields, which degrade
        to plain strings through serialization, are normalized back to
        :class:`~codegraph_context.models.UnitType`.
        """
        graph = cls()
        for identifier, node in (data.get("nodes") or {}).items():
            node = node or {}
            graph._nodes[identifier] = {
                "type": coerce_unit_type(node.get("type")),
                "file_path": node.get("file_path"),
                "namespace": node.get("namespace"),
            }
        graph._edges = {k: list(v) for k, v in (data.get("edges") or {}).items()}
        graph._reverse = {k: list(v) for k, v in (data.get("reverse") or {}).items()}
        graph._file_map = dict(data.get("file_map") or {})
        graph._type_index = {
            coerce_unit_type(k): list(v)
            for k, v in (data.get("type_index") or {}).items()
        }
        return graph

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "DependencyGraph":
        return cls.from_dict(json.loads(text))

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_text(self.to_json(indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "DependencyGraph":
        return cls.from_json(Path(path).read_text(encoding="utf-8"))


def build_graph(units: Iterable[Unit]) -> DependencyGraph:
    """Build a fresh graph from *units*."""
    graph = DependencyGraph()
    for unit in units:
        graph.register(unit)
    logger.info(
        "Built dependency graph: %d nodes, %d edges",
        len(graph), sum(len(graph.dependencies_of(i)) for i in graph.nodes()),
    )
    return graph
