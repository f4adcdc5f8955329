"""Structural analysis over a built :class:`DependencyGraph`.

Surfaces architectural patterns without mutating the graph:

- **orphans** — units nothing depends on (dead code or entry points).
- **dead ends** — units that depend on nothing.
- **hubs** — units with the most dependents (widest blast radius).
- **cycles** — circular dependency chains.
- **bridges** — units lying on many shortest paths (sampled betweenness).

An analyzer memoizes its results, so create a new one after rebuilding the
graph.  Separate instances over the same built graph are safe to use from
different threads.
"""

from __future__ import annotations

import hashlib
import logging
import random
from collections import Counter, deque
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .dependency_graph import DependencyGraph
from .models import FRAMEWORK_SOURCE_TYPES, TypeTag, type_name

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


class GraphAnalyzer:
    """Compute orphans, dead ends, hubs, cycles, and bridges for a graph."""

    def __init__(
        self,
        graph: DependencyGraph,
        excluded_orphan_types: Optional[Iterable[TypeTag]] = None,
    ) -> None:
        self.graph = graph
        if excluded_orphan_types is None:
            excluded_orphan_types = FRAMEWORK_SOURCE_TYPES
        self.excluded_orphan_types: Set[str] = {type_name(t) for t in excluded_orphan_types}

        self._orphans: Optional[List[str]] = None
        self._dead_ends: Optional[List[str]] = None
        self._cycles: Optional[List[List[str]]] = None

    # ------------------------------------------------------------------
    # Simple structural metrics
    # ------------------------------------------------------------------

    @property
    def orphans(self) -> List[str]:
        """Units with zero dependents, excluding naturally-root types."""
        if self._orphans is None:
            self._orphans = [
                identifier
                for identifier, node in self.graph.nodes().items()
                if type_name(node["type"]) not in self.excluded_orphan_types
                and not self.graph.dependents_of(identifier)
            ]
        return self._orphans

    @property
    def dead_ends(self) -> List[str]:
        """Units with zero outgoing dependencies."""
        if self._dead_ends is None:
            self._dead_ends = [
                identifier
                for identifier in self.graph.nodes()
                if not self.graph.dependencies_of(identifier)
            ]
        return self._dead_ends

    def hubs(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Units sorted by dependent count, highest first."""
        rows = []
        for identifier, node in self.graph.nodes().items():
            dependents = self.graph.dependents_of(identifier)
            rows.append({
                "identifier": identifier,
                "type": node["type"],
                "dependent_count": len(dependents),
                "dependents": list(dependents),
            })
        rows.sort(key=lambda row: -row["dependent_count"])
        return rows[:limit]

    # ------------------------------------------------------------------
    # Cycle detection (three-color iterative DFS)
    # ------------------------------------------------------------------

    @property
    def cycles(self) -> List[List[str]]:
        """Distinct dependency cycles, each ending with its repeated node.

        ``["A", "B", "C", "A"]`` and ``["B", "C", "A", "B"]`` are the same
        loop and are reported once.
        """
        if self._cycles is None:
            self._cycles = self._detect_cycles()
        return self._cycles

    def _detect_cycles(self) -> List[List[str]]:
        nodes = self.graph.nodes()
        if not nodes:
            return []

        color: Dict[str, int] = {}
        found: List[List[str]] = []
        signatures: Set[str] = set()

        for start in nodes:
            if color.get(start, _WHITE) != _WHITE:
                continue

            # Entries are (node, entering); the exit marker pops the path.
            stack: List[Tuple[str, bool]] = [(start, True)]
            path: List[str] = []

            while stack:
                node, entering = stack.pop()

                if not entering:
                    color[node] = _BLACK
                    path.pop()
                    continue

                if color.get(node, _WHITE) != _WHITE:
                    continue

                color[node] = _GRAY
                path.append(node)
                stack.append((node, False))

                for neighbor in self.graph.dependencies_of(node):
                    state = color.get(neighbor, _WHITE)
                    if state == _WHITE:
                        stack.append((neighbor, True))
                    elif state == _GRAY:
                        cycle = _extract_cycle(path, neighbor)
                        if cycle is None:
                            continue
                        signature = _cycle_signature(cycle)
                        if signature not in signatures:
                            signatures.add(signature)
                            found.append(cycle)

        logger.debug("Detected %d cycles over %d nodes", len(found), len(nodes))
        return found

    # ------------------------------------------------------------------
    # Bridges (sampled betweenness centrality)
    # ------------------------------------------------------------------

    def bridges(self, limit: int = 20, sample_size: int = 200) -> List[Dict[str, Any]]:
        """Estimate which units sit on the most shortest paths.

        Samples up to *sample_size* distinct ordered node pairs, finds each
        pair's shortest forward path by BFS, and credits every intermediate
        node once per path.
        """
        nodes = self.graph.nodes()
        if len(nodes) < 3:
            return []

        node_ids = list(nodes)
        rng = random.Random(_graph_seed(node_ids))
        pairs = _sample_pairs(node_ids, sample_size, rng)

        credit: Counter = Counter()
        for source, target in pairs:
            path = self._shortest_path(source, target)
            if path and len(path) > 2:
                credit.update(path[1:-1])

        ranked = sorted(credit.items(), key=lambda item: -item[1])[:limit]
        return [
            {
                "identifier": identifier,
                "type": (nodes.get(identifier) or {}).get("type"),
                "score": score,
            }
            for identifier, score in ranked
        ]

    def _shortest_path(self, source: str, target: str) -> Optional[List[str]]:
        if source == target:
            return [source]

        visited = {source}
        queue = deque([(source, [source])])
        while queue:
            current, path = queue.popleft()
            for neighbor in self.graph.dependencies_of(current):
                if neighbor in visited:
                    continue
                new_path = path + [neighbor]
                if neighbor == target:
                    return new_path
                visited.add(neighbor)
                queue.append((neighbor, new_path))
        return None

    # ------------------------------------------------------------------
    # Full report
    # ------------------------------------------------------------------

    def analyze(self) -> Dict[str, Any]:
        orphans = self.orphans
        dead_ends = self.dead_ends
        hubs = self.hubs()
        cycles = self.cycles
        bridges = self.bridges(limit=10)

        return {
            "orphans": orphans,
            "dead_ends": dead_ends,
            "hubs": hubs,
            "cycles": cycles,
            "bridges": bridges,
            "stats": {
                "node_count": len(self.graph),
                "orphan_count": len(orphans),
                "dead_end_count": len(dead_ends),
                "hub_count": len(hubs),
                "cycle_count": len(cycles),
                "bridge_count": len(bridges),
            },
        }


# ===================================================================
# Helpers
# ===================================================================

def _extract_cycle(path: List[str], cycle_start: str) -> Optional[List[str]]:
    try:
        start_index = path.index(cycle_start)
    except ValueError:
        return None
    return path[start_index:] + [cycle_start]


def _cycle_signature(cycle: List[str]) -> str:
    """Rotate the loop to start at its smallest node and join it."""
    loop = cycle[:-1]
    if not loop:
        return ""
    pivot = loop.index(min(loop))
    return "->".join(loop[pivot:] + loop[:pivot])


def _graph_seed(node_ids: List[str]) -> int:
    """Derive a sampling seed from the node set itself.

    Two graphs that merely share a node count get different samples, while
    the same graph always samples the same pairs.
    """
    digest = hashlib.sha256("\n".join(sorted(node_ids)).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def _sample_pairs(
    node_ids: List[str],
    sample_size: int,
    rng: random.Random,
) -> List[Tuple[str, str]]:
    max_possible = len(node_ids) * (len(node_ids) - 1)
    wanted = min(sample_size, max_possible)

    pairs: Dict[Tuple[str, str], None] = {}
    attempts = 0
    max_attempts = wanted * 3
    while len(pairs) < wanted and attempts < max_attempts:
        a = node_ids[rng.randrange(len(node_ids))]
        b = node_ids[rng.randrange(len(node_ids))]
        if a != b:
            pairs[(a, b)] = None
        attempts += 1
    return list(pairs)
