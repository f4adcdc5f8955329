"""Strategy selection and execution against the store interfaces.

Given a :class:`Classification`, the executor picks one of five strategies
and runs it, returning scored :class:`Candidate` records.  No strategy raises
for an empty result; store or embedding failures propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import (
    Candidate,
    CandidateSource,
    Classification,
    ExecutionResult,
    Intent,
    Scope,
    Strategy,
)
from .storage import GraphStore, MetadataStore, VectorStore

logger = logging.getLogger(__name__)

# Explicit (intent, scope) overrides, checked before the scope/intent defaults.
STRATEGY_MAP: Dict[Tuple[Intent, Scope], Strategy] = {
    (Intent.LOCATE, Scope.PINPOINT): Strategy.DIRECT,
    (Intent.REFERENCE, Scope.PINPOINT): Strategy.DIRECT,
    **{(Intent.TRACE, scope): Strategy.GRAPH for scope in Scope},
    **{(Intent.FRAMEWORK, scope): Strategy.KEYWORD for scope in Scope},
}

GRAPH_SEED_SCORE = 1.0
GRAPH_DEPENDENCY_SCORE = 0.8
GRAPH_DEPENDENT_SCORE = 0.7
EXPANSION_SCORE = 0.5
EXPANSION_FANOUT = 3
MAX_SEARCH_SEEDS = 3


def select_strategy(classification: Classification) -> Strategy:
    """Map a classification to the retrieval strategy to run."""
    mapped = STRATEGY_MAP.get((classification.intent, classification.scope))
    if mapped is not None:
        return mapped
    if classification.scope in (Scope.COMPREHENSIVE, Scope.EXPLORATORY):
        return Strategy.HYBRID
    if classification.intent in (Intent.LOCATE, Intent.REFERENCE):
        return Strategy.KEYWORD
    return Strategy.VECTOR


def camelize(keyword: str) -> str:
    """``"user_session"`` → ``"UserSession"``."""
    return "".join(part.capitalize() for part in keyword.split("_"))


class SearchExecutor:
    """Run retrieval strategies over vector, metadata, and graph stores."""

    def __init__(
        self,
        vector_store: VectorStore,
        metadata_store: MetadataStore,
        graph_store: GraphStore,
        embedding_provider: Any,
    ) -> None:
        self.vector_store = vector_store
        self.metadata_store = metadata_store
        self.graph_store = graph_store
        self.embedding_provider = embedding_provider

    def select_strategy(self, classification: Classification) -> Strategy:
        return select_strategy(classification)

    def execute(
        self,
        query: str,
        classification: Classification,
        limit: int = 20,
    ) -> ExecutionResult:
        strategy = self.select_strategy(classification)
        logger.debug("Selected %s strategy for %s/%s", strategy, classification.intent, classification.scope)

        runner = {
            Strategy.VECTOR: lambda: self._vector(query, classification, limit),
            Strategy.KEYWORD: lambda: self._keyword(classification, limit),
            Strategy.GRAPH: lambda: self._graph(classification, limit),
            Strategy.HYBRID: lambda: self._hybrid(query, classification, limit),
            Strategy.DIRECT: lambda: self._direct(classification, limit),
        }[strategy]

        candidates = runner()
        return ExecutionResult(candidates=candidates[:limit], strategy=strategy, query=query)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _vector(self, query: str, classification: Classification, limit: int) -> List[Candidate]:
        query_vector = self.embedding_provider.embed(query)
        filters: Dict[str, Any] = {}
        if classification.target_type is not None:
            filters["type"] = classification.target_type.value
        hits = self.vector_store.search(query_vector, limit=limit, filters=filters)
        return [
            Candidate(identifier=hit.id, score=hit.score, source=CandidateSource.VECTOR, metadata=hit.metadata)
            for hit in hits
        ]

    def _keyword(self, classification: Classification, limit: int) -> List[Candidate]:
        if not classification.keywords:
            return []

        best: Dict[str, Candidate] = {}
        for keyword in classification.keywords:
            results = self.metadata_store.search(keyword)
            denominator = max(len(results), 10)
            for index, record in enumerate(results):
                identifier = _record_id(record)
                if identifier is None:
                    continue
                score = 1.0 - index / denominator
                existing = best.get(identifier)
                if existing is None or score > existing.score:
                    best[identifier] = Candidate(
                        identifier=identifier,
                        score=score,
                        source=CandidateSource.KEYWORD,
                        metadata=record,
                    )

        ranked = sorted(best.values(), key=lambda c: -c.score)
        return ranked[:limit]

    def _graph(self, classification: Classification, limit: int) -> List[Candidate]:
        seeds = self._seed_identifiers(classification)
        if not seeds:
            return []

        candidates: List[Candidate] = []
        for seed in seeds:
            candidates.extend(
                _graph_candidate(dep, GRAPH_DEPENDENCY_SCORE) for dep in self.graph_store.dependencies_of(seed)
            )
            candidates.extend(
                _graph_candidate(dep, GRAPH_DEPENDENT_SCORE) for dep in self.graph_store.dependents_of(seed)
            )
            candidates.append(_graph_candidate(seed, GRAPH_SEED_SCORE))
        return deduplicate(candidates)[:limit]

    def _hybrid(self, query: str, classification: Classification, limit: int) -> List[Candidate]:
        vector_candidates = self._vector(query, classification, limit)
        keyword_candidates = self._keyword(classification, limit)

        expansion: List[Candidate] = []
        for candidate in vector_candidates[:EXPANSION_FANOUT]:
            for dep in self.graph_store.dependencies_of(candidate.identifier):
                expansion.append(Candidate(
                    identifier=dep,
                    score=EXPANSION_SCORE,
                    source=CandidateSource.GRAPH_EXPANSION,
                    metadata={},
                ))

        return deduplicate(vector_candidates + keyword_candidates + expansion)[:limit]

    def _direct(self, classification: Classification, limit: int) -> List[Candidate]:
        if not classification.keywords:
            return []

        candidates: List[Candidate] = []
        for keyword in classification.keywords:
            for variant in _variants(keyword):
                record = self.metadata_store.find(variant)
                if record is None:
                    continue
                candidates.append(Candidate(
                    identifier=variant,
                    score=1.0,
                    source=CandidateSource.DIRECT,
                    metadata=record,
                ))
                break

        if not candidates:
            logger.debug("Direct lookup resolved nothing; falling back to keyword search")
            return self._keyword(classification, limit)
        return candidates[:limit]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _seed_identifiers(self, classification: Classification) -> List[str]:
        seeds = [
            camelize(keyword)
            for keyword in classification.keywords
            if self.metadata_store.find(camelize(keyword)) is not None
        ]
        if not seeds and classification.keywords:
            results = self.metadata_store.search(" ".join(classification.keywords))
            seeds = [rid for rid in (_record_id(r) for r in results[:MAX_SEARCH_SEEDS]) if rid]
        return seeds


def deduplicate(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Keep the highest-scoring candidate per identifier, sorted by score."""
    best: Dict[str, Candidate] = {}
    for candidate in candidates:
        existing = best.get(candidate.identifier)
        if existing is None or candidate.score > existing.score:
            best[candidate.identifier] = candidate
    return sorted(best.values(), key=lambda c: -c.score)


def _graph_candidate(identifier: str, score: float) -> Candidate:
    return Candidate(identifier=identifier, score=score, source=CandidateSource.GRAPH, metadata={})


def _variants(keyword: str) -> List[str]:
    variants: List[str] = []
    for variant in (keyword, keyword.capitalize(), camelize(keyword)):
        if variant not in variants:
            variants.append(variant)
    return variants


def _record_id(record: Dict[str, Any]) -> Optional[str]:
    return record.get("id") or record.get("identifier")
