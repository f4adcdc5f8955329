"""Multi-signal ranking with Reciprocal Rank Fusion and a diversity pass.

Ranking runs in three stages:

1. **Fusion** — when candidates come from more than one source, their raw
   scores are not comparable, so each source's list is converted to ranks
   and merged with ``score += 1 / (RRF_K + rank)``.
2. **Scoring** — every candidate gets six signals combined by ``WEIGHTS``.
3. **Diversity** — walking the sorted list, candidates that repeat an
   already-seen namespace or type are penalized, then the list is re-sorted.

Unit metadata for every candidate is fetched with a single
``find_batch`` call.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import Candidate, CandidateSource, Classification, type_name
from .storage import MetadataStore

logger = logging.getLogger(__name__)

WEIGHTS: Dict[str, float] = {
    "semantic": 0.40,
    "keyword": 0.20,
    "recency": 0.15,
    "importance": 0.10,
    "type_match": 0.10,
    "diversity": 0.05,
}

RRF_K = 60

RECENCY_SCORES = {"hot": 1.0, "active": 0.8, "new": 0.7, "dormant": 0.3}
IMPORTANCE_SCORES = {"high": 1.0, "medium": 0.6, "low": 0.3}
NEUTRAL_SCORE = 0.5

MAX_DIVERSITY_PENALTY = 0.5
DIVERSITY_STEP = 0.1


@dataclass
class RankedItem:
    """A candidate with its signal breakdown, for diagnostics."""

    candidate: Candidate
    unit: Optional[Dict[str, Any]]
    scores: Dict[str, float] = field(default_factory=dict)
    weighted_score: float = 0.0
    base_score: float = 0.0


class Ranker:
    def __init__(self, metadata_store: MetadataStore) -> None:
        self.metadata_store = metadata_store

    def rank(self, candidates: List[Candidate], classification: Classification) -> List[Candidate]:
        return [item.candidate for item in self.rank_with_scores(candidates, classification)]

    def rank_with_scores(
        self,
        candidates: List[Candidate],
        classification: Classification,
    ) -> List[RankedItem]:
        if not candidates:
            return []

        if len({c.source for c in candidates}) > 1:
            candidates = fuse(candidates)
            logger.debug("Applied RRF over %d fused candidates", len(candidates))

        units = self.metadata_store.find_batch([c.identifier for c in candidates])
        items = [self._score(candidate, units.get(candidate.identifier), classification) for candidate in candidates]
        items.sort(key=lambda item: -item.weighted_score)
        apply_diversity_penalty(items)
        return items

    def _score(
        self,
        candidate: Candidate,
        unit: Optional[Dict[str, Any]],
        classification: Classification,
    ) -> RankedItem:
        scores = {
            "semantic": float(candidate.score),
            "keyword": keyword_score(candidate),
            "recency": recency_score(unit),
            "importance": importance_score(unit),
            "type_match": type_match_score(unit, classification),
            "diversity": 1.0,
        }
        weighted = sum(scores[signal] * weight for signal, weight in WEIGHTS.items())
        return RankedItem(
            candidate=candidate,
            unit=unit,
            scores=scores,
            weighted_score=weighted,
            base_score=weighted,
        )


# ===================================================================
# Fusion
# ===================================================================

def fuse(candidates: List[Candidate]) -> List[Candidate]:
    """Merge per-source rankings with Reciprocal Rank Fusion.

    The fused candidate keeps the first-seen source for its identifier and
    the first metadata recorded for it.
    """
    by_source: Dict[CandidateSource, List[Candidate]] = {}
    for candidate in candidates:
        by_source.setdefault(candidate.source, []).append(candidate)

    fused: Dict[str, float] = {}
    metadata: Dict[str, Optional[Dict[str, Any]]] = {}
    for group in by_source.values():
        ranked = sorted(group, key=lambda c: -c.score)
        for rank, candidate in enumerate(ranked):
            fused[candidate.identifier] = fused.get(candidate.identifier, 0.0) + 1.0 / (RRF_K + rank)
            if metadata.get(candidate.identifier) is None:
                metadata[candidate.identifier] = candidate.metadata

    first_source: Dict[str, CandidateSource] = {}
    for candidate in candidates:
        first_source.setdefault(candidate.identifier, candidate.source)

    ordered = sorted(fused.items(), key=lambda item: -item[1])
    return [
        Candidate(
            identifier=identifier,
            score=score,
            source=first_source.get(identifier, CandidateSource.RRF),
            metadata=metadata.get(identifier),
        )
        for identifier, score in ordered
    ]


# ===================================================================
# Signals
# ===================================================================

def keyword_score(candidate: Candidate) -> float:
    matched = (candidate.metadata or {}).get("matched_fields")
    if not matched:
        return 0.0
    return min(len(matched) * 0.25, 1.0)


def recency_score(unit: Optional[Dict[str, Any]]) -> float:
    if not unit:
        return NEUTRAL_SCORE
    git = (unit.get("metadata") or {}).get("git") or {}
    return RECENCY_SCORES.get(str(git.get("change_frequency")), NEUTRAL_SCORE)


def importance_score(unit: Optional[Dict[str, Any]]) -> float:
    if not unit:
        return NEUTRAL_SCORE
    return IMPORTANCE_SCORES.get(str(_unit_field(unit, "importance")), NEUTRAL_SCORE)


def type_match_score(unit: Optional[Dict[str, Any]], classification: Classification) -> float:
    if not unit or classification.target_type is None:
        return NEUTRAL_SCORE
    unit_type = type_name(_unit_field(unit, "type"))
    return 1.0 if unit_type == classification.target_type.value else 0.3


def apply_diversity_penalty(items: List[RankedItem]) -> None:
    """Penalize repeats of a namespace or type, then re-sort in place.

    Items whose unit could not be resolved carry no namespace or type and
    are left alone.
    """
    seen_namespaces: Counter = Counter()
    seen_types: Counter = Counter()

    for item in items:
        if not item.unit:
            continue
        namespace = _unit_field(item.unit, "namespace") or "root"
        unit_type = type_name(_unit_field(item.unit, "type")) or "unknown"

        penalty = min(
            (seen_namespaces[namespace] + seen_types[unit_type]) * DIVERSITY_STEP,
            MAX_DIVERSITY_PENALTY,
        )
        seen_namespaces[namespace] += 1
        seen_types[unit_type] += 1

        item.scores["diversity"] = 1.0 - penalty
        item.weighted_score -= penalty * WEIGHTS["diversity"]

    items.sort(key=lambda item: -item.weighted_score)


def _unit_field(unit: Dict[str, Any], key: str) -> Any:
    """Look *key* up in the unit's metadata first, then on the unit itself."""
    value = (unit.get("metadata") or {}).get(key)
    return value if value is not None else unit.get(key)


# ===================================================================
# Importance buckets
# ===================================================================

HIGH_FRACTION = 0.10
MEDIUM_FRACTION = 0.30


def importance_buckets(scores: Dict[str, float]) -> Dict[str, str]:
    """Bucket PageRank *scores* into ``high`` / ``medium`` / ``low``.

    The top 10% of units (at least one) are ``high``, the next 30% are
    ``medium``, and the rest are ``low``.  Ties keep their input order.
    """
    if not scores:
        return {}
    ordered = sorted(scores, key=lambda identifier: -scores[identifier])
    n = len(ordered)
    high_cut = max(1, math.ceil(n * HIGH_FRACTION))
    medium_cut = high_cut + math.ceil(n * MEDIUM_FRACTION)

    buckets: Dict[str, str] = {}
    for index, identifier in enumerate(ordered):
        if index < high_cut:
            buckets[identifier] = "high"
        elif index < medium_cut:
            buckets[identifier] = "medium"
        else:
            buckets[identifier] = "low"
    return buckets
