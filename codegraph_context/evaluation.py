"""Retrieval quality metrics for evaluating ranked identifier lists."""

from __future__ import annotations

from typing import Iterable, Sequence


def precision_at_k(retrieved: Sequence[str], relevant: Iterable[str], k: int = 5) -> float:
    """Fraction of the top *k* retrieved ids that are relevant."""
    relevant_set = set(relevant)
    if not retrieved or not relevant_set:
        return 0.0
    hits = sum(1 for identifier in retrieved[:k] if identifier in relevant_set)
    return hits / k


def recall(retrieved: Iterable[str], relevant: Sequence[str]) -> float:
    """Fraction of relevant ids that were retrieved."""
    if not relevant:
        return 0.0
    retrieved_set = set(retrieved)
    return sum(1 for identifier in relevant if identifier in retrieved_set) / len(relevant)


def mrr(retrieved: Sequence[str], relevant: Iterable[str]) -> float:
    """Reciprocal rank of the first relevant id, ``0.0`` if none."""
    relevant_set = set(relevant)
    for index, identifier in enumerate(retrieved):
        if identifier in relevant_set:
            return 1.0 / (index + 1)
    return 0.0


def context_completeness(retrieved: Iterable[str], required: Sequence[str]) -> float:
    """Fraction of required ids present; ``1.0`` when nothing is required."""
    if not required:
        return 1.0
    retrieved_set = set(retrieved)
    return sum(1 for identifier in required if identifier in retrieved_set) / len(required)


def token_efficiency(relevant_tokens: int, total_tokens: int) -> float:
    """Share of spent tokens that carried relevant context, capped at 1."""
    if total_tokens == 0:
        return 0.0
    return min(relevant_tokens / total_tokens, 1.0)
