"""Token-budgeted packing of ranked candidates into a context string.

The budget is split into sections::

    structural   10% of the budget, only when an overview is supplied
    primary      65% of the remainder (55% with framework context)
    supporting   35% of the remainder (25% with framework context)
    framework     0% of the remainder (20% with framework context)

Within a section candidates are packed greedily by descending score.  A
candidate that does not fit is truncated only when more than
``MIN_USEFUL_TOKENS`` remain; either way the section stops there.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import (
    FRAMEWORK_SOURCE_TYPES,
    AssembledContext,
    Candidate,
    CandidateSource,
    Classification,
    SourceAttribution,
    type_name,
)
from .storage import MetadataStore
from .token_utils import CHARS_PER_TOKEN, estimate_tokens as default_estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_BUDGET = 8000
STRUCTURAL_SHARE = 0.10
MIN_USEFUL_TOKENS = 200
SECTION_SEPARATOR = "\n\n---\n\n"
TRUNCATION_MARKER = "\n... [truncated]"

_FRAMEWORK_TYPE_NAMES = frozenset(type_name(t) for t in FRAMEWORK_SOURCE_TYPES)


class ContextAssembler:
    """Pack candidates into sections under a token budget."""

    def __init__(
        self,
        metadata_store: MetadataStore,
        budget: int = DEFAULT_BUDGET,
        estimate_tokens: Callable[[str], int] = default_estimate_tokens,
    ) -> None:
        self.metadata_store = metadata_store
        self.budget = budget
        self.estimate_tokens = estimate_tokens

    def assemble(
        self,
        candidates: List[Candidate],
        classification: Classification,
        structural_context: Optional[str] = None,
        budget: Optional[int] = None,
    ) -> AssembledContext:
        effective_budget = self.budget if budget is None else budget
        units = self.metadata_store.find_batch([c.identifier for c in candidates])

        sections: List[Tuple[str, str]] = []
        sources: List[SourceAttribution] = []
        used = 0

        if structural_context:
            text = self.truncate_to_budget(structural_context, int(effective_budget * STRUCTURAL_SHARE))
            sections.append(("structural", text))
            used = self.estimate_tokens(text)

        budgets = section_budgets(effective_budget - used, classification)
        framework_enabled = budgets["framework"] > 0

        primary = [
            c for c in candidates
            if c.source != CandidateSource.GRAPH_EXPANSION
            and not (framework_enabled and is_framework_candidate(c))
        ]
        supporting = [c for c in candidates if c.source == CandidateSource.GRAPH_EXPANSION]
        framework = [c for c in candidates if is_framework_candidate(c)] if framework_enabled else []

        for name, members in (("primary", primary), ("supporting", supporting), ("framework", framework)):
            if not members:
                continue
            content, section_sources = self._pack(members, units, budgets[name])
            if not content:
                continue
            sections.append((name, content))
            sources.extend(section_sources)
            logger.debug("Packed %d units into %s section", len(section_sources), name)

        context = SECTION_SEPARATOR.join(content for _, content in sections)
        return AssembledContext(
            context=context,
            tokens_used=self.estimate_tokens(context),
            budget=effective_budget,
            sources=_unique_sources(sources),
            sections=[name for name, _ in sections],
        )

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(
        self,
        candidates: List[Candidate],
        units: Dict[str, Dict[str, Any]],
        budget: int,
    ) -> Tuple[str, List[SourceAttribution]]:
        parts: List[str] = []
        sources: List[SourceAttribution] = []
        used = 0

        for candidate in sorted(candidates, key=lambda c: -c.score):
            unit = units.get(candidate.identifier)
            if unit is None:
                continue

            text = format_unit(unit)
            tokens = self.estimate_tokens(text)
            remaining = budget - used

            if tokens <= remaining:
                parts.append(text)
                sources.append(_attribution(candidate, unit))
                used += tokens
                continue

            if remaining > MIN_USEFUL_TOKENS:
                parts.append(self.truncate_to_budget(text, remaining))
                sources.append(_attribution(candidate, unit, truncated=True))
            break

        return "\n\n".join(parts), sources

    def truncate_to_budget(self, text: str, token_budget: int) -> str:
        if self.estimate_tokens(text) <= token_budget:
            return text
        target_chars = int(token_budget * CHARS_PER_TOKEN * 0.9)
        return text[:target_chars] + TRUNCATION_MARKER


def section_budgets(remaining: int, classification: Classification) -> Dict[str, int]:
    """Split the post-structural *remaining* tokens between sections."""
    if classification.framework_context:
        return {
            "primary": int(remaining * 0.55),
            "supporting": int(remaining * 0.25),
            "framework": int(remaining * 0.20),
        }
    return {
        "primary": int(remaining * 0.65),
        "supporting": int(remaining * 0.35),
        "framework": 0,
    }


def is_framework_candidate(candidate: Candidate) -> bool:
    if not candidate.metadata:
        return False
    return type_name(candidate.metadata.get("type")) in _FRAMEWORK_TYPE_NAMES


def format_unit(unit: Dict[str, Any]) -> str:
    header = f"## {unit.get('identifier')} ({type_name(unit.get('type'))})"
    body = f"{header}\nFile: {unit.get('file_path') or ''}\n\n{unit.get('source_code') or ''}"
    return body.strip()


def _attribution(candidate: Candidate, unit: Dict[str, Any], truncated: bool = False) -> SourceAttribution:
    return SourceAttribution(
        identifier=candidate.identifier,
        type=type_name(unit.get("type")),
        score=candidate.score,
        file_path=unit.get("file_path"),
        truncated=truncated,
    )


def _unique_sources(sources: List[SourceAttribution]) -> List[SourceAttribution]:
    seen: Dict[str, SourceAttribution] = {}
    for source in sources:
        seen.setdefault(source.identifier, source)
    return list(seen.values())
