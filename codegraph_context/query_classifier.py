"""Heuristic classification of natural-language code questions.

Each decision is an ordered table of ``(pattern, result)`` pairs evaluated
top to bottom; the first matching pattern wins.  Keeping the precedence in
data makes it explicit and easy to test.
"""

from __future__ import annotations

import re
from typing import List, Optional, Pattern, Sequence, Tuple, TypeVar

from .models import Classification, Intent, Scope, UnitType

T = TypeVar("T")

STOP_WORDS = frozenset("""
    the a an is are was were be been being have has had do does did will would
    could should may might can shall in on at to for of and or but not with by
    from as this that these those it its how what when where why who which
""".split())


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# Order matters: first match wins.
INTENT_PATTERNS: Sequence[Tuple[Pattern[str], Intent]] = (
    (_rx(r"\b(where|find|which file|locate|look for|search for)\b"), Intent.LOCATE),
    (_rx(r"\b(trace|follow|track|call(s|ed by)|depends on|used by|who calls|what calls)\b"), Intent.TRACE),
    (_rx(r"\b(bug|error|fix|broken|failing|wrong|issue|problem|crash|exception)\b"), Intent.DEBUG),
    (_rx(r"\b(implement|add|create|build|write|make|generate)\b"), Intent.IMPLEMENT),
    (_rx(r"\b(compare|difference|vs|versus|between|contrast)\b"), Intent.COMPARE),
    (
        _rx(
            r"\b(how does rails|what does rails|rails .+ work|work.+\brails\b|in rails\b"
            r"|activerecord|actioncontroller|activejob)\b"
        ),
        Intent.FRAMEWORK,
    ),
    (_rx(r"\b(show me|what is|what are|list|options for|api|interface|signature)\b"), Intent.REFERENCE),
    (_rx(r"\b(how|why|explain|understand|what happens|describe|overview)\b"), Intent.UNDERSTAND),
)

SCOPE_PATTERNS: Sequence[Tuple[Pattern[str], Scope]] = (
    (_rx(r"\b(exactly|specific|this one|just the|only the)\b"), Scope.PINPOINT),
    (_rx(r"\b(all|every|entire|whole|complete|everything)\b"), Scope.COMPREHENSIVE),
    (_rx(r"\b(related|around|near|similar|like|associated)\b"), Scope.EXPLORATORY),
)

TARGET_PATTERNS: Sequence[Tuple[Pattern[str], UnitType]] = (
    (_rx(r"\b(model|activerecord|association|migration|schema|table|column|scope|validation)\b"), UnitType.MODEL),
    (_rx(r"\b(controller|action|route|endpoint|api|request|response|filter|callback)\b"), UnitType.CONTROLLER),
    (_rx(r"\b(service|interactor|operation|command|use.?case|business.?logic)\b"), UnitType.SERVICE),
    (_rx(r"\b(job|worker|background|async|sidekiq|queue|perform)\b"), UnitType.JOB),
    (_rx(r"\b(mailer|email|notification|send.?mail)\b"), UnitType.MAILER),
    (_rx(r"\b(graphql|mutation|query|type|resolver|field|argument|schema)\b"), UnitType.GRAPHQL),
)

FRAMEWORK_PATTERN = _rx(
    r"\b(rails|activerecord|actioncontroller|activejob|actionmailer|activesupport|rack|middleware)\b"
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def _first_match(
    query: str,
    table: Sequence[Tuple[Pattern[str], T]],
    default: Optional[T],
) -> Optional[T]:
    for pattern, result in table:
        if pattern.search(query):
            return result
    return default


class QueryClassifier:
    """Stateless mapping from a query string to a :class:`Classification`."""

    def classify(self, query: str) -> Classification:
        return Classification(
            intent=_first_match(query, INTENT_PATTERNS, Intent.UNDERSTAND),
            scope=_first_match(query, SCOPE_PATTERNS, Scope.FOCUSED),
            target_type=_first_match(query, TARGET_PATTERNS, None),
            framework_context=bool(FRAMEWORK_PATTERN.search(query)),
            keywords=tuple(extract_keywords(query)),
        )


def extract_keywords(query: str) -> List[str]:
    """Lowercased, de-duplicated tokens minus stop-words and 1-char tokens."""
    tokens = _PUNCTUATION_RE.sub(" ", query.lower()).split()
    keywords: List[str] = []
    for token in tokens:
        if token in STOP_WORDS or len(token) < 2 or token in keywords:
            continue
        keywords.append(token)
    return keywords
