"""Core data models shared by the graph, retrieval, and assembly layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class UnitType(str, Enum):
    """Known code unit types produced by the extractors."""

    MODEL = "model"
    CONTROLLER = "controller"
    SERVICE = "service"
    JOB = "job"
    MAILER = "mailer"
    COMPONENT = "component"
    GRAPHQL = "graphql"
    CONCERN = "concern"
    POLICY = "policy"
    VALIDATOR = "validator"
    SERIALIZER = "serializer"
    DECORATOR = "decorator"
    ROUTE = "route"
    MIDDLEWARE = "middleware"
    MIGRATION = "migration"
    CONFIGURATION = "configuration"
    LIB = "lib"
    PORO = "poro"
    RAKE_TASK = "rake_task"
    VIEW_TEMPLATE = "view_template"
    MANAGER = "manager"
    EVENT = "event"
    STATE_MACHINE = "state_machine"
    ENGINE = "engine"
    FACTORY = "factory"
    TEST_MAPPING = "test_mapping"
    SCHEDULED_JOB = "scheduled_job"
    DATABASE_VIEW = "database_view"
    CACHING = "caching"
    I18N = "i18n"
    ACTION_CABLE_CHANNEL = "action_cable_channel"
    RAILS_SOURCE = "rails_source"
    GEM_SOURCE = "gem_source"

    def __str__(self) -> str:
        return self.value


# Framework and gem sources are consumed by application code but never
# referenced by it in the reverse index.
FRAMEWORK_SOURCE_TYPES = frozenset({UnitType.RAILS_SOURCE, UnitType.GEM_SOURCE})

TypeTag = Union[UnitType, str]

_UNIT_TYPES_BY_VALUE: Dict[str, UnitType] = {t.value: t for t in UnitType}


def coerce_unit_type(value: Any) -> Optional[TypeTag]:
    """Normalize a type tag to its :class:`UnitType` member.

    Unknown tags are kept as plain strings so custom extractor types still
    flow through the graph; ``None`` stays ``None``.
    """
    if value is None or isinstance(value, UnitType):
        return value
    text = str(value)
    return _UNIT_TYPES_BY_VALUE.get(text, text)


def type_name(value: Any) -> str:
    """Return the plain string form of a type tag (``""`` for ``None``)."""
    if value is None:
        return ""
    if isinstance(value, UnitType):
        return value.value
    return str(value)


@dataclass
class Dependency:
    target: str
    type: Optional[str] = None
    via: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"target": self.target}
        if self.type:
            payload["type"] = self.type
        if self.via:
            payload["via"] = self.via
        return payload


@dataclass
class Unit:
    """A single named code entity with forward dependency edges."""

    identifier: str
    type: TypeTag
    namespace: Optional[str] = None
    file_path: Optional[str] = None
    source_code: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[Dependency] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.type = coerce_unit_type(self.type)

    @property
    def dependency_targets(self) -> List[str]:
        return [dep.target for dep in self.dependencies]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "type": type_name(self.type),
            "namespace": self.namespace,
            "file_path": self.file_path,
            "source_code": self.source_code,
            "metadata": self.metadata,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Unit":
        deps: List[Dependency] = []
        for raw in data.get("dependencies") or []:
            if isinstance(raw, str):
                deps.append(Dependency(target=raw))
            elif raw.get("target"):
                deps.append(Dependency(
                    target=raw["target"],
                    type=raw.get("type"),
                    via=raw.get("via"),
                ))
        return cls(
            identifier=data["identifier"],
            type=data.get("type") or "unknown",
            namespace=data.get("namespace"),
            file_path=data.get("file_path"),
            source_code=data.get("source_code") or "",
            metadata=dict(data.get("metadata") or {}),
            dependencies=deps,
        )


# ---------------------------------------------------------------------------
# Retrieval records
# ---------------------------------------------------------------------------

class CandidateSource(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    GRAPH = "graph"
    GRAPH_EXPANSION = "graph_expansion"
    DIRECT = "direct"
    RRF = "rrf"

    def __str__(self) -> str:
        return self.value


class Intent(str, Enum):
    UNDERSTAND = "understand"
    LOCATE = "locate"
    TRACE = "trace"
    DEBUG = "debug"
    IMPLEMENT = "implement"
    REFERENCE = "reference"
    COMPARE = "compare"
    FRAMEWORK = "framework"

    def __str__(self) -> str:
        return self.value


class Scope(str, Enum):
    PINPOINT = "pinpoint"
    FOCUSED = "focused"
    EXPLORATORY = "exploratory"
    COMPREHENSIVE = "comprehensive"

    def __str__(self) -> str:
        return self.value


class Strategy(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    GRAPH = "graph"
    HYBRID = "hybrid"
    DIRECT = "direct"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Classification:
    """Structured reading of a natural-language query."""

    intent: Intent
    scope: Scope
    target_type: Optional[UnitType]
    framework_context: bool
    keywords: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value,
            "scope": self.scope.value,
            "target_type": self.target_type.value if self.target_type else None,
            "framework_context": self.framework_context,
            "keywords": list(self.keywords),
        }


@dataclass
class Candidate:
    """A scored search hit with provenance."""

    identifier: str
    score: float
    source: CandidateSource
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class VectorHit:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    candidates: List[Candidate]
    strategy: Strategy
    query: str


@dataclass
class SourceAttribution:
    identifier: str
    type: str
    score: float
    file_path: Optional[str]
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "identifier": self.identifier,
            "type": self.type,
            "score": self.score,
            "file_path": self.file_path,
        }
        if self.truncated:
            payload["truncated"] = True
        return payload


@dataclass
class AssembledContext:
    context: str
    tokens_used: int
    budget: int
    sources: List[SourceAttribution] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)


@dataclass
class RetrievalTrace:
    classification: Classification
    strategy: Strategy
    candidate_count: int
    ranked_count: int
    tokens_used: int
    elapsed_ms: float


@dataclass
class RetrievalResult:
    context: str
    sources: List[SourceAttribution]
    classification: Classification
    strategy: Strategy
    tokens_used: int
    budget: int
    trace: Optional[RetrievalTrace] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "sources": [s.to_dict() for s in self.sources],
            "strategy": self.strategy.value,
            "tokens_used": self.tokens_used,
            "budget": self.budget,
        }
