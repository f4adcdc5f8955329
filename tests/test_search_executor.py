"""Tests for strategy selection and execution."""

import pytest

from codegraph_context.dependency_graph import build_graph
from codegraph_context.embeddings import HashEmbeddingProvider
from codegraph_context.models import CandidateSource, Intent, Scope, Strategy, UnitType
from codegraph_context.search_executor import SearchExecutor, camelize, deduplicate, select_strategy
from codegraph_context.storage import InMemoryMetadataStore, InMemoryVectorStore, MemoryGraphStore

from conftest import make_classification, make_unit


@pytest.fixture
def executor(populated_stores) -> SearchExecutor:
    return SearchExecutor(**populated_stores)


class _FixedEmbedder:
    def __init__(self, vector):
        self.vector = vector

    def embed(self, text):
        return list(self.vector)


class TestSelectStrategy:
    """Tests for the (intent, scope) strategy table."""

    @pytest.mark.parametrize("intent,scope,strategy", [
        (Intent.LOCATE, Scope.PINPOINT, Strategy.DIRECT),
        (Intent.REFERENCE, Scope.PINPOINT, Strategy.DIRECT),
        (Intent.TRACE, Scope.PINPOINT, Strategy.GRAPH),
        (Intent.TRACE, Scope.COMPREHENSIVE, Strategy.GRAPH),
        (Intent.FRAMEWORK, Scope.FOCUSED, Strategy.KEYWORD),
        (Intent.FRAMEWORK, Scope.EXPLORATORY, Strategy.KEYWORD),
        (Intent.UNDERSTAND, Scope.COMPREHENSIVE, Strategy.HYBRID),
        (Intent.LOCATE, Scope.EXPLORATORY, Strategy.HYBRID),
        (Intent.LOCATE, Scope.FOCUSED, Strategy.KEYWORD),
        (Intent.REFERENCE, Scope.FOCUSED, Strategy.KEYWORD),
        (Intent.UNDERSTAND, Scope.FOCUSED, Strategy.VECTOR),
        (Intent.DEBUG, Scope.PINPOINT, Strategy.VECTOR),
    ])
    def test_table(self, intent, scope, strategy):
        """Test overrides first, then scope defaults, then intent defaults."""
        assert select_strategy(make_classification(intent=intent, scope=scope)) == strategy

    def test_camelize(self):
        """Test snake_case to CamelCase conversion."""
        assert camelize("session_token") == "SessionToken"
        assert camelize("user") == "User"


class TestVectorStrategy:
    """Tests for the vector strategy."""

    def test_returns_vector_candidates(self, executor: SearchExecutor):
        """Test hits are mapped to vector-sourced candidates."""
        result = executor.execute(
            "user authentication", make_classification(keywords=["user", "authentication"]), limit=5,
        )
        assert result.strategy == Strategy.VECTOR
        assert result.query == "user authentication"
        assert 0 < len(result.candidates) <= 5
        assert all(c.source == CandidateSource.VECTOR for c in result.candidates)

    def test_target_type_filter(self, executor: SearchExecutor):
        """Test a target type restricts hits to that type."""
        result = executor.execute(
            "authentication", make_classification(target_type=UnitType.SERVICE, keywords=["authentication"]),
        )
        assert {c.identifier for c in result.candidates} == {"AuthenticationService", "Order::Update"}
        assert all(c.metadata["type"] == "service" for c in result.candidates)

    def test_empty_store(self):
        """Test an empty vector store yields no candidates without raising."""
        executor = SearchExecutor(
            InMemoryVectorStore(), InMemoryMetadataStore(), MemoryGraphStore(), HashEmbeddingProvider(),
        )
        result = executor.execute("anything", make_classification())
        assert result.candidates == []


class TestKeywordStrategy:
    """Tests for the keyword strategy."""

    def test_scores_by_result_position(self, executor: SearchExecutor):
        """Test the first hit scores 1.0 and later hits decay by 1/max(n, 10)."""
        result = executor.execute(
            "where is authentication", make_classification(intent=Intent.LOCATE, keywords=["authentication"]),
        )
        assert result.strategy == Strategy.KEYWORD
        first, second = result.candidates[:2]
        assert (first.identifier, first.score) == ("AuthenticationService", 1.0)
        assert second.identifier == "UsersController"
        assert second.score == pytest.approx(0.9)
        assert all(c.source == CandidateSource.KEYWORD for c in result.candidates)

    def test_keeps_best_score_across_keywords(self, executor: SearchExecutor):
        """Test an id hit by several keywords keeps its highest score."""
        result = executor.execute(
            "where", make_classification(intent=Intent.LOCATE, keywords=["authentication", "welcome"]),
        )
        scores = {c.identifier: c.score for c in result.candidates}
        assert scores["WelcomeMailer"] == 1.0
        assert scores["AuthenticationService"] == 1.0
        assert len(scores) == len(result.candidates)

    def test_no_keywords(self, executor: SearchExecutor):
        """Test an empty keyword list returns no candidates."""
        result = executor.execute("where", make_classification(intent=Intent.LOCATE))
        assert result.candidates == []


class TestGraphStrategy:
    """Tests for the graph strategy."""

    def test_expands_seed_neighbours(self, executor: SearchExecutor):
        """Test seed at 1.0, dependencies at 0.8, dependents at 0.7."""
        result = executor.execute(
            "trace", make_classification(intent=Intent.TRACE, keywords=["authentication_service"]),
        )
        assert result.strategy == Strategy.GRAPH
        scores = {c.identifier: c.score for c in result.candidates}
        assert scores == {
            "AuthenticationService": 1.0,
            "User": 0.8,
            "SessionToken": 0.8,
            "UsersController": 0.7,
        }
        assert result.candidates[0].identifier == "AuthenticationService"
        assert all(c.source == CandidateSource.GRAPH for c in result.candidates)

    def test_falls_back_to_text_search_for_seeds(self, executor: SearchExecutor):
        """Test seeds come from metadata search when no CamelCase id resolves."""
        result = executor.execute("trace", make_classification(intent=Intent.TRACE, keywords=["welcome"]))
        scores = {c.identifier: c.score for c in result.candidates}
        assert scores == {"WelcomeMailer": 1.0, "User": 0.8}

    def test_no_seeds(self, executor: SearchExecutor):
        """Test unresolvable keywords return nothing."""
        result = executor.execute("trace", make_classification(intent=Intent.TRACE, keywords=["zzzz"]))
        assert result.candidates == []


class TestHybridStrategy:
    """Tests for the hybrid strategy."""

    def test_adds_graph_expansion_of_top_vector_hits(self):
        """Test dependencies of top vector hits join at 0.5 as graph_expansion."""
        vector_store = InMemoryVectorStore()
        vector_store.store("A", [1.0, 0.0], {"type": "service"})
        vector_store.store("B", [0.5, 0.5], {"type": "model"})
        graph_store = MemoryGraphStore(build_graph([
            make_unit("A", "service", deps=["X"]),
            make_unit("B", "model"),
            make_unit("X", "model"),
        ]))
        executor = SearchExecutor(vector_store, InMemoryMetadataStore(), graph_store, _FixedEmbedder([1.0, 0.0]))

        result = executor.execute(
            "everything", make_classification(scope=Scope.COMPREHENSIVE, keywords=["zzzz"]),
        )
        assert result.strategy == Strategy.HYBRID
        by_id = {c.identifier: c for c in result.candidates}
        assert by_id["A"].source == CandidateSource.VECTOR
        assert by_id["A"].score == pytest.approx(1.0)
        assert by_id["X"].source == CandidateSource.GRAPH_EXPANSION
        assert by_id["X"].score == 0.5
        assert [c.identifier for c in result.candidates] == ["A", "B", "X"]

    def test_deduplicates_across_sources(self, executor: SearchExecutor):
        """Test each identifier appears once."""
        result = executor.execute(
            "all user code", make_classification(scope=Scope.COMPREHENSIVE, keywords=["user"]),
        )
        identifiers = [c.identifier for c in result.candidates]
        assert len(identifiers) == len(set(identifiers))


class TestDirectStrategy:
    """Tests for the direct strategy."""

    def test_resolves_keyword_variants(self, executor: SearchExecutor):
        """Test verbatim, capitalized, and CamelCase variants are tried."""
        result = executor.execute(
            "exactly", make_classification(
                intent=Intent.LOCATE, scope=Scope.PINPOINT, keywords=["user", "session_token"],
            ),
        )
        assert result.strategy == Strategy.DIRECT
        assert [c.identifier for c in result.candidates] == ["User", "SessionToken"]
        assert all(c.source == CandidateSource.DIRECT and c.score == 1.0 for c in result.candidates)
        assert result.candidates[0].metadata["file_path"] == "app/models/user.rb"

    def test_falls_back_to_keyword(self, executor: SearchExecutor):
        """Test nothing resolving falls back to keyword search."""
        result = executor.execute(
            "exactly", make_classification(
                intent=Intent.LOCATE, scope=Scope.PINPOINT, keywords=["authentication"],
            ),
        )
        assert result.strategy == Strategy.DIRECT
        assert result.candidates
        assert all(c.source == CandidateSource.KEYWORD for c in result.candidates)


class TestLimits:
    """Tests for result truncation and de-duplication."""

    def test_truncates_to_limit(self, executor: SearchExecutor):
        """Test every strategy honours the limit."""
        result = executor.execute(
            "trace", make_classification(intent=Intent.TRACE, keywords=["authentication_service"]), limit=2,
        )
        assert len(result.candidates) == 2

    def test_deduplicate_keeps_max(self):
        """Test the best-scoring duplicate survives."""
        from codegraph_context.models import Candidate

        merged = deduplicate([
            Candidate("A", 0.3, CandidateSource.VECTOR),
            Candidate("A", 0.9, CandidateSource.KEYWORD),
            Candidate("B", 0.5, CandidateSource.VECTOR),
        ])
        assert [(c.identifier, c.score, c.source) for c in merged] == [
            ("A", 0.9, CandidateSource.KEYWORD),
            ("B", 0.5, CandidateSource.VECTOR),
        ]
