"""Tests for natural-language query classification."""

import pytest

from codegraph_context.models import Intent, Scope, UnitType
from codegraph_context.query_classifier import QueryClassifier, extract_keywords


@pytest.fixture
def classifier() -> QueryClassifier:
    return QueryClassifier()


class TestIntent:
    """Tests for intent detection."""

    def test_default_understand(self, classifier: QueryClassifier):
        """Test the authentication question reads as a focused understand query."""
        result = classifier.classify("how does user authentication work?")
        assert result.intent == Intent.UNDERSTAND
        assert result.scope == Scope.FOCUSED
        assert result.framework_context is False
        assert result.target_type is None

    @pytest.mark.parametrize("query,intent", [
        ("where is the checkout flow", Intent.LOCATE),
        ("who calls AuthenticationService?", Intent.TRACE),
        ("fix the error in checkout", Intent.DEBUG),
        ("add a refund endpoint", Intent.IMPLEMENT),
        ("compare User and Account", Intent.COMPARE),
        ("how does rails handle callbacks", Intent.FRAMEWORK),
        ("show me the billing options", Intent.REFERENCE),
        ("explain checkout", Intent.UNDERSTAND),
        ("checkout", Intent.UNDERSTAND),
    ])
    def test_intents(self, classifier: QueryClassifier, query: str, intent: Intent):
        """Test each intent pattern."""
        assert classifier.classify(query).intent == intent

    def test_first_match_wins(self, classifier: QueryClassifier):
        """Test locate outranks debug when both match."""
        assert classifier.classify("find the bug in payments").intent == Intent.LOCATE

    def test_case_insensitive(self, classifier: QueryClassifier):
        """Test matching ignores case."""
        assert classifier.classify("WHERE IS checkout").intent == Intent.LOCATE


class TestScope:
    """Tests for scope detection."""

    @pytest.mark.parametrize("query,scope", [
        ("explain exactly this one method", Scope.PINPOINT),
        ("show me all the payment code", Scope.COMPREHENSIVE),
        ("find code related to billing", Scope.EXPLORATORY),
        ("explain billing", Scope.FOCUSED),
    ])
    def test_scopes(self, classifier: QueryClassifier, query: str, scope: Scope):
        """Test each scope pattern and the default."""
        assert classifier.classify(query).scope == scope


class TestTargetAndFramework:
    """Tests for target type and framework detection."""

    @pytest.mark.parametrize("query,target", [
        ("where is the User model", UnitType.MODEL),
        ("which controller handles login", UnitType.CONTROLLER),
        ("explain the billing service", UnitType.SERVICE),
        ("why does the cleanup job fail", UnitType.JOB),
        ("explain the welcome mailer", UnitType.MAILER),
        ("explain the graphql resolver", UnitType.GRAPHQL),
    ])
    def test_target_types(self, classifier: QueryClassifier, query: str, target: UnitType):
        """Test each target type keyword table entry."""
        assert classifier.classify(query).target_type == target

    def test_framework_context(self, classifier: QueryClassifier):
        """Test framework terms set framework_context."""
        assert classifier.classify("how does ActiveRecord load associations").framework_context is True
        assert classifier.classify("how does checkout work").framework_context is False


class TestKeywords:
    """Tests for keyword extraction."""

    def test_strips_stop_words_and_punctuation(self):
        """Test stop-words, punctuation, and short tokens are dropped."""
        assert extract_keywords("how does user authentication work?") == ["user", "authentication", "work"]

    def test_deduplicates_preserving_order(self):
        """Test duplicates collapse to the first occurrence."""
        assert extract_keywords("The User's user-profile, user!") == ["user", "profile"]

    def test_empty_query(self):
        """Test an empty query yields no keywords."""
        assert extract_keywords("") == []

    def test_keywords_on_classification(self, classifier: QueryClassifier):
        """Test the classification carries the keywords as a tuple."""
        assert classifier.classify("where is order_update").keywords == ("order_update",)
