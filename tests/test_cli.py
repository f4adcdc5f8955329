"""Integration tests for CLI commands (using grouped command hierarchy)."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from codegraph_context import __version__
from codegraph_context.cli import app
from codegraph_context.config_manager import (
    load_embedding_config,
    load_retrieval_config,
    load_storage_config,
    save_embedding_config,
)
from codegraph_context.dependency_graph import DependencyGraph


runner = CliRunner()


@pytest.fixture
def graph_file(sample_graph: DependencyGraph, temp_dir: Path) -> Path:
    path = temp_dir / "graph.json"
    sample_graph.save(path)
    return path


class TestVersion:
    """Tests for 'cgc --version'."""

    def test_version(self):
        """Test the version flag prints and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"codegraph-context v{__version__}" in result.stdout


class TestGraphCommands:
    """Tests for 'cgc graph ...' commands."""

    def test_build(self, units_file: Path, temp_dir: Path):
        """Test building and saving a graph from units JSON."""
        output = temp_dir / "out.json"
        result = runner.invoke(app, ["graph", "build", str(units_file), "-o", str(output)])

        assert result.exit_code == 0
        assert "Built graph with 8 units and 8 edges." in result.stdout
        assert DependencyGraph.load(output).dependencies_of("Account") == ["User"]

    def test_build_accepts_wrapped_units(self, sample_units, temp_dir: Path):
        """Test a {"units": [...]} document is accepted."""
        path = temp_dir / "wrapped.json"
        path.write_text(json.dumps({"units": [u.to_dict() for u in sample_units]}))
        result = runner.invoke(app, ["graph", "build", str(path), "-o", str(temp_dir / "g.json")])
        assert result.exit_code == 0

    def test_build_invalid_json(self, temp_dir: Path):
        """Test malformed input is a usage error."""
        path = temp_dir / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["graph", "build", str(path)])
        assert result.exit_code != 0

    def test_build_missing_file(self):
        """Test a non-existent units file is rejected."""
        result = runner.invoke(app, ["graph", "build", "/nonexistent/units.json"])
        assert result.exit_code != 0

    def test_analyze_json(self, graph_file: Path):
        """Test the JSON report."""
        result = runner.invoke(app, ["graph", "analyze", str(graph_file), "--json"])

        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert report["hubs"][0]["identifier"] == "User"
        assert report["cycles"] == []

    def test_analyze_tables(self, graph_file: Path):
        """Test the human-readable report."""
        result = runner.invoke(app, ["graph", "analyze", str(graph_file)])
        assert result.exit_code == 0
        assert "Graph Analysis" in result.stdout
        assert "Hubs" in result.stdout

    def test_affected(self, graph_file: Path):
        """Test blast radius output, one identifier per line."""
        result = runner.invoke(
            app, ["graph", "affected", str(graph_file), "app/models/session_token.rb", "--depth", "1"],
        )
        assert result.exit_code == 0
        assert result.stdout.split() == ["SessionToken", "AuthenticationService"]

    def test_affected_none(self, graph_file: Path):
        """Test unknown files report nothing affected."""
        result = runner.invoke(app, ["graph", "affected", str(graph_file), "README.md"])
        assert result.exit_code == 0
        assert "No affected units." in result.stdout

    def test_pagerank_json(self, graph_file: Path):
        """Test top-N scores as JSON."""
        result = runner.invoke(app, ["graph", "pagerank", str(graph_file), "--top", "3", "--json"])
        assert result.exit_code == 0
        scores = json.loads(result.stdout)
        assert len(scores) == 3
        values = list(scores.values())
        assert values == sorted(values, reverse=True)

    @pytest.mark.parametrize("fmt,marker", [("dot", "digraph"), ("html", "<!doctype html>")])
    def test_export(self, graph_file: Path, temp_dir: Path, fmt: str, marker: str):
        """Test both export formats."""
        output = temp_dir / f"graph.{fmt}"
        result = runner.invoke(app, ["graph", "export", str(graph_file), "-o", str(output), "--format", fmt])

        assert result.exit_code == 0
        assert "Exported graph" in result.stdout
        assert marker in output.read_text()

    def test_export_bad_format(self, graph_file: Path, temp_dir: Path):
        """Test unsupported formats are rejected."""
        result = runner.invoke(
            app, ["graph", "export", str(graph_file), "-o", str(temp_dir / "g.svg"), "--format", "svg"],
        )
        assert result.exit_code != 0


class TestRetrievalCommands:
    """Tests for 'cgc classify' and 'cgc retrieve'."""

    def test_classify(self):
        """Test classification JSON includes the selected strategy."""
        result = runner.invoke(app, ["classify", "where exactly is session_token"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["intent"] == "locate"
        assert payload["scope"] == "pinpoint"
        assert payload["strategy"] == "direct"
        assert payload["keywords"] == ["exactly", "session_token"]

    def test_retrieve_json(self, units_file: Path):
        """Test retrieval over the memory preset as JSON."""
        result = runner.invoke(
            app,
            ["retrieve", str(units_file), "where exactly is session_token", "--preset", "memory", "--json"],
        )
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["strategy"] == "direct"
        assert payload["sources"][0]["identifier"] == "SessionToken"
        assert payload["budget"] == 8000

    def test_retrieve_text(self, units_file: Path):
        """Test the context and source table are printed."""
        result = runner.invoke(
            app,
            ["retrieve", str(units_file), "how does user authentication work?", "-p", "memory", "-b", "2000"],
        )
        assert result.exit_code == 0
        assert "Codebase: 8 units" in result.stdout
        assert "Sources" in result.stdout
        assert "/2000 tokens" in result.stdout

    def test_retrieve_unknown_preset(self, units_file: Path):
        """Test an unknown preset is a usage error."""
        result = runner.invoke(app, ["retrieve", str(units_file), "anything", "--preset", "cloud"])
        assert result.exit_code != 0

    def test_retrieve_default_preset_forgets_previous_units(self, temp_dir: Path):
        """Test a second run on the persistent default preset only sees its own units."""
        first = temp_dir / "a.json"
        first.write_text(json.dumps([
            {"identifier": "LegacyBilling", "type": "service", "file_path": "app/services/legacy_billing.rb",
             "source_code": "class LegacyBilling\nend"},
        ]))
        second = temp_dir / "b.json"
        second.write_text(json.dumps([
            {"identifier": "User", "type": "model", "file_path": "app/models/user.rb",
             "source_code": "class User\nend"},
        ]))

        run1 = runner.invoke(app, ["retrieve", str(first), "where is legacy billing", "--json"])
        assert run1.exit_code == 0
        assert "LegacyBilling" in [s["identifier"] for s in json.loads(run1.stdout)["sources"]]

        run2 = runner.invoke(app, ["retrieve", str(second), "where is legacy billing", "--json"])
        assert run2.exit_code == 0
        payload = json.loads(run2.stdout)
        assert "LegacyBilling" not in [s["identifier"] for s in payload["sources"]]
        assert "LegacyBilling" not in payload["context"]

    def test_retrieve_limit(self, units_file: Path):
        """Test --limit caps the candidates that reach the context."""
        result = runner.invoke(
            app,
            ["retrieve", str(units_file), "how does user authentication work?", "-p", "memory", "--limit", "1", "--json"],
        )
        assert result.exit_code == 0
        assert len(json.loads(result.stdout)["sources"]) == 1

    def test_retrieve_format(self, units_file: Path):
        """Test --format renders the context through a formatter."""
        result = runner.invoke(
            app,
            ["retrieve", str(units_file), "explain the user model", "-p", "memory", "--format", "claude", "--json"],
        )
        assert result.exit_code == 0
        context = json.loads(result.stdout)["context"]
        assert context.startswith("<codebase-context>")
        assert context.endswith("</codebase-context>")

    def test_retrieve_unknown_format(self, units_file: Path):
        """Test an unknown formatter is a usage error."""
        result = runner.invoke(app, ["retrieve", str(units_file), "anything", "-p", "memory", "--format", "yaml"])
        assert result.exit_code != 0

    def test_retrieve_unit_without_identifier(self, temp_dir: Path):
        """Test a unit missing its identifier is a usage error, not a traceback."""
        path = temp_dir / "units.json"
        path.write_text(json.dumps([{"identifier": "User", "type": "model"}, {"type": "service"}]))
        result = runner.invoke(app, ["retrieve", str(path), "anything", "-p", "memory"])

        assert result.exit_code == 2
        assert not isinstance(result.exception, KeyError)
        assert "identifier" in result.output


class TestConfigCommands:
    """Tests for 'cgc config ...' commands."""

    def test_show_defaults(self):
        """Test the default configuration is shown without a config file."""
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "sqlite" in result.stdout
        assert "No config.toml found" in result.stdout

    def test_set_preset(self):
        """Test the preset is persisted."""
        result = runner.invoke(app, ["config", "set-preset", "memory"])
        assert result.exit_code == 0
        assert "Storage preset set to 'memory'." in result.stdout
        assert load_storage_config() == {"preset": "memory"}

    def test_set_unknown_preset(self):
        """Test unknown presets are rejected."""
        result = runner.invoke(app, ["config", "set-preset", "cloud"])
        assert result.exit_code != 0

    def test_set_embedding_hash(self):
        """Test the hash model is saved without a host."""
        result = runner.invoke(app, ["config", "set-embedding", "hash"])
        assert result.exit_code == 0
        assert "Embedding model set to 'hash'." in result.stdout
        assert load_embedding_config() == {"model": "hash"}

    def test_set_embedding_ollama_unreachable(self, monkeypatch):
        """Test an unreachable Ollama host still saves but warns."""
        monkeypatch.setattr("codegraph_context.cli.validate_ollama_connection", lambda host: False)
        result = runner.invoke(app, ["config", "set-embedding", "nomic-embed-text", "--host", "http://gpu:11434"])

        assert result.exit_code == 0
        assert "not reachable" in result.output
        assert load_embedding_config() == {"model": "nomic-embed-text", "host": "http://gpu:11434"}

    def test_set_unknown_embedding(self):
        """Test unknown models are rejected."""
        result = runner.invoke(app, ["config", "set-embedding", "bert"])
        assert result.exit_code != 0

    def test_set_embedding_model_not_pulled(self, monkeypatch):
        """Test a reachable Ollama without the model warns with the pulled models."""
        monkeypatch.setattr("codegraph_context.cli.validate_ollama_connection", lambda host: True)
        monkeypatch.setattr("codegraph_context.cli.get_ollama_models", lambda host: ["llama3:latest"])
        result = runner.invoke(app, ["config", "set-embedding", "nomic-embed-text"])

        assert result.exit_code == 0
        assert "ollama pull nomic-embed-text" in result.output
        assert "llama3:latest" in result.output

    def test_set_embedding_model_pulled(self, monkeypatch):
        """Test no warning when the model is already pulled."""
        monkeypatch.setattr("codegraph_context.cli.validate_ollama_connection", lambda host: True)
        monkeypatch.setattr("codegraph_context.cli.get_ollama_models", lambda host: ["nomic-embed-text:latest"])
        result = runner.invoke(app, ["config", "set-embedding", "nomic-embed-text"])

        assert result.exit_code == 0
        assert "⚠️" not in result.output

    def test_reset_embedding(self):
        """Test the embeddings section is removed."""
        save_embedding_config("mxbai-embed-large")
        result = runner.invoke(app, ["config", "reset-embedding"])

        assert result.exit_code == 0
        assert load_embedding_config() == {}

    def test_set_retrieval(self):
        """Test budget, limit and formatter are persisted and shown."""
        result = runner.invoke(app, ["config", "set-retrieval", "--budget", "4000", "--limit", "5", "--format", "human"])
        assert result.exit_code == 0
        assert load_retrieval_config() == {"budget": 4000, "limit": 5, "format": "human"}

        shown = runner.invoke(app, ["config", "show"])
        assert "human" in shown.stdout
        assert "4000" in shown.stdout

    def test_set_retrieval_unknown_format(self):
        """Test an unknown formatter is rejected."""
        result = runner.invoke(app, ["config", "set-retrieval", "--format", "yaml"])
        assert result.exit_code != 0
