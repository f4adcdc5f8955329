"""Pytest configuration and fixtures for codegraph-context tests."""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from codegraph_context.dependency_graph import DependencyGraph, build_graph
from codegraph_context.embeddings import HashEmbeddingProvider
from codegraph_context.models import Classification, Dependency, Intent, Scope, Unit
from codegraph_context.storage import (
    InMemoryMetadataStore,
    InMemoryVectorStore,
    MemoryGraphStore,
    index_units,
)


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path, monkeypatch):
    """Point config paths at a temp dir so tests never touch ~/.codegraph-context."""
    base = tmp_path / "cgc_home"
    monkeypatch.setattr("codegraph_context.config.BASE_DIR", base)
    monkeypatch.setattr("codegraph_context.config.CONFIG_FILE", base / "config.toml")
    monkeypatch.setattr("codegraph_context.config.INDEX_DIR", base / "index")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


def make_unit(identifier, unit_type, deps=(), file_path=None, namespace=None, source="", **metadata):
    return Unit(
        identifier=identifier,
        type=unit_type,
        namespace=namespace,
        file_path=file_path,
        source_code=source,
        metadata=dict(metadata),
        dependencies=[Dependency(target=d) for d in deps],
    )


def make_classification(
    intent=Intent.UNDERSTAND,
    scope=Scope.FOCUSED,
    target_type=None,
    framework_context=False,
    keywords=(),
) -> Classification:
    return Classification(
        intent=intent,
        scope=scope,
        target_type=target_type,
        framework_context=framework_context,
        keywords=tuple(keywords),
    )


@pytest.fixture
def sample_units() -> List[Unit]:
    """A small application: models, a controller, a service, a mailer, framework source."""
    return [
        make_unit(
            "User", "model", deps=["ActiveRecord::Base"], file_path="app/models/user.rb",
            source="class User < ApplicationRecord\n  has_many :accounts\nend",
        ),
        make_unit(
            "Account", "model", deps=["User"], file_path="app/models/account.rb",
            source="class Account < ApplicationRecord\n  belongs_to :user\nend",
        ),
        make_unit(
            "SessionToken", "model", file_path="app/models/session_token.rb",
            source="class SessionToken < ApplicationRecord\nend",
        ),
        make_unit(
            "AuthenticationService", "service", deps=["User", "SessionToken"],
            file_path="app/services/authentication_service.rb",
            source="class AuthenticationService\n  # authentication of a user by password\n  def call; end\nend",
        ),
        make_unit(
            "UsersController", "controller", deps=["User", "AuthenticationService"],
            file_path="app/controllers/users_controller.rb",
            source="class UsersController < ApplicationController\n  def create; end\nend",
        ),
        make_unit(
            "WelcomeMailer", "mailer", deps=["User"], file_path="app/mailers/welcome_mailer.rb",
            source="class WelcomeMailer < ApplicationMailer\nend",
        ),
        make_unit(
            "Order::Update", "service", deps=["User"], namespace="Order",
            file_path="app/services/order/update.rb",
            source="module Order\n  class Update\n  end\nend",
        ),
        make_unit(
            "ActiveRecord::Base", "rails_source", namespace="ActiveRecord",
            file_path="gems/activerecord/lib/active_record/base.rb",
            source="module ActiveRecord\n  class Base\n  end\nend",
        ),
    ]


@pytest.fixture
def sample_graph(sample_units) -> DependencyGraph:
    return build_graph(sample_units)


@pytest.fixture
def populated_stores(sample_units):
    """In-memory stores loaded with the sample units and hash embeddings."""
    metadata_store = InMemoryMetadataStore()
    vector_store = InMemoryVectorStore()
    graph_store = MemoryGraphStore()
    embedder = HashEmbeddingProvider()
    index_units(
        sample_units,
        metadata_store,
        graph_store=graph_store,
        vector_store=vector_store,
        embedder=embedder,
    )
    return {
        "metadata_store": metadata_store,
        "vector_store": vector_store,
        "graph_store": graph_store,
        "embedding_provider": embedder,
    }


@pytest.fixture
def units_file(temp_dir: Path, sample_units) -> Path:
    """Sample units written as extractor JSON."""
    path = temp_dir / "units.json"
    path.write_text(json.dumps([u.to_dict() for u in sample_units]), encoding="utf-8")
    return path
