"""Command hierarchy groups for organized CLI experience.

Provides logical grouping of commands under:
  cgc graph   — Dependency graph build, analysis, and export
  cgc config  — Configuration management
"""

from __future__ import annotations

import typer

# ── Graph group ──────────────────────────────────────────────
graph_grp = typer.Typer(
    help="🕸️  Graph — build, analyze, blast radius, PageRank, export.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ── Configuration group ──────────────────────────────────────
config_grp = typer.Typer(
    help="⚙️  Configuration — storage preset, embeddings, budgets.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
