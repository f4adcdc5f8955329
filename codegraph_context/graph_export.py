"""Graph export helpers for DOT, standalone HTML, and JSON reports."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .dependency_graph import DependencyGraph
from .models import type_name


def export_dot(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    nodes, edges = _focused_subgraph(graph, focus)

    lines = ["digraph CodeGraph {"]
    lines.append("  rankdir=LR;")

    for identifier in nodes:
        node = graph.node(identifier) or {}
        label = f"{type_name(node.get('type'))}\\n{identifier}"
        lines.append(f'  "{_esc(identifier)}" [label="{_esc(label)}"];')

    for src, dst in edges:
        lines.append(f'  "{_esc(src)}" -> "{_esc(dst)}";')

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_html(graph: DependencyGraph, output_file: Path, focus: str = "") -> None:
    """Export a node/edge listing as a standalone HTML page."""
    nodes, edges = _focused_subgraph(graph, focus)
    graph_payload = {
        "nodes": [
            {
                "id": identifier,
                "label": f"{type_name((graph.node(identifier) or {}).get('type'))}: {identifier}",
                "title": (graph.node(identifier) or {}).get("file_path") or "",
            }
            for identifier in nodes
        ],
        "edges": [{"src": src, "dst": dst} for src, dst in edges],
    }
    output_file.write_text(_basic_html_export(graph_payload), encoding="utf-8")


def analysis_report_json(report: Dict[str, Any], indent: int = 2) -> str:
    """Serialize a :meth:`GraphAnalyzer.analyze` report with plain type names."""
    payload = dict(report)
    payload["hubs"] = [{**hub, "type": type_name(hub["type"])} for hub in report.get("hubs", [])]
    payload["bridges"] = [
        {**bridge, "type": type_name(bridge["type"])} for bridge in report.get("bridges", [])
    ]
    return json.dumps(payload, indent=indent)


def _basic_html_export(graph_payload: dict) -> str:
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>CodeGraph Export</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; }}
  </style>
</head>
<body>
  <h1>CodeGraph Export</h1>
  <div id="container">
    <div class="panel">
      <h2>Units</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Dependencies</h2>
      <ul id="edges"></ul>
    </div>
  </div>
  <script>
    const graph = {json.dumps(graph_payload)};
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    graph.nodes.forEach(n => {{
      const li = document.createElement('li');
      li.textContent = `${{n.label}} (${{n.title}})`;
      nodesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.textContent = `${{e.src}} --> ${{e.dst}}`;
      edgesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""


def _focused_subgraph(graph: DependencyGraph, focus: str) -> Tuple[List[str], List[Tuple[str, str]]]:
    """Nodes and in-graph edges, narrowed to *focus* matches and their neighbours.

    An empty focus, or one matching nothing, selects the whole graph.
    """
    all_nodes = graph.nodes()
    edges = [
        (src, dst)
        for src in all_nodes
        for dst in graph.dependencies_of(src)
        if dst in all_nodes
    ]

    focus_ids = {identifier for identifier in all_nodes if focus and focus in identifier}
    if not focus_ids:
        return list(all_nodes), edges

    edge_subset = [(src, dst) for src, dst in edges if src in focus_ids or dst in focus_ids]
    node_subset = set(focus_ids)
    for src, dst in edge_subset:
        node_subset.add(src)
        node_subset.add(dst)
    return sorted(node_subset), edge_subset


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
