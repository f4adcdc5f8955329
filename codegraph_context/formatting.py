"""Output formatters that render an :class:`AssembledContext` for a consumer.

=========== =====================================================
Key         Output
=========== =====================================================
claude      XML: ``<codebase-context>`` with meta, content, sources
gpt         Markdown with a fenced code block and a source list
generic     Plain text with ``---`` dividers
human       Box-drawn header for terminal display
=========== =====================================================

Example::

    formatter = get_formatter("claude")
    text = formatter.format(assembled)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Type

from .models import AssembledContext, SourceAttribution


class Formatter(ABC):
    """Turns an assembled context into a single string."""

    @abstractmethod
    def format(self, assembled: AssembledContext) -> str:
        ...


class ClaudeFormatter(Formatter):
    """XML with escaped content and one self-closing ``<source>`` per unit."""

    def format(self, assembled: AssembledContext) -> str:
        lines = [
            "<codebase-context>",
            f'  <meta tokens="{assembled.tokens_used}" budget="{assembled.budget}" />',
            "  <content>",
        ]
        if assembled.context:
            lines.append(_indent(_escape_xml(assembled.context), 4))
        lines.append("  </content>")
        lines.append("  <sources>")
        for source in assembled.sources:
            lines.append(f"    <source {self._attributes(source)} />")
        lines.append("  </sources>")
        lines.append("</codebase-context>")
        return "\n".join(lines)

    @staticmethod
    def _attributes(source: SourceAttribution) -> str:
        return " ".join([
            f'identifier="{_escape_xml(source.identifier)}"',
            f'type="{_escape_xml(source.type)}"',
            f'score="{source.score}"',
            f'file="{_escape_xml(source.file_path or "")}"',
        ])


class GptFormatter(Formatter):
    """Markdown: heading, token line, fenced Ruby block, bulleted sources."""

    def format(self, assembled: AssembledContext) -> str:
        lines = [
            "## Codebase Context",
            "",
            f"**Tokens:** {assembled.tokens_used}/{assembled.budget}",
            "",
            "---",
            "",
            "```ruby",
            assembled.context,
            "```",
        ]
        if assembled.sources:
            lines += ["", "### Sources", ""]
            for source in assembled.sources:
                lines.append(
                    f"- **{source.identifier}** ({source.type}) — "
                    f"score: {source.score}, file: {source.file_path or ''}"
                )
        return "\n".join(lines)


class GenericFormatter(Formatter):
    """Plain text for any LLM."""

    def format(self, assembled: AssembledContext) -> str:
        lines = [
            "=== CODEBASE CONTEXT ===",
            f"Tokens: {assembled.tokens_used} / {assembled.budget}",
            "---",
            assembled.context,
        ]
        if assembled.sources:
            lines.append("---")
            for source in assembled.sources:
                lines.append(f"[Source: {source.identifier} ({source.type}) — score: {source.score}]")
        return "\n".join(lines)


class HumanFormatter(Formatter):
    """Box-drawn header, the context, and one decorated line per source."""

    HEADER_WIDTH = 50

    def format(self, assembled: AssembledContext) -> str:
        lines = self._header(assembled)
        lines.append("")
        if assembled.context:
            lines.append(assembled.context)
        if assembled.sources:
            lines += ["", "Sources:"]
            for source in assembled.sources:
                lines += self._source_entry(source)
        return "\n".join(lines)

    def _header(self, assembled: AssembledContext) -> List[str]:
        title = "Codebase Context"
        token_info = f"Tokens: {assembled.tokens_used} / {assembled.budget}"
        width = max(self.HEADER_WIDTH, len(title) + 4, len(token_info) + 4)
        return [
            "╔" + "═" * width + "╗",
            "║ " + title.ljust(width - 2) + " ║",
            "╚" + "═" * width + "╝",
            token_info,
        ]

    def _source_entry(self, source: SourceAttribution) -> List[str]:
        header = f"── {source.identifier} ({source.type}) "
        header += "─" * max(1, self.HEADER_WIDTH - len(header) - 12)
        header += f" score: {source.score}"
        return [header, f"   {source.file_path or ''}"]


FORMATTERS: Dict[str, Type[Formatter]] = {
    "claude": ClaudeFormatter,
    "gpt": GptFormatter,
    "generic": GenericFormatter,
    "human": HumanFormatter,
}


def get_formatter(name: str) -> Formatter:
    """Return a formatter instance for *name*."""
    if name not in FORMATTERS:
        raise ValueError(f"Unknown formatter: '{name}'. Available: {', '.join(FORMATTERS)}")
    return FORMATTERS[name]()


def _escape_xml(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _indent(text: str, spaces: int) -> str:
    prefix = " " * spaces
    return "\n".join(prefix + line for line in text.splitlines())
