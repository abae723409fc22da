"""
Log Extractor - Pull error snippets out of captured worker output.

The tail of the output often ends with shutdown noise; the snippets keep the
lines around the first errors so a failed attempt can be read without the
full log.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

DEFAULT_ERROR_PATTERNS = [
    re.compile(r"\bERROR\b"),
    re.compile(r"panicked at", re.IGNORECASE),
    re.compile(r"Rate limited", re.IGNORECASE),
    re.compile(r"\bfailed\b", re.IGNORECASE),
]


@dataclass
class LogSnippet:
    """A snippet of output with context around an error line."""

    error_line: str
    context_before: list[str]
    context_after: list[str]
    line_number: int

    def to_string(self) -> str:
        lines = []
        start_num = self.line_number - len(self.context_before)

        for i, line in enumerate(self.context_before):
            lines.append(f"  {start_num + i:4d} │ {line}")
        lines.append(f"→ {self.line_number:4d} │ {self.error_line}")
        for i, line in enumerate(self.context_after):
            lines.append(f"  {self.line_number + 1 + i:4d} │ {line}")

        return "\n".join(lines)


def strip_ansi(line: str) -> str:
    return ANSI_ESCAPE.sub("", line)


class LogExtractor:
    """Extract error snippets with surrounding context."""

    def __init__(self, context_lines: int = 2, max_snippets: int = 3):
        self.context_lines = context_lines
        self.max_snippets = max_snippets

    def extract_error_snippets(
        self,
        text: str,
        error_patterns: list[re.Pattern] | None = None,
    ) -> list[LogSnippet]:
        """
        Return up to ``max_snippets`` snippets around matching lines.

        Overlapping matches are merged into the earlier snippet.
        """
        patterns = error_patterns or DEFAULT_ERROR_PATTERNS
        logs = [strip_ansi(line) for line in text.splitlines()]
        snippets: list[LogSnippet] = []
        covered_until = -1

        for i, line in enumerate(logs):
            if i <= covered_until:
                continue
            if not any(p.search(line) for p in patterns):
                continue

            start = max(0, i - self.context_lines)
            end = min(len(logs), i + self.context_lines + 1)
            snippets.append(LogSnippet(
                error_line=line,
                context_before=logs[start:i],
                context_after=logs[i + 1:end],
                line_number=i + 1,  # 1-based
            ))
            covered_until = end - 1

            if len(snippets) >= self.max_snippets:
                break

        return snippets
