"""
Run Report - Structured record of one smoke test run.

Written as JSON for CI artifacts, or as markdown for a job summary page.
Node IDs are replaced by their attempt labels unless explicitly included.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from smoke_runner.attempt import AttemptRecord
from smoke_runner.verdict import Verdict


@dataclass
class RunReport:
    """Report for a finished run."""

    verdict: Verdict
    binary_path: str
    success_pattern: str
    single_attempt: bool = False
    include_candidates: bool = False
    error: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        verdict = self.verdict
        finished = verdict.finished_at or verdict.started_at
        return {
            "verdict": verdict.label,
            "exit_code": verdict.exit_code,
            "started_at": verdict.started_at.isoformat(),
            "finished_at": finished.isoformat(),
            "duration_seconds": (finished - verdict.started_at).total_seconds(),
            "summary": self._generate_summary(),
            "binary_path": self.binary_path,
            "success_pattern": self.success_pattern,
            "single_attempt": self.single_attempt,
            "attempts": [self._attempt_dict(a) for a in verdict.attempts],
            "error": self.error,
            **self.extra,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save(self, path: Path | str) -> Path:
        """Write the report; a ``.md`` suffix selects markdown, anything else JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() == ".md":
            path.write_text(self.to_markdown(), encoding="utf-8")
        else:
            path.write_text(self.to_json(), encoding="utf-8")
        return path

    def _attempt_dict(self, attempt: AttemptRecord) -> dict[str, Any]:
        outcome = attempt.outcome
        data: dict[str, Any] = {
            "attempt": attempt.label,
            "outcome": outcome.kind.value,
            "exit_code": outcome.exit_code,
            "retry_after": outcome.retry_after,
            "duration_seconds": round(attempt.duration, 3),
            "marker_at_seconds": attempt.marker_at,
            "terminated": attempt.terminated,
            "killed": attempt.killed,
            "tail": [self._redact(line) for line in attempt.tail],
            "snippets": [self._redact(s) for s in attempt.snippets],
        }
        if self.include_candidates:
            data["candidate"] = attempt.candidate
        return data

    def _redact(self, text: str) -> str:
        if self.include_candidates:
            return text
        for attempt in sorted(self.verdict.attempts, key=lambda a: len(a.candidate), reverse=True):
            text = text.replace(attempt.candidate, "***")
        return text

    def _generate_summary(self) -> str:
        if self.error:
            return f"{self.error.get('error')}: {self.error.get('message')}"
        if not self.verdict.attempts:
            return "No attempts ran"

        parts = [f"{self.verdict.label} after {len(self.verdict.attempts)} attempt(s)"]
        parts.append(", ".join(self.verdict.outcomes))
        return " | ".join(parts)

    def to_markdown(self) -> str:
        """Generate markdown report for human review."""
        icon = "✅" if self.verdict.passed else "❌"
        md = f"""# Integration Test {icon} {self.verdict.label}

**Binary:** `{self.binary_path}`
**Pattern:** `{self.success_pattern}`
**Summary:** {self._generate_summary()}

"""
        if self.error:
            md += f"## Error\n\n```\n{self.error.get('message')}\n```\n\n"

        if self.verdict.attempts:
            md += "| Attempt | Outcome | Exit code | Duration |\n"
            md += "|---|---|---|---|\n"
            for a in self.verdict.attempts:
                md += (
                    f"| {a.label} | {a.outcome} | {a.outcome.exit_code} "
                    f"| {a.duration:.1f}s |\n"
                )

        for a in self.verdict.attempts:
            if not a.tail and not a.snippets:
                continue
            md += f"\n## Attempt {a.label}: {a.outcome}\n\n"
            for snippet in a.snippets:
                md += f"```\n{self._redact(snippet)}\n```\n\n"
            if a.tail:
                md += "```\n" + "\n".join(self._redact(ln) for ln in a.tail) + "\n```\n"

        return md
