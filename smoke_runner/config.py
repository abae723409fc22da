"""Harness settings with Pydantic validation and environment loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SUCCESS_PATTERN = "Step 4 of 4: Proof submitted successfully"
DEFAULT_RATE_LIMIT_PATTERN = "Rate limited"


def split_ids(raw: str) -> List[str]:
    """Split a comma-separated ID list, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


class HarnessSettings(BaseSettings):
    """Smoke test settings loaded from SMOKE_TEST_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SMOKE_TEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Candidates (node IDs are CI secrets, kept as raw strings)
    node_ids: str = Field(
        default="", description="Comma-separated node IDs, overrides everything else"
    )
    fallback_node_ids: str = Field(
        default="6166715,23716208,23519580,23718361",
        description="Used when neither the environment nor the CLI names a node",
    )
    shuffle: bool = Field(default=True, description="Randomize node order per run")

    # Worker
    binary_path: str = Field(default="./target/release/nexus-network")
    max_tasks: int = Field(default=1, ge=1, description="Units of work per attempt")
    worker_log_level: str = Field(default="warn", description="Exported as RUST_LOG")
    disable_core_dumps: bool = Field(default=True)

    # Markers
    success_pattern: str = Field(default=DEFAULT_SUCCESS_PATTERN, min_length=1)
    rate_limit_pattern: str = Field(default=DEFAULT_RATE_LIMIT_PATTERN, min_length=1)
    match_mode: Literal["substring", "regex"] = Field(default="substring")

    # Timing (seconds)
    tick_interval: float = Field(default=1.0, gt=0)
    primary_timeout: float = Field(default=60.0, gt=0)
    success_grace: float = Field(default=30.0, ge=0)
    terminate_grace: float = Field(default=2.0, ge=0)
    progress_interval: float = Field(default=10.0, gt=0)
    drain_timeout: float = Field(
        default=5.0, ge=0, description="Max wait for the output reader after exit"
    )

    # Diagnostics
    tail_lines: int = Field(default=10, ge=0)
    progress_tail_lines: int = Field(default=3, ge=0)
    echo_output: bool = Field(default=True, description="Mirror worker output to stdout")
    redact_candidates: bool = Field(default=True)
    report_path: Optional[Path] = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: Literal["text", "json"] = Field(default="text")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @property
    def environment_pool(self) -> List[str]:
        return split_ids(self.node_ids)

    @property
    def fallback_pool(self) -> List[str]:
        return split_ids(self.fallback_node_ids)


@lru_cache
def get_settings() -> HarnessSettings:
    """Cached settings factory."""
    return HarnessSettings()
