"""Runtime configuration for the RegSync services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from regsync.matching.detector import MatchConfig
from regsync.services.summarizer import SummarizerConfig


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="regsync_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Directory holding metadata.json and the stored version files
    policies_dir: Path = Path("./policies")
    text_encoding: str = "utf-8"

    # Match detection weights; policy values, tune freely
    match_weight_supersedes: float = 0.9
    match_weight_document_number: float = 0.8
    match_weight_opr: float = 0.5
    match_weight_title: float = 0.4
    match_weight_filename: float = 0.3
    match_high_threshold: float = 0.75
    match_medium_threshold: float = 0.45
    match_score_floor: float = 0.2
    match_min_similarity: float = 0.2
    match_top_k: int = 5
    match_version_min_confidence: Literal["high", "medium", "low"] = "low"

    # Line diff: edits beyond this bound are reported as one replaced block
    diff_max_edit_distance: int = 1000

    # Change digest: how far back periods may be requested
    digest_archive_months: int = 3

    # External change summarizer (LlamaFarm chat completions)
    use_remote_summarizer: bool = False
    summarizer_url: str = "http://localhost:14345"
    summarizer_namespace: str = "default"
    summarizer_project: str = "regsync"
    summarizer_timeout_seconds: float = 30.0
    summarizer_max_tokens: int = 150
    summarizer_temperature: float = 0.3
    summarizer_max_prompt_chars: int = 6000
    summary_cache_size: int = 256

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    # Security
    api_key: str | None = None  # if set, required in X-API-Key header

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    def match_config(self) -> MatchConfig:
        return MatchConfig(
            supersedes_weight=self.match_weight_supersedes,
            document_number_weight=self.match_weight_document_number,
            opr_weight=self.match_weight_opr,
            title_weight=self.match_weight_title,
            filename_weight=self.match_weight_filename,
            high_threshold=self.match_high_threshold,
            medium_threshold=self.match_medium_threshold,
            score_floor=self.match_score_floor,
            min_similarity=self.match_min_similarity,
            top_k=self.match_top_k,
            version_min_confidence=self.match_version_min_confidence,
        )

    def summarizer_config(self) -> SummarizerConfig:
        return SummarizerConfig(
            base_url=self.summarizer_url,
            namespace=self.summarizer_namespace,
            project=self.summarizer_project,
            timeout_seconds=self.summarizer_timeout_seconds,
            max_tokens=self.summarizer_max_tokens,
            temperature=self.summarizer_temperature,
            max_prompt_chars=self.summarizer_max_prompt_chars,
        )


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
