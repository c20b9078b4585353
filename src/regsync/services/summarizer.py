"""Change summarizer backends for RegSync."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx

from regsync.errors import SummarizerApiError, SummarizerUnavailableError
from regsync.models import AISummary, DiffResult

LOGGER = logging.getLogger(__name__)

MAX_BULLETS = 5
_BULLET_SPLIT = re.compile(r"•|(?:^|\n)\s*(?:\d+[.)]|[-*])\s+")

SUMMARY_INSTRUCTIONS = (
    "Summarize these document changes in 2-4 bullet points for a policy administrator. "
    "Focus on what was added, removed, or modified:"
)


@dataclass(frozen=True)
class SummarizerConfig:
    """Configuration for the remote change summarizer."""

    base_url: str = "http://localhost:14345"
    namespace: str = "default"
    project: str = "regsync"
    timeout_seconds: float = 30.0
    max_tokens: int = 150
    temperature: float = 0.3
    max_prompt_chars: int = 6000

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/projects/{self.namespace}/{self.project}/chat/completions"

    @property
    def health_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/health"


class Summarizer(Protocol):
    """Protocol describing change summarization behaviour."""

    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        """Return summary text (usually bullets) describing ``diff``."""


def parse_summary(raw: str) -> AISummary:
    """Split generator output into at most ``MAX_BULLETS`` bullet points."""

    text = raw.strip()
    bullets = [part.strip() for part in _BULLET_SPLIT.split(text)]
    bullets = [part for part in bullets if len(part) > 5]
    if not bullets and text:
        bullets = [text]
    return AISummary(bullets=tuple(bullets[:MAX_BULLETS]), raw=raw)


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "\n[truncated]"


def build_change_prompt(diff: DiffResult, *, document_name: str, max_chars: int) -> str:
    half = max(max_chars // 2, 1)
    added = _clip(diff.added_text(), half) or "No new content"
    removed = _clip(diff.removed_text(), half) or "No content removed"
    return (
        f"{SUMMARY_INSTRUCTIONS}\n\n"
        f"Document: {document_name}\n\n"
        f"CONTENT ADDED:\n{added}\n\n"
        f"CONTENT REMOVED:\n{removed}"
    )


class TemplateSummarizer:
    """Deterministic summarizer used for tests and offline environments."""

    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        stats = diff.stats
        bullets = [
            f"{stats.added_lines} line{'s' if stats.added_lines != 1 else ''} added and "
            f"{stats.removed_lines} line{'s' if stats.removed_lines != 1 else ''} removed in {document_name}",
        ]
        bullets.extend(f"Added: {line}" for line in self._first_non_blank(diff, "added"))
        bullets.extend(f"Removed: {line}" for line in self._first_non_blank(diff, "removed"))
        return "\n".join(f"- {bullet}" for bullet in bullets)

    @staticmethod
    def _first_non_blank(diff: DiffResult, line_type: str, limit: int = 2) -> Sequence[str]:
        picked: list[str] = []
        for line in diff.lines:
            if line.type == line_type and line.content.strip():
                picked.append(line.content.strip()[:120])
                if len(picked) >= limit:
                    break
        return picked


class LlamaFarmSummarizer:
    """Summarizer calling a LlamaFarm project's chat-completions endpoint."""

    def __init__(self, config: SummarizerConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or SummarizerConfig()
        self._client = client

    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        payload = {
            "messages": [
                {
                    "role": "user",
                    "content": build_change_prompt(
                        diff,
                        document_name=document_name,
                        max_chars=self._config.max_prompt_chars,
                    ),
                },
            ],
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        try:
            if self._client is not None:
                response = await self._client.post(self._config.completions_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                    response = await client.post(self._config.completions_url, json=payload)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise SummarizerUnavailableError(
                f"LlamaFarm is not reachable at {self._config.base_url}: {exc}",
            ) from exc
        except httpx.HTTPError as exc:
            raise SummarizerApiError(f"LlamaFarm request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SummarizerApiError(
                f"LlamaFarm summary failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise SummarizerApiError("LlamaFarm returned an unexpected completion payload") from exc
        if not isinstance(content, str) or not content.strip():
            raise SummarizerApiError("LlamaFarm returned an empty summary")
        LOGGER.debug("Generated change summary for %s", document_name)
        return content

    async def health(self) -> bool:
        try:
            if self._client is not None:
                response = await self._client.get(self._config.health_url, timeout=3.0)
            else:
                async with httpx.AsyncClient(timeout=3.0) as client:
                    response = await client.get(self._config.health_url)
        except httpx.HTTPError as exc:
            LOGGER.info("LlamaFarm health check failed: %s", exc)
            return False
        return response.status_code < 400


__all__ = [
    "LlamaFarmSummarizer",
    "Summarizer",
    "SummarizerConfig",
    "TemplateSummarizer",
    "build_change_prompt",
    "parse_summary",
]
