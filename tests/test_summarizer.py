"""Tests for change summarizer backends."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from regsync.diffing import diff
from regsync.errors import SummarizerApiError, SummarizerUnavailableError
from regsync.models import SummaryFailure
from regsync.services import LlamaFarmSummarizer, SummarizerConfig, TemplateSummarizer, parse_summary
from regsync.services.summarizer import build_change_prompt

CHANGE = diff("Section 1\nBeards are not authorized.", "Section 1\nBeards are authorized with a waiver.")


def _summarizer(handler) -> LlamaFarmSummarizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LlamaFarmSummarizer(SummarizerConfig(base_url="http://llamafarm.test"), client=client)


def test_llamafarm_posts_prompt_and_returns_content() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "- Beards now allowed with a waiver"}}]},
        )

    raw = asyncio.run(_summarizer(handler).summarize(CHANGE, document_name="Grooming Standards"))

    assert raw == "- Beards now allowed with a waiver"
    assert seen["url"] == "http://llamafarm.test/v1/projects/default/regsync/chat/completions"
    body = seen["body"]
    assert isinstance(body, dict)
    assert body["max_tokens"] == 150
    assert body["temperature"] == 0.3
    prompt = body["messages"][0]["content"]
    assert "Document: Grooming Standards" in prompt
    assert "Beards are authorized with a waiver." in prompt


def test_llamafarm_error_status_is_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="model crashed")

    with pytest.raises(SummarizerApiError) as excinfo:
        asyncio.run(_summarizer(handler).summarize(CHANGE, document_name="Doc"))

    assert excinfo.value.status_code == 500
    assert excinfo.value.failure is SummaryFailure.API_ERROR


def test_llamafarm_connection_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SummarizerUnavailableError):
        asyncio.run(_summarizer(handler).summarize(CHANGE, document_name="Doc"))


@pytest.mark.parametrize(
    "payload",
    [{"choices": []}, {"unexpected": True}, {"choices": [{"message": {"content": "   "}}]}],
)
def test_llamafarm_malformed_payload_is_api_error(payload: dict) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(SummarizerApiError):
        asyncio.run(_summarizer(handler).summarize(CHANGE, document_name="Doc"))


def test_llamafarm_health_reports_reachability() -> None:
    def healthy(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ok"})

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    assert asyncio.run(_summarizer(healthy).health()) is True
    assert asyncio.run(_summarizer(down).health()) is False


def test_template_summarizer_mentions_counts_and_lines() -> None:
    raw = asyncio.run(TemplateSummarizer().summarize(CHANGE, document_name="Grooming Standards"))

    summary = parse_summary(raw)
    assert summary.bullets[0] == "1 line added and 1 line removed in Grooming Standards"
    assert "Added: Beards are authorized with a waiver." in summary.bullets
    assert "Removed: Beards are not authorized." in summary.bullets


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("- First change here\n- Second change here", ("First change here", "Second change here")),
        ("• Added section 4\n• Removed old rule", ("Added section 4", "Removed old rule")),
        ("1. Alpha bullet\n2) Beta bullet", ("Alpha bullet", "Beta bullet")),
        ("Short", ("Short",)),
    ],
)
def test_parse_summary_bullets(raw: str, expected: tuple[str, ...]) -> None:
    summary = parse_summary(raw)

    assert tuple(summary.bullets) == expected
    assert summary.raw == raw


def test_parse_summary_caps_bullets() -> None:
    raw = "\n".join(f"- Change number {index}" for index in range(8))

    assert len(parse_summary(raw).bullets) == 5


def test_prompt_truncates_long_changes() -> None:
    long_change = diff("", "\n".join(f"new requirement {index}" for index in range(1000)))

    prompt = build_change_prompt(long_change, document_name="Doc", max_chars=200)

    assert "[truncated]" in prompt
    assert "CONTENT REMOVED:\nNo content removed" in prompt
