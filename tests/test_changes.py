"""Tests for version comparison orchestration."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from regsync.errors import SummarizerApiError, SummarizerUnavailableError, VersionNotFoundError
from regsync.models import DiffResult, SummaryFailure, VersionRecord
from regsync.services import ChangeOrchestrator
from regsync.storage import InMemoryVersionStore

UPLOADED_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _store() -> InMemoryVersionStore:
    return InMemoryVersionStore(
        [
            VersionRecord("v1", "doc-1", "Grooming Standards", "Section 1\nBeards are not authorized.\nSection 2"),
            VersionRecord(
                "v2",
                "doc-1",
                "Grooming Standards",
                "Section 1\nBeards are authorized with a waiver.\nSection 2",
                uploaded_by="admin@example.mil",
                created_at=UPLOADED_AT,
            ),
            VersionRecord("v3", "doc-1", "Grooming Standards", "Section 1\nBeards are not authorized.\nSection 2"),
            VersionRecord("other", "doc-2", "Fitness Program", "Run 1.5 miles"),
        ],
    )


class CountingSummarizer:
    def __init__(self) -> None:
        self.calls = 0

    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        self.calls += 1
        return f"- Waiver added for beards in {document_name}\n- Prohibition removed"


class SlowSummarizer:
    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        await asyncio.sleep(5)
        return "- too late"


class RaisingSummarizer:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
        self.calls += 1
        raise self.exc


def test_compare_returns_diff_summary_and_provenance() -> None:
    summarizer = CountingSummarizer()
    orchestrator = ChangeOrchestrator(_store(), summarizer)

    changes = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))

    assert changes.document_name == "Grooming Standards"
    assert changes.diff.stats.added_lines == 1
    assert changes.diff.stats.removed_lines == 1
    assert changes.ai_summary is not None
    assert list(changes.ai_summary.bullets) == [
        "Waiver added for beards in Grooming Standards",
        "Prohibition removed",
    ]
    assert changes.updated_by == "admin@example.mil"
    assert changes.updated_at == UPLOADED_AT
    assert changes.summary_failure is None


def test_repeat_comparison_uses_cached_summary() -> None:
    summarizer = CountingSummarizer()
    orchestrator = ChangeOrchestrator(_store(), summarizer)

    first = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))
    second = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))

    assert summarizer.calls == 1
    assert second.ai_summary == first.ai_summary
    assert orchestrator.cached_summary("doc-1", "v1", "v2") == first.ai_summary

    orchestrator.clear_cache()
    asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))
    assert summarizer.calls == 2


def test_cache_is_bounded() -> None:
    summarizer = CountingSummarizer()
    orchestrator = ChangeOrchestrator(_store(), summarizer, cache_size=1)

    asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))
    asyncio.run(orchestrator.compare_versions("doc-1", "v2", "v3"))

    assert orchestrator.cached_summary("doc-1", "v1", "v2") is None
    assert orchestrator.cached_summary("doc-1", "v2", "v3") is not None


def test_identical_versions_skip_the_summarizer() -> None:
    summarizer = CountingSummarizer()
    orchestrator = ChangeOrchestrator(_store(), summarizer)

    changes = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v3"))

    assert summarizer.calls == 0
    assert changes.diff.stats.total_changes == 0
    assert changes.ai_summary is not None
    assert changes.ai_summary.bullets[0].startswith("No content changes detected")


def test_slow_summarizer_times_out_but_diff_survives() -> None:
    orchestrator = ChangeOrchestrator(_store(), SlowSummarizer(), summary_timeout_seconds=0.05)

    changes = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))

    assert changes.ai_summary is None
    assert changes.summary_failure is SummaryFailure.UNAVAILABLE
    assert "timed out" in (changes.summary_error or "")
    assert changes.diff.stats.total_changes == 2


@pytest.mark.parametrize(
    ("exc", "failure"),
    [
        (SummarizerUnavailableError("LlamaFarm is not reachable"), SummaryFailure.UNAVAILABLE),
        (SummarizerApiError("bad gateway", status_code=502), SummaryFailure.API_ERROR),
        (RuntimeError("boom"), SummaryFailure.UNKNOWN),
    ],
)
def test_summarizer_failures_are_tagged_not_raised(exc: Exception, failure: SummaryFailure) -> None:
    summarizer = RaisingSummarizer(exc)
    orchestrator = ChangeOrchestrator(_store(), summarizer)

    changes = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))

    assert changes.ai_summary is None
    assert changes.summary_failure is failure
    assert changes.summary_error
    assert changes.diff.stats.added_lines == 1
    assert orchestrator.cached_summary("doc-1", "v1", "v2") is None

    asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))
    assert summarizer.calls == 2


def test_unknown_version_raises() -> None:
    orchestrator = ChangeOrchestrator(_store(), CountingSummarizer())

    with pytest.raises(VersionNotFoundError) as excinfo:
        asyncio.run(orchestrator.compare_versions("doc-1", "v1", "missing"))

    assert excinfo.value.version_id == "missing"


def test_version_of_another_document_raises() -> None:
    orchestrator = ChangeOrchestrator(_store(), CountingSummarizer())

    with pytest.raises(VersionNotFoundError):
        asyncio.run(orchestrator.compare_versions("doc-1", "v1", "other"))


def test_cancelled_comparison_does_not_cache() -> None:
    class BlockingSummarizer:
        def __init__(self) -> None:
            self.entered: asyncio.Event | None = None

        async def summarize(self, diff: DiffResult, *, document_name: str) -> str:
            assert self.entered is not None
            self.entered.set()
            await asyncio.sleep(5)
            return "- never"

    summarizer = BlockingSummarizer()
    orchestrator = ChangeOrchestrator(_store(), summarizer)

    async def scenario() -> None:
        summarizer.entered = asyncio.Event()
        task = asyncio.create_task(orchestrator.compare_versions("doc-1", "v1", "v2"))
        await summarizer.entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert orchestrator.cached_summary("doc-1", "v1", "v2") is None


def test_edit_bound_applies_to_version_diffs() -> None:
    store = InMemoryVersionStore(
        [
            VersionRecord("v1", "doc-1", "Grooming Standards", "head\na\nb\nc\nd\ntail"),
            VersionRecord("v2", "doc-1", "Grooming Standards", "head\nb\na\nd\nc\ntail"),
        ],
    )
    orchestrator = ChangeOrchestrator(store, CountingSummarizer(), max_edit_distance=2)

    changes = asyncio.run(orchestrator.compare_versions("doc-1", "v1", "v2"))

    assert changes.diff.stats.unchanged_lines == 2
    assert changes.diff.reconstruct_new() == "head\nb\na\nd\nc\ntail"
