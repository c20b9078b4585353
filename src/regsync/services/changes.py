"""Change orchestration combining the diff engine and the summarizer."""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Tuple

from regsync.diffing import DEFAULT_MAX_EDIT_DISTANCE
from regsync.diffing import diff as compute_diff
from regsync.errors import SummarizerError, VersionNotFoundError
from regsync.metrics.observability import PipelineMetrics, get_logger
from regsync.models import AISummary, DiffResult, DocumentChanges, SummaryFailure, VersionRecord
from regsync.services.summarizer import Summarizer, TemplateSummarizer, parse_summary
from regsync.storage.versions import VersionStore

CacheKey = Tuple[str, str, str]

NO_CHANGES_SUMMARY = (
    'No content changes detected between these versions of "{name}". '
    "The update may only touch formatting or metadata."
)


class ChangeOrchestrator:
    """Builds reviewable ``DocumentChanges`` for a pair of stored versions.

    The diff is always computed and returned. The summary is best-effort: it
    is requested with a timeout, failures are tagged on the result instead of
    raised, and successful summaries are cached per comparison.
    """

    def __init__(
        self,
        store: VersionStore,
        summarizer: Summarizer | None = None,
        *,
        summary_timeout_seconds: float = 30.0,
        cache_size: int = 256,
        max_edit_distance: int | None = DEFAULT_MAX_EDIT_DISTANCE,
    ) -> None:
        self._store = store
        self._summarizer = summarizer or TemplateSummarizer()
        self._timeout = summary_timeout_seconds
        self._cache_size = max(cache_size, 0)
        self._max_edit_distance = max_edit_distance
        self._cache: OrderedDict[CacheKey, AISummary] = OrderedDict()
        self._logger = get_logger("changes")

    async def compare_versions(self, document_id: str, old_version_id: str, new_version_id: str) -> DocumentChanges:
        old_record, new_record = await asyncio.gather(
            asyncio.to_thread(self._load, document_id, old_version_id),
            asyncio.to_thread(self._load, document_id, new_version_id),
        )
        diff_result = await asyncio.to_thread(
            compute_diff,
            old_record.text,
            new_record.text,
            max_edit_distance=self._max_edit_distance,
        )

        key = (document_id, old_version_id, new_version_id)
        summary, failure, error = await self._summarize(key, diff_result, new_record.document_name)
        self._logger.info(
            "changes.complete",
            document_id=document_id,
            old_version_id=old_version_id,
            new_version_id=new_version_id,
            total_changes=diff_result.stats.total_changes,
            summary_failure=failure.value if failure else None,
        )
        return DocumentChanges(
            document_id=document_id,
            document_name=new_record.document_name,
            old_version_id=old_version_id,
            new_version_id=new_version_id,
            diff=diff_result,
            ai_summary=summary,
            updated_at=new_record.created_at,
            updated_by=new_record.uploaded_by,
            summary_failure=failure,
            summary_error=error,
        )

    def cached_summary(self, document_id: str, old_version_id: str, new_version_id: str) -> AISummary | None:
        return self._cache.get((document_id, old_version_id, new_version_id))

    def clear_cache(self) -> None:
        self._cache.clear()

    def _load(self, document_id: str, version_id: str) -> VersionRecord:
        record = self._store.get_version(version_id)
        if record.document_id != document_id:
            raise VersionNotFoundError(version_id, f"Version {version_id} does not belong to document {document_id}")
        return record

    async def _summarize(
        self,
        key: CacheKey,
        diff_result: DiffResult,
        document_name: str,
    ) -> tuple[AISummary | None, SummaryFailure | None, str | None]:
        if diff_result.stats.total_changes == 0:
            message = NO_CHANGES_SUMMARY.format(name=document_name)
            return AISummary(bullets=(message,), raw=message), None, None

        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            PipelineMetrics.summary_cache_hits.inc()
            return cached, None, None

        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self._summarizer.summarize(diff_result, document_name=document_name),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(key, SummaryFailure.UNAVAILABLE, f"Summarizer timed out after {self._timeout:g}s")
        except SummarizerError as exc:
            return self._failed(key, exc.failure, str(exc))
        except Exception as exc:  # noqa: BLE001 - summary is optional, never fatal
            return self._failed(key, SummaryFailure.UNKNOWN, f"{type(exc).__name__}: {exc}")
        finally:
            PipelineMetrics.observe_summary(time.perf_counter() - start)

        summary = parse_summary(raw)
        if self._cache_size:
            self._cache[key] = summary
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return summary, None, None

    def _failed(self, key: CacheKey, failure: SummaryFailure, message: str) -> tuple[None, SummaryFailure, str]:
        PipelineMetrics.record_summary_failure(failure.value)
        self._logger.warning(
            "summary.failed",
            document_id=key[0],
            old_version_id=key[1],
            new_version_id=key[2],
            kind=failure.value,
            detail=message,
        )
        return None, failure, message


__all__ = ["ChangeOrchestrator", "NO_CHANGES_SUMMARY"]
