"""Match detection: is an upload a new policy or a new version of one?"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Literal, Sequence

from regsync.errors import InvalidInputError
from regsync.matching.signals import (
    document_series_number,
    extract_document_number,
    normalize_document_number,
    normalize_filename,
    normalize_title,
    similarity_upper_bound,
    string_similarity,
)
from regsync.metrics.observability import PipelineMetrics, get_logger
from regsync.models import (
    Confidence,
    DocumentMatch,
    DocumentSignals,
    LibraryEntry,
    MatchDetectionResult,
    MatchSignal,
    NewDocument,
    SignalType,
    UploadClassification,
    VersionOf,
)

# Earlier entries win ties between equal scores
TIE_BREAK_ORDER: tuple[SignalType, ...] = ("supersedes", "document_number", "opr", "title", "filename")
_CONFIDENCE_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2}


@dataclass(frozen=True)
class MatchConfig:
    """Weights and thresholds for match scoring."""

    supersedes_weight: float = 0.9
    document_number_weight: float = 0.8
    opr_weight: float = 0.5
    title_weight: float = 0.4
    filename_weight: float = 0.3
    high_threshold: float = 0.75
    medium_threshold: float = 0.45
    score_floor: float = 0.2
    min_similarity: float = 0.2
    top_k: int = 5
    version_min_confidence: Literal["high", "medium", "low"] = "low"

    def __post_init__(self) -> None:
        for name in (
            "supersedes_weight",
            "document_number_weight",
            "opr_weight",
            "title_weight",
            "filename_weight",
            "score_floor",
            "min_similarity",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidInputError(f"{name} must be within [0, 1], got {value}")
        if not 0.0 <= self.medium_threshold <= self.high_threshold <= 1.0:
            raise InvalidInputError("confidence thresholds must satisfy 0 <= medium <= high <= 1")
        if self.top_k < 1:
            raise InvalidInputError("top_k must be at least 1")


def confidence_for(score: float, config: MatchConfig | None = None) -> Confidence:
    config = config or MatchConfig()
    if score >= config.high_threshold:
        return "high"
    if score >= config.medium_threshold:
        return "medium"
    return "low"


def aggregate_score(signals: Sequence[MatchSignal]) -> float:
    return min(1.0, sum(signal.weight for signal in signals))


@dataclass(frozen=True)
class _PreparedUpload:
    document_number: str
    supersedes_numbers: frozenset[str]
    supersedes_series: frozenset[str]
    supersedes_titles: frozenset[str]
    title: str
    filename: str
    opr: str


class MatchDetector:
    """Scores an upload's signals against a read-only library snapshot."""

    _logger = get_logger("matching")

    def __init__(self, config: MatchConfig | None = None) -> None:
        self._config = config or MatchConfig()

    @property
    def config(self) -> MatchConfig:
        return self._config

    def detect(self, signals: DocumentSignals, library: Sequence[LibraryEntry]) -> MatchDetectionResult:
        start = time.perf_counter()
        upload = self._prepare(signals)
        scored: list[DocumentMatch] = []
        for entry in library:
            match = self._score_candidate(upload, entry)
            if match is not None:
                scored.append(match)
        scored.sort(key=self._sort_key)
        matches = scored[: self._config.top_k]

        duration = time.perf_counter() - start
        PipelineMetrics.observe_match(duration, len(scored), matches[0].score if matches else None)
        self._logger.info(
            "match.complete",
            filename=signals.filename,
            library_size=len(library),
            candidate_count=len(scored),
            top_score=matches[0].score if matches else None,
            duration_seconds=duration,
        )
        return MatchDetectionResult(
            matches=matches,
            analysis_time_ms=duration * 1000,
            extracted_title=signals.title or None,
            extracted_doc_number=signals.document_number,
        )

    def classify(self, result: MatchDetectionResult) -> UploadClassification:
        """Turn a detection result into a new-document / new-version decision."""

        if not result.matches:
            return NewDocument()
        top = result.matches[0]
        if _CONFIDENCE_RANK[top.confidence] < _CONFIDENCE_RANK[self._config.version_min_confidence]:
            return NewDocument()
        return VersionOf(document_id=top.document.id, match=top)

    def _score_candidate(self, upload: _PreparedUpload, entry: LibraryEntry) -> DocumentMatch | None:
        _validate_entry(entry)
        config = self._config
        signals: list[MatchSignal] = []

        # Exact signals first; they are cheap
        entry_number_raw = _entry_document_number(entry)
        entry_number = normalize_document_number(entry_number_raw)
        entry_series = document_series_number(entry_number_raw)
        entry_titles = {title for title in (normalize_title(entry.name), normalize_title(entry.short_title)) if title}

        if config.supersedes_weight and (
            (entry_number and entry_number in upload.supersedes_numbers)
            or (entry_series and entry_series in upload.supersedes_series)
            or entry_titles & upload.supersedes_titles
        ):
            label = entry.short_title or entry_number_raw or entry.name
            signals.append(MatchSignal(type="supersedes", weight=config.supersedes_weight, detail=f"Supersedes {label}"))

        if config.document_number_weight and entry_number and entry_number == upload.document_number:
            signals.append(
                MatchSignal(
                    type="document_number",
                    weight=config.document_number_weight,
                    detail=f"Document number {entry_number_raw}",
                ),
            )

        if config.opr_weight and entry.opr and upload.opr and _fold_opr(entry.opr) == upload.opr:
            signals.append(MatchSignal(type="opr", weight=config.opr_weight, detail=f"OPR {entry.opr}"))

        title_similarity = max((self._similarity(upload.title, title) for title in entry_titles), default=0.0)
        if config.title_weight and title_similarity and title_similarity >= config.min_similarity:
            signals.append(
                MatchSignal(type="title", weight=config.title_weight * title_similarity, similarity=title_similarity),
            )

        filename_similarity = self._similarity(upload.filename, normalize_filename(entry.filename))
        if config.filename_weight and filename_similarity and filename_similarity >= config.min_similarity:
            signals.append(
                MatchSignal(
                    type="filename",
                    weight=config.filename_weight * filename_similarity,
                    similarity=filename_similarity,
                ),
            )

        score = aggregate_score(signals)
        if not signals or score < config.score_floor:
            return None
        return DocumentMatch(document=entry, score=score, confidence=confidence_for(score, config), signals=signals)

    def _similarity(self, first: str, second: str) -> float:
        if not first or not second:
            return 0.0
        # Skip the bigram pass when lengths alone rule the pair out
        if similarity_upper_bound(first, second) < self._config.min_similarity:
            return 0.0
        return string_similarity(first, second)

    @staticmethod
    def _sort_key(match: DocumentMatch) -> tuple:
        presence = tuple(0 if match.has_signal(signal_type) else 1 for signal_type in TIE_BREAK_ORDER)
        return (-match.score, *presence, match.document.id)

    @staticmethod
    def _prepare(signals: DocumentSignals) -> _PreparedUpload:
        _validate_signals(signals)
        numbers: set[str] = set()
        series: set[str] = set()
        titles: set[str] = set()
        for ref in signals.supersedes_refs:
            ref_series = document_series_number(ref)
            if ref_series:
                numbers.add(normalize_document_number(ref))
                series.add(ref_series)
            else:
                titles.add(normalize_title(ref))
        return _PreparedUpload(
            document_number=normalize_document_number(signals.document_number),
            supersedes_numbers=frozenset(number for number in numbers if number),
            supersedes_series=frozenset(series),
            supersedes_titles=frozenset(title for title in titles if title),
            title=normalize_title(signals.title),
            filename=normalize_filename(signals.filename),
            opr=_fold_opr(signals.opr) if signals.opr else "",
        )


def _entry_document_number(entry: LibraryEntry) -> str | None:
    return entry.document_number or extract_document_number(entry.short_title) or extract_document_number(entry.name)


def _fold_opr(value: str) -> str:
    return value.strip().casefold()


def _validate_signals(signals: DocumentSignals) -> None:
    if not isinstance(signals, DocumentSignals):
        raise InvalidInputError(f"Expected DocumentSignals, got {type(signals).__name__}")
    if not isinstance(signals.title, str) or not isinstance(signals.filename, str):
        raise InvalidInputError("Upload title and filename must be strings")
    if not signals.filename.strip():
        raise InvalidInputError("Upload filename must not be empty")
    if isinstance(signals.supersedes_refs, str) or not all(isinstance(ref, str) for ref in signals.supersedes_refs):
        raise InvalidInputError("supersedes_refs must be a sequence of strings")
    for optional in (signals.document_number, signals.opr):
        if optional is not None and not isinstance(optional, str):
            raise InvalidInputError("document_number and opr must be strings when present")


def _validate_entry(entry: LibraryEntry) -> None:
    if not isinstance(entry, LibraryEntry):
        raise InvalidInputError(f"Expected LibraryEntry, got {type(entry).__name__}")
    if not entry.id or not isinstance(entry.name, str):
        raise InvalidInputError("Library entries need an id and a name")


def detect_match(
    signals: DocumentSignals,
    library: Sequence[LibraryEntry],
    config: MatchConfig | None = None,
) -> MatchDetectionResult:
    """Convenience wrapper scoring ``signals`` against ``library``."""

    return MatchDetector(config).detect(signals, library)


def classify_upload(result: MatchDetectionResult, config: MatchConfig | None = None) -> UploadClassification:
    return MatchDetector(config).classify(result)
