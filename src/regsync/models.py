"""Shared domain models used across the RegSync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Sequence, Union

SignalType = Literal["supersedes", "document_number", "filename", "title", "opr"]
Confidence = Literal["high", "medium", "low"]
DiffLineType = Literal["added", "removed", "unchanged"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DocumentSignals:
    """Signals extracted once from an uploaded file."""

    title: str
    filename: str
    document_number: str | None = None
    supersedes_refs: tuple[str, ...] = ()
    opr: str | None = None


@dataclass(frozen=True)
class LibraryEntry:
    """Read-only snapshot of an existing policy in the library."""

    id: str
    name: str
    filename: str
    current_version_id: str
    updated_at: datetime | None = None
    short_title: str | None = None
    document_number: str | None = None
    opr: str | None = None


@dataclass(frozen=True)
class MatchSignal:
    """One contributing signal in a match explanation."""

    type: SignalType
    weight: float
    similarity: float | None = None
    detail: str | None = None

    def describe(self) -> str:
        if self.type == "supersedes":
            return self.detail or "Document states it supersedes this policy"
        if self.type == "document_number":
            return self.detail or "Document number matches"
        if self.type == "filename":
            return f"Filename {round((self.similarity or 0.0) * 100)}% similar"
        if self.type == "title":
            return f"Title {round((self.similarity or 0.0) * 100)}% similar"
        return "Same OPR office"


@dataclass(frozen=True)
class DocumentMatch:
    """Scored candidate from the library."""

    document: LibraryEntry
    score: float
    confidence: Confidence
    signals: Sequence[MatchSignal]

    def has_signal(self, signal_type: SignalType) -> bool:
        return any(signal.type == signal_type for signal in self.signals)


@dataclass(frozen=True)
class MatchDetectionResult:
    matches: Sequence[DocumentMatch]
    analysis_time_ms: float
    extracted_title: str | None = None
    extracted_doc_number: str | None = None


@dataclass(frozen=True)
class NewDocument:
    """Upload should be stored as a brand-new policy."""

    kind: Literal["new_document"] = "new_document"


@dataclass(frozen=True)
class VersionOf:
    """Upload is a new version of an existing policy."""

    document_id: str
    match: DocumentMatch
    kind: Literal["version_update"] = "version_update"


UploadClassification = Union[NewDocument, VersionOf]


@dataclass(frozen=True)
class DiffLine:
    type: DiffLineType
    content: str
    line_number: int | None = None


@dataclass(frozen=True)
class DiffStats:
    added_lines: int
    removed_lines: int
    unchanged_lines: int

    @property
    def total_changes(self) -> int:
        return self.added_lines + self.removed_lines

    @classmethod
    def from_lines(cls, lines: Sequence[DiffLine]) -> "DiffStats":
        added = removed = unchanged = 0
        for line in lines:
            if line.type == "added":
                added += 1
            elif line.type == "removed":
                removed += 1
            else:
                unchanged += 1
        return cls(added_lines=added, removed_lines=removed, unchanged_lines=unchanged)


@dataclass(frozen=True)
class DiffResult:
    """Line-level diff between two text versions.

    Joining the ``removed``/``unchanged`` lines with newlines reproduces
    ``old_text``; joining ``added``/``unchanged`` reproduces ``new_text``.
    """

    stats: DiffStats
    lines: Sequence[DiffLine]
    old_text: str
    new_text: str

    def reconstruct_old(self) -> str:
        return "\n".join(line.content for line in self.lines if line.type != "added")

    def reconstruct_new(self) -> str:
        return "\n".join(line.content for line in self.lines if line.type != "removed")

    def added_text(self) -> str:
        return "\n".join(line.content for line in self.lines if line.type == "added")

    def removed_text(self) -> str:
        return "\n".join(line.content for line in self.lines if line.type == "removed")


@dataclass(frozen=True)
class AISummary:
    bullets: Sequence[str]
    raw: str
    generated_at: datetime = field(default_factory=utcnow)


class SummaryFailure(str, Enum):
    """Why a change summary is missing from a comparison."""

    UNAVAILABLE = "summarizer_unavailable"
    API_ERROR = "summarizer_api_error"
    UNKNOWN = "unknown_error"


@dataclass(frozen=True)
class VersionRecord:
    """Plain-text rendition of one stored document version."""

    version_id: str
    document_id: str
    document_name: str
    text: str
    uploaded_by: str = "unknown"
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DocumentChanges:
    """Reviewable comparison of two versions; never persisted by the engine."""

    document_id: str
    document_name: str
    old_version_id: str
    new_version_id: str
    diff: DiffResult
    ai_summary: AISummary | None
    updated_at: datetime
    updated_by: str
    summary_failure: SummaryFailure | None = None
    summary_error: str | None = None


class ScopeLevel(str, Enum):
    """Organizational breadth of a policy, broadest first."""

    DOD = "dod"
    DAF = "daf"
    MAJCOM = "majcom"
    INSTALLATION = "installation"
    WING = "wing"
    GROUP = "group"
    SQUADRON = "squadron"


@dataclass(frozen=True)
class PolicyScope:
    level: ScopeLevel
    value: str


@dataclass(frozen=True)
class UserLocation:
    installation: str
    majcom: str
    wing: str
    group: str | None = None
    squadron: str | None = None


@dataclass(frozen=True)
class Viewer:
    """Caller-supplied identity used by the visibility filter."""

    location: UserLocation
    is_admin: bool = False


PeriodType = Literal["week", "month"]


@dataclass(frozen=True)
class VersionSummary:
    """Upload metadata of one stored version, without its text."""

    version_id: str
    created_at: datetime
    uploaded_by: str = "unknown"
    notes: str | None = None
    status: str = "published"


@dataclass(frozen=True)
class DocumentHistory:
    """A library document with the upload history of its versions."""

    id: str
    name: str
    created_at: datetime
    versions: Sequence[VersionSummary]
    short_title: str | None = None


@dataclass(frozen=True)
class DigestPeriod:
    """Calendar period covered by a digest; ``end`` is exclusive."""

    type: PeriodType
    year: int
    number: int
    start: datetime
    end: datetime
    label: str


@dataclass(frozen=True)
class DigestDocument:
    id: str
    name: str
    short_title: str | None
    is_new: bool
    changes: Sequence[VersionSummary]


@dataclass(frozen=True)
class DigestStats:
    new_policies: int
    updated_policies: int
    total_changes: int


@dataclass(frozen=True)
class PolicyDigest:
    """New and updated policies within one week or month."""

    period: DigestPeriod
    stats: DigestStats
    documents: Sequence[DigestDocument]
