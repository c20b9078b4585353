"""Pydantic models for the RegSync API."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from regsync.models import ScopeLevel


class SignalsModel(BaseModel):
    title: str = Field(..., description="Title extracted from the upload")
    filename: str = Field(..., min_length=1, description="Original filename of the upload")
    document_number: Optional[str] = Field(default=None, description="Designator such as 'DAFI 36-2903'")
    supersedes_refs: List[str] = Field(default_factory=list, description="Documents the upload says it supersedes")
    opr: Optional[str] = Field(default=None, description="Office of primary responsibility")


class LibraryEntryModel(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    filename: str
    current_version_id: str
    updated_at: Optional[datetime] = None
    short_title: Optional[str] = None
    document_number: Optional[str] = None
    opr: Optional[str] = None


class MatchDetectionRequest(BaseModel):
    signals: SignalsModel
    library: Optional[List[LibraryEntryModel]] = Field(
        default=None,
        description="Library snapshot to score against; defaults to the server's policy library",
    )


class TextMatchRequest(BaseModel):
    text: str = Field(..., description="Plain text already extracted from the upload")
    filename: str = Field(..., min_length=1)
    opr: Optional[str] = None
    library: Optional[List[LibraryEntryModel]] = None


class MatchSignalModel(BaseModel):
    type: Literal["supersedes", "document_number", "filename", "title", "opr"]
    weight: float
    similarity: Optional[float] = None
    detail: Optional[str] = None
    description: str


class DocumentMatchModel(BaseModel):
    document: LibraryEntryModel
    score: float = Field(..., ge=0.0, le=1.0)
    confidence: Literal["high", "medium", "low"]
    signals: List[MatchSignalModel]


class MatchDetectionResponse(BaseModel):
    classification: Literal["new_document", "version_update"]
    target_document_id: Optional[str] = None
    matches: List[DocumentMatchModel]
    extracted_title: Optional[str] = None
    extracted_doc_number: Optional[str] = None
    analysis_time_ms: float


class DiffRequest(BaseModel):
    old_text: str
    new_text: str


class DiffLineModel(BaseModel):
    type: Literal["added", "removed", "unchanged"]
    content: str
    line_number: Optional[int] = None


class DiffStatsModel(BaseModel):
    added_lines: int
    removed_lines: int
    unchanged_lines: int
    total_changes: int


class DiffResponse(BaseModel):
    stats: DiffStatsModel
    lines: List[DiffLineModel]
    old_text: str
    new_text: str


class AISummaryModel(BaseModel):
    bullets: List[str]
    raw: str
    generated_at: datetime


class DocumentChangesResponse(BaseModel):
    document_id: str
    document_name: str
    old_version_id: str
    new_version_id: str
    diff: DiffResponse
    ai_summary: Optional[AISummaryModel] = None
    updated_at: datetime
    updated_by: str
    summary_failure: Optional[Literal["summarizer_unavailable", "summarizer_api_error", "unknown_error"]] = Field(
        default=None,
        description="Why ai_summary is missing, when it is",
    )
    summary_error: Optional[str] = None


class LocationModel(BaseModel):
    installation: str
    majcom: str
    wing: str
    group: Optional[str] = None
    squadron: Optional[str] = None


class ScopeModel(BaseModel):
    level: ScopeLevel
    value: str


class PolicyRefModel(BaseModel):
    id: str
    scope: Optional[ScopeModel] = None


class VisibilityRequest(BaseModel):
    location: LocationModel
    is_admin: bool = Field(default=False, description="Administrators see every policy")
    policies: List[PolicyRefModel]


class VisibilityResponse(BaseModel):
    visible_ids: List[str]


class DigestPeriodModel(BaseModel):
    type: Literal["week", "month"]
    year: int
    week: Optional[int] = None
    month: Optional[int] = None
    start_date: date
    end_date: date = Field(..., description="Last day of the period, inclusive")
    label: str


class DigestStatsModel(BaseModel):
    new_policies: int
    updated_policies: int
    total_changes: int


class DigestChangeModel(BaseModel):
    version_id: str
    uploaded_by: str
    uploaded_at: datetime
    notes: Optional[str] = None
    status: str


class DigestDocumentModel(BaseModel):
    id: str
    name: str
    short_title: Optional[str] = None
    is_new: bool
    changes: List[DigestChangeModel]


class DigestResponse(BaseModel):
    period: DigestPeriodModel
    stats: DigestStatsModel
    documents: List[DigestDocumentModel]
