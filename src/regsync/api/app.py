"""FastAPI application exposing RegSync services."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Literal, Optional, Sequence
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from regsync.access import is_visible
from regsync.api.schemas import (
    AISummaryModel,
    DigestChangeModel,
    DigestDocumentModel,
    DigestPeriodModel,
    DigestResponse,
    DigestStatsModel,
    DiffLineModel,
    DiffRequest,
    DiffResponse,
    DiffStatsModel,
    DocumentChangesResponse,
    DocumentMatchModel,
    LibraryEntryModel,
    MatchDetectionRequest,
    MatchDetectionResponse,
    MatchSignalModel,
    TextMatchRequest,
    VisibilityRequest,
    VisibilityResponse,
)
from regsync.config import Settings, get_settings
from regsync.diffing import diff as compute_diff
from regsync.errors import InvalidInputError, RegSyncError, VersionNotFoundError
from regsync.matching import MatchDetector, extract_signals
from regsync.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from regsync.models import (
    DiffResult,
    DocumentChanges,
    DocumentHistory,
    DocumentSignals,
    LibraryEntry,
    MatchDetectionResult,
    PolicyDigest,
    PolicyScope,
    UserLocation,
    VersionOf,
)
from regsync.services import ChangeOrchestrator, LlamaFarmSummarizer, TemplateSummarizer, build_digest
from regsync.storage import MetadataVersionStore


@dataclass(frozen=True)
class AppDependencies:
    detector: MatchDetector
    orchestrator: ChangeOrchestrator
    library: Callable[[], Sequence[LibraryEntry]]
    histories: Callable[[], Sequence[DocumentHistory]]


def _build_dependencies(settings: Settings) -> AppDependencies:
    store = MetadataVersionStore(settings.policies_dir, encoding=settings.text_encoding)
    if settings.use_remote_summarizer:
        summarizer = LlamaFarmSummarizer(settings.summarizer_config())
    else:
        summarizer = TemplateSummarizer()
    orchestrator = ChangeOrchestrator(
        store,
        summarizer,
        summary_timeout_seconds=settings.summarizer_timeout_seconds,
        cache_size=settings.summary_cache_size,
        max_edit_distance=settings.diff_max_edit_distance,
    )
    detector = MatchDetector(settings.match_config())
    return AppDependencies(
        detector=detector,
        orchestrator=orchestrator,
        library=store.library,
        histories=store.histories,
    )


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="RegSync API", version="0.1.0")
    app.state.dependencies = deps

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def require_api_key(request: Request) -> None:
        expected = settings.api_key
        if not expected:
            return
        provided = request.headers.get("X-API-Key")
        if provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        return JSONResponse(status_code=status_code, content={"detail": detail, "correlation_id": correlation_id})

    @app.exception_handler(InvalidInputError)
    async def handle_invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
        logger.info("invalid.input", detail=str(exc))
        return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(VersionNotFoundError)
    async def handle_version_not_found(request: Request, exc: VersionNotFoundError) -> JSONResponse:
        logger.info("version.not_found", version_id=exc.version_id, detail=str(exc))
        return _error_response(request, status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(RegSyncError)
    async def handle_engine_error(request: Request, exc: RegSyncError) -> JSONResponse:
        logger.error("engine.error", detail=str(exc))
        return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled.error", detail=str(exc))
        return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_detector(dep: AppDependencies = Depends(get_dependencies)) -> MatchDetector:
        return dep.detector

    def get_orchestrator(dep: AppDependencies = Depends(get_dependencies)) -> ChangeOrchestrator:
        return dep.orchestrator

    def resolve_library(
        supplied: Sequence[LibraryEntryModel] | None,
        dep: AppDependencies,
    ) -> Sequence[LibraryEntry]:
        if supplied is not None:
            return [_entry_from_model(entry) for entry in supplied]
        return dep.library()

    @app.post("/matches/detect", response_model=MatchDetectionResponse)
    async def detect_matches(
        payload: MatchDetectionRequest,
        dep: AppDependencies = Depends(get_dependencies),
        detector: MatchDetector = Depends(get_detector),
        _auth: None = Depends(require_api_key),
    ) -> MatchDetectionResponse:
        signals = DocumentSignals(
            title=payload.signals.title,
            filename=payload.signals.filename,
            document_number=payload.signals.document_number,
            supersedes_refs=tuple(payload.signals.supersedes_refs),
            opr=payload.signals.opr,
        )
        result = detector.detect(signals, resolve_library(payload.library, dep))
        return _match_response(detector, result)

    @app.post("/matches/detect-text", response_model=MatchDetectionResponse)
    async def detect_matches_from_text(
        payload: TextMatchRequest,
        dep: AppDependencies = Depends(get_dependencies),
        detector: MatchDetector = Depends(get_detector),
        _auth: None = Depends(require_api_key),
    ) -> MatchDetectionResponse:
        signals = extract_signals(payload.text, payload.filename, opr=payload.opr)
        result = detector.detect(signals, resolve_library(payload.library, dep))
        return _match_response(detector, result)

    @app.post("/diff", response_model=DiffResponse)
    async def diff_texts(payload: DiffRequest, _auth: None = Depends(require_api_key)) -> DiffResponse:
        result = await asyncio.to_thread(
            compute_diff,
            payload.old_text,
            payload.new_text,
            max_edit_distance=settings.diff_max_edit_distance,
        )
        return _diff_to_model(result)

    @app.get("/documents/{document_id}/compare", response_model=DocumentChangesResponse)
    async def compare_versions(
        document_id: str,
        old_version_id: str = Query(..., min_length=1),
        new_version_id: str = Query(..., min_length=1),
        orchestrator: ChangeOrchestrator = Depends(get_orchestrator),
        _auth: None = Depends(require_api_key),
    ) -> DocumentChangesResponse:
        changes = await orchestrator.compare_versions(document_id, old_version_id, new_version_id)
        return _changes_to_model(changes)

    @app.post("/policies/visible", response_model=VisibilityResponse)
    async def visible_policies(
        payload: VisibilityRequest,
        _auth: None = Depends(require_api_key),
    ) -> VisibilityResponse:
        location = UserLocation(**payload.location.model_dump())
        visible_ids = [
            policy.id
            for policy in payload.policies
            if is_visible(
                location,
                PolicyScope(level=policy.scope.level, value=policy.scope.value) if policy.scope else None,
                is_admin=payload.is_admin,
            )
        ]
        return VisibilityResponse(visible_ids=visible_ids)

    @app.get("/digest", response_model=DigestResponse)
    async def policy_digest(
        period: Literal["week", "month"] = Query("week"),
        year: Optional[int] = Query(None),
        week: Optional[int] = Query(None),
        month: Optional[int] = Query(None),
        dep: AppDependencies = Depends(get_dependencies),
        _auth: None = Depends(require_api_key),
    ) -> DigestResponse:
        number = week if period == "week" else month
        digest = build_digest(
            dep.histories(),
            period,
            year,
            number,
            archive_months=settings.digest_archive_months,
        )
        return _digest_to_model(digest)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from regsync import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


def _entry_from_model(model: LibraryEntryModel) -> LibraryEntry:
    return LibraryEntry(**model.model_dump())


def _entry_to_model(entry: LibraryEntry) -> LibraryEntryModel:
    return LibraryEntryModel(
        id=entry.id,
        name=entry.name,
        filename=entry.filename,
        current_version_id=entry.current_version_id,
        updated_at=entry.updated_at,
        short_title=entry.short_title,
        document_number=entry.document_number,
        opr=entry.opr,
    )


def _match_response(detector: MatchDetector, result: MatchDetectionResult) -> MatchDetectionResponse:
    classification = detector.classify(result)
    matches = [
        DocumentMatchModel(
            document=_entry_to_model(match.document),
            score=match.score,
            confidence=match.confidence,
            signals=[
                MatchSignalModel(
                    type=signal.type,
                    weight=signal.weight,
                    similarity=signal.similarity,
                    detail=signal.detail,
                    description=signal.describe(),
                )
                for signal in match.signals
            ],
        )
        for match in result.matches
    ]
    return MatchDetectionResponse(
        classification=classification.kind,
        target_document_id=classification.document_id if isinstance(classification, VersionOf) else None,
        matches=matches,
        extracted_title=result.extracted_title,
        extracted_doc_number=result.extracted_doc_number,
        analysis_time_ms=result.analysis_time_ms,
    )


def _diff_to_model(result: DiffResult) -> DiffResponse:
    return DiffResponse(
        stats=DiffStatsModel(
            added_lines=result.stats.added_lines,
            removed_lines=result.stats.removed_lines,
            unchanged_lines=result.stats.unchanged_lines,
            total_changes=result.stats.total_changes,
        ),
        lines=[DiffLineModel(type=line.type, content=line.content, line_number=line.line_number) for line in result.lines],
        old_text=result.old_text,
        new_text=result.new_text,
    )


def _changes_to_model(changes: DocumentChanges) -> DocumentChangesResponse:
    summary = changes.ai_summary
    return DocumentChangesResponse(
        document_id=changes.document_id,
        document_name=changes.document_name,
        old_version_id=changes.old_version_id,
        new_version_id=changes.new_version_id,
        diff=_diff_to_model(changes.diff),
        ai_summary=(
            AISummaryModel(bullets=list(summary.bullets), raw=summary.raw, generated_at=summary.generated_at)
            if summary
            else None
        ),
        updated_at=changes.updated_at,
        updated_by=changes.updated_by,
        summary_failure=changes.summary_failure.value if changes.summary_failure else None,
        summary_error=changes.summary_error,
    )


app = create_app()


def _digest_to_model(digest: PolicyDigest) -> DigestResponse:
    period = digest.period
    return DigestResponse(
        period=DigestPeriodModel(
            type=period.type,
            year=period.year,
            week=period.number if period.type == "week" else None,
            month=period.number if period.type == "month" else None,
            start_date=period.start.date(),
            end_date=(period.end - timedelta(days=1)).date(),
            label=period.label,
        ),
        stats=DigestStatsModel(
            new_policies=digest.stats.new_policies,
            updated_policies=digest.stats.updated_policies,
            total_changes=digest.stats.total_changes,
        ),
        documents=[
            DigestDocumentModel(
                id=document.id,
                name=document.name,
                short_title=document.short_title,
                is_new=document.is_new,
                changes=[
                    DigestChangeModel(
                        version_id=change.version_id,
                        uploaded_by=change.uploaded_by,
                        uploaded_at=change.created_at,
                        notes=change.notes,
                        status=change.status,
                    )
                    for change in document.changes
                ],
            )
            for document in digest.documents
        ],
    )
