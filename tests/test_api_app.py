"""Tests for the FastAPI application helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from fastapi.testclient import TestClient

from regsync.api.app import AppDependencies, create_app
from regsync.config import Settings
from regsync.matching import MatchDetector
from regsync.models import DocumentHistory, LibraryEntry, VersionRecord, VersionSummary
from regsync.services import ChangeOrchestrator, TemplateSummarizer
from regsync.storage import InMemoryVersionStore

GROOMING = LibraryEntry(
    id="doc-grooming",
    name="Grooming Standards Policy",
    filename="grooming.pdf",
    current_version_id="v2",
    document_number="DAFI 36-2903",
)


def create_test_client(
    settings: Settings | None = None,
    histories: Sequence[DocumentHistory] = (),
) -> TestClient:
    store = InMemoryVersionStore(
        [
            VersionRecord("v1", "doc-grooming", "Grooming Standards Policy", "Section 1\nBeards are not authorized."),
            VersionRecord(
                "v2",
                "doc-grooming",
                "Grooming Standards Policy",
                "Section 1\nBeards are authorized with a waiver.",
                uploaded_by="admin",
            ),
        ],
    )
    deps = AppDependencies(
        detector=MatchDetector(),
        orchestrator=ChangeOrchestrator(store, TemplateSummarizer()),
        library=lambda: [GROOMING],
        histories=lambda: histories,
    )
    app = create_app(settings=settings or Settings(environment="test"), dependencies=deps)
    return TestClient(app)


def test_detect_uses_server_library_and_classifies() -> None:
    client = create_test_client()

    response = client.post(
        "/matches/detect",
        json={
            "signals": {
                "title": "Dress and Appearance",
                "filename": "dafi36-2903.pdf",
                "document_number": "DAFI 36-2903",
                "supersedes_refs": ["DAFI 36-2903"],
            },
        },
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["classification"] == "version_update"
    assert payload["target_document_id"] == "doc-grooming"
    top = payload["matches"][0]
    assert top["confidence"] == "high"
    assert top["score"] == 1.0
    assert {signal["type"] for signal in top["signals"]} >= {"supersedes", "document_number"}


def test_detect_with_supplied_empty_library_is_new_document() -> None:
    client = create_test_client()

    response = client.post(
        "/matches/detect",
        json={"signals": {"title": "Fitness Program", "filename": "fitness.pdf"}, "library": []},
    )

    assert response.status_code == 200, response.text
    assert response.json()["classification"] == "new_document"
    assert response.json()["matches"] == []


def test_detect_from_text_extracts_signals() -> None:
    client = create_test_client()

    response = client.post(
        "/matches/detect-text",
        json={
            "text": "Dress and Personal Appearance of Personnel\nSupersedes: AFI 36-2903, 18 July 2011",
            "filename": "upload.pdf",
        },
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["extracted_title"] == "Dress and Personal Appearance of Personnel"
    assert payload["matches"][0]["document"]["id"] == "doc-grooming"


def test_diff_endpoint() -> None:
    client = create_test_client()

    response = client.post("/diff", json={"old_text": "A\nB\nC", "new_text": "A\nX\nC"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["stats"]["total_changes"] == 2
    assert [line["type"] for line in payload["lines"]] == ["unchanged", "removed", "added", "unchanged"]


def test_compare_versions_returns_summary() -> None:
    client = create_test_client()

    response = client.get(
        "/documents/doc-grooming/compare",
        params={"old_version_id": "v1", "new_version_id": "v2"},
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["updated_by"] == "admin"
    assert payload["diff"]["stats"]["added_lines"] == 1
    assert payload["ai_summary"]["bullets"][0] == "1 line added and 1 line removed in Grooming Standards Policy"
    assert payload["summary_failure"] is None


def test_compare_unknown_version_is_404_with_correlation_id() -> None:
    client = create_test_client()

    response = client.get(
        "/documents/doc-grooming/compare",
        params={"old_version_id": "v1", "new_version_id": "v404"},
        headers={"X-Request-ID": "req-123"},
    )

    assert response.status_code == 404
    assert response.json()["correlation_id"] == "req-123"
    assert response.headers["X-Correlation-ID"] == "req-123"


def test_malformed_signals_are_422() -> None:
    client = create_test_client()

    response = client.post("/matches/detect", json={"signals": {"title": "T", "filename": "   "}})

    assert response.status_code == 422


def test_visible_policies() -> None:
    client = create_test_client()

    response = client.post(
        "/policies/visible",
        json={
            "location": {"installation": "Dover AFB", "majcom": "AMC", "wing": "436 AW"},
            "policies": [
                {"id": "daf-wide", "scope": {"level": "daf", "value": "DAF"}},
                {"id": "acc-only", "scope": {"level": "majcom", "value": "ACC"}},
                {"id": "dover", "scope": {"level": "installation", "value": "Dover AFB"}},
                {"id": "unscoped"},
            ],
        },
    )

    assert response.status_code == 200
    assert response.json()["visible_ids"] == ["daf-wide", "dover", "unscoped"]


def test_api_key_required_when_configured() -> None:
    client = create_test_client(Settings(environment="test", api_key="secret"))

    denied = client.post("/diff", json={"old_text": "a", "new_text": "b"})
    allowed = client.post("/diff", json={"old_text": "a", "new_text": "b"}, headers={"X-API-Key": "secret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200


def test_visible_policies_require_api_key_when_configured() -> None:
    client = create_test_client(Settings(environment="test", api_key="secret"))
    payload = {
        "location": {"installation": "Dover AFB", "majcom": "AMC", "wing": "436 AW"},
        "policies": [{"id": "unscoped"}],
    }

    denied = client.post("/policies/visible", json=payload)
    allowed = client.post("/policies/visible", json=payload, headers={"X-API-Key": "secret"})

    assert denied.status_code == 401
    assert allowed.json()["visible_ids"] == ["unscoped"]


def test_health_endpoints() -> None:
    client = create_test_client()

    assert client.get("/healthz").json()["environment"] == "test"
    assert client.get("/livez").json() == {"status": "alive"}
    assert client.get("/metrics").status_code == 200


def test_digest_for_current_month() -> None:
    now = datetime.now(timezone.utc)
    month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    history = DocumentHistory(
        id="doc-grooming",
        name="Grooming Standards Policy",
        created_at=month_start,
        versions=(VersionSummary(version_id="v1", created_at=month_start, uploaded_by="admin", notes="Initial"),),
    )
    client = create_test_client(histories=[history])

    response = client.get("/digest", params={"period": "month", "year": now.year, "month": now.month})

    assert response.status_code == 200
    body = response.json()
    assert body["period"]["month"] == now.month
    assert body["period"]["week"] is None
    assert body["period"]["start_date"] == month_start.date().isoformat()
    assert body["stats"] == {"new_policies": 1, "updated_policies": 0, "total_changes": 1}
    assert body["documents"][0]["is_new"] is True
    assert body["documents"][0]["changes"][0]["notes"] == "Initial"


def test_digest_rejects_invalid_periods() -> None:
    client = create_test_client()

    assert client.get("/digest", params={"period": "week", "year": 2024, "week": 60}).status_code == 422
    assert client.get("/digest", params={"period": "day"}).status_code == 422
    assert client.get("/digest", params={"period": "month", "year": 2001, "month": 1}).status_code == 422


def test_digest_defaults_to_previous_week() -> None:
    client = create_test_client()

    response = client.get("/digest")

    assert response.status_code == 200
    period = response.json()["period"]
    assert period["type"] == "week"
    assert period["label"].startswith("Week of ")
    assert response.json()["documents"] == []
