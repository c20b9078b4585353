"""Text-retrieval collaborators serving stored document versions."""

from __future__ import annotations

import json
import re
import threading
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Protocol, Sequence

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader, TextLoader
from langchain_core.document_loaders import BaseLoader

from regsync.errors import RegSyncError, VersionNotFoundError
from regsync.metrics.observability import get_logger
from regsync.models import DocumentHistory, LibraryEntry, VersionRecord, VersionSummary, utcnow

METADATA_FILENAME = "metadata.json"


class VersionStore(Protocol):
    """Protocol for anything that can hand out version texts."""

    def get_version(self, version_id: str) -> VersionRecord:
        """Return the record for ``version_id`` or raise ``VersionNotFoundError``."""

    def get_version_text(self, version_id: str) -> str:
        """Return the plain text of ``version_id`` or raise ``VersionNotFoundError``."""


class InMemoryVersionStore:
    """Version store backed by a dict; used by tests and the CLI."""

    def __init__(self, records: Iterable[VersionRecord] = ()) -> None:
        self._records: Dict[str, VersionRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: VersionRecord) -> None:
        self._records[record.version_id] = record

    def get_version(self, version_id: str) -> VersionRecord:
        try:
            return self._records[version_id]
        except KeyError:
            raise VersionNotFoundError(version_id) from None

    def get_version_text(self, version_id: str) -> str:
        return self.get_version(version_id).text

    def histories(self) -> Sequence[DocumentHistory]:
        grouped: Dict[str, List[VersionRecord]] = {}
        for record in self._records.values():
            grouped.setdefault(record.document_id, []).append(record)
        return [
            DocumentHistory(
                id=document_id,
                name=records[-1].document_name,
                created_at=min(record.created_at for record in records),
                versions=tuple(
                    VersionSummary(
                        version_id=record.version_id,
                        created_at=record.created_at,
                        uploaded_by=record.uploaded_by,
                    )
                    for record in records
                ),
            )
            for document_id, records in grouped.items()
        ]


def normalize_extracted_text(raw: str) -> str:
    """Normalize loader output while keeping its line structure."""

    normalized = unicodedata.normalize("NFKC", raw).replace("\u00a0", " ")
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    lines = [re.sub(r"[ \t]+", " ", line).rstrip() for line in normalized.split("\n")]
    return "\n".join(lines).strip("\n")


_LOADERS: Mapping[str, type[BaseLoader]] = {
    ".pdf": PyPDFLoader,
    ".docx": Docx2txtLoader,
    ".txt": TextLoader,
    ".md": TextLoader,
}

_logger = get_logger("storage")


def load_text(path: Path, *, encoding: str = "utf-8") -> str:
    """Extract plain text from a stored PDF, DOCX, TXT or MD file."""

    suffix = path.suffix.lower()
    loader_cls = _LOADERS.get(suffix)
    if loader_cls is None:
        raise RegSyncError(f"Unsupported version file type: {suffix or '<none>'}")
    try:
        loader = loader_cls(str(path), encoding=encoding) if loader_cls is TextLoader else loader_cls(str(path))
        pages = loader.load()
    except Exception as exc:  # pragma: no cover - loader specific errors
        raise RegSyncError(f"Failed to extract text from {path.name}: {exc}") from exc
    text = "\n\n".join(normalize_extracted_text(page.page_content) for page in pages if page.page_content)
    _logger.info("version.extracted", path=str(path), page_count=len(pages), char_count=len(text))
    return text


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class MetadataVersionStore:
    """Version store reading a ``metadata.json`` manifest and its stored files.

    The manifest lists ``documents``, each with ``versions`` whose ``filename``
    points at a PDF, DOCX, TXT or MD file inside ``policies_dir``. Text is
    extracted with LangChain loaders on first access and kept in memory, since
    stored versions never change.
    """

    def __init__(self, policies_dir: Path, *, encoding: str = "utf-8") -> None:
        self._root = Path(policies_dir)
        self._encoding = encoding
        self._texts: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _load_manifest(self) -> List[Mapping[str, Any]]:
        path = self._root / METADATA_FILENAME
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except ValueError as exc:
            raise RegSyncError(f"Malformed version manifest {path}: {exc}") from exc
        documents = data.get("documents", []) if isinstance(data, dict) else []
        return [doc for doc in documents if isinstance(doc, dict)]

    def _find(self, version_id: str) -> tuple[Mapping[str, Any], Mapping[str, Any]]:
        for document in self._load_manifest():
            for version in document.get("versions") or []:
                if version.get("id") == version_id:
                    return document, version
        raise VersionNotFoundError(version_id)

    def get_version(self, version_id: str) -> VersionRecord:
        document, version = self._find(version_id)
        return VersionRecord(
            version_id=version_id,
            document_id=str(document.get("id")),
            document_name=str(document.get("name") or version.get("original_name") or version_id),
            text=self._text_for(version_id, version),
            uploaded_by=str(version.get("uploaded_by") or "unknown"),
            created_at=_parse_timestamp(version.get("created_at")) or utcnow(),
        )

    def get_version_text(self, version_id: str) -> str:
        return self.get_version(version_id).text

    def library(self) -> Sequence[LibraryEntry]:
        """Snapshot of the current library for match detection."""

        entries: List[LibraryEntry] = []
        for document in self._load_manifest():
            versions = document.get("versions") or []
            current_id = document.get("current_version_id")
            current = next((v for v in versions if v.get("id") == current_id), versions[-1] if versions else {})
            entries.append(
                LibraryEntry(
                    id=str(document.get("id")),
                    name=str(document.get("name") or ""),
                    filename=str(current.get("original_name") or current.get("filename") or document.get("name") or ""),
                    current_version_id=str(current_id or current.get("id") or ""),
                    updated_at=_parse_timestamp(document.get("updated_at")),
                    short_title=document.get("short_title"),
                    document_number=document.get("document_number"),
                    opr=document.get("opr"),
                ),
            )
        return entries

    def histories(self) -> Sequence[DocumentHistory]:
        """Upload history of every document, for period digests."""

        histories: List[DocumentHistory] = []
        for document in self._load_manifest():
            versions: List[VersionSummary] = []
            for version in document.get("versions") or []:
                uploaded_at = _parse_timestamp(version.get("created_at") or version.get("uploaded_at"))
                if uploaded_at is None:
                    continue
                versions.append(
                    VersionSummary(
                        version_id=str(version.get("id")),
                        created_at=uploaded_at,
                        uploaded_by=str(version.get("uploaded_by") or "unknown"),
                        notes=version.get("notes"),
                        status=str(version.get("status") or "published"),
                    ),
                )
            created_at = _parse_timestamp(document.get("created_at"))
            if created_at is None and versions:
                created_at = min(version.created_at for version in versions)
            if created_at is None:
                continue
            histories.append(
                DocumentHistory(
                    id=str(document.get("id")),
                    name=str(document.get("name") or ""),
                    created_at=created_at,
                    versions=tuple(versions),
                    short_title=document.get("short_title"),
                ),
            )
        return histories

    def _text_for(self, version_id: str, version: Mapping[str, Any]) -> str:
        with self._lock:
            cached = self._texts.get(version_id)
        if cached is not None:
            return cached
        filename = version.get("filename")
        if not filename:
            raise VersionNotFoundError(version_id, f"Version {version_id} has no stored file")
        path = self._root / str(filename)
        if not path.is_file():
            raise VersionNotFoundError(version_id, f"Stored file missing for version {version_id}: {path.name}")
        text = load_text(path, encoding=self._encoding)
        with self._lock:
            self._texts[version_id] = text
        return text


__all__ = [
    "InMemoryVersionStore",
    "MetadataVersionStore",
    "VersionStore",
    "load_text",
    "normalize_extracted_text",
]
