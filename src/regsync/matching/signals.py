"""Signal normalization and extraction for uploaded policy documents."""

from __future__ import annotations

import re
import unicodedata
from collections import Counter
from pathlib import PurePath
from typing import Iterable

from regsync.models import DocumentSignals

# Designators such as "DAFI 36-2903", "AFMAN36-2806" or a bare "44-102"
_DOC_NUMBER_PATTERN = re.compile(
    r"(?<![\w-])(?:(?P<series>[A-Z]{2,8})\s*)?(?<![\d-])(?P<number>\d{1,3}-\d{1,5})(?![\d-])"
)
_SERIES_NUMBER_PATTERN = re.compile(r"(?<!\d)(\d{1,3})\s*-\s*(\d{1,5})(?!\d)")
_SUPERSEDES_PATTERN = re.compile(r"\bsupersedes\b[:\s]*(?P<rest>[^\n]*)", re.IGNORECASE)
_OPR_PATTERN = re.compile(r"^\s*OPR:\s*(?P<opr>[^\s,;]+)", re.MULTILINE)
_EXTENSION_PATTERN = re.compile(r"\.(pdf|docx?|txt|md)$", re.IGNORECASE)
_NON_WORD_PATTERN = re.compile(r"[\W_]+")
_TITLE_SKIP_PATTERNS = (
    re.compile(r"^(page|date|department|headquarters|air force|by order of|supersedes|opr:)", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}"),
)

DOC_NUMBER_SCAN_CHARS = 2000
TITLE_SCAN_LINES = 20


def _fold(value: str) -> str:
    return unicodedata.normalize("NFKC", value).casefold()


def normalize_document_number(value: str | None) -> str:
    """Strip whitespace and punctuation and case-fold a document number."""

    if not value:
        return ""
    return _NON_WORD_PATTERN.sub("", _fold(value))


def document_series_number(value: str | None) -> str | None:
    """Return the bare ``NN-NNNN`` designator inside ``value``, if any."""

    if not value:
        return None
    match = _SERIES_NUMBER_PATTERN.search(value)
    if match is None:
        return None
    return f"{int(match.group(1))}-{match.group(2)}"


def normalize_title(value: str | None) -> str:
    if not value:
        return ""
    folded = _EXTENSION_PATTERN.sub("", _fold(value).strip())
    return " ".join(_NON_WORD_PATTERN.sub(" ", folded).split())


def normalize_filename(value: str | None) -> str:
    if not value:
        return ""
    return normalize_title(PurePath(value).name)


def _bigrams(value: str) -> Counter[str]:
    return Counter(value[index : index + 2] for index in range(len(value) - 1))


def similarity_upper_bound(first: str, second: str) -> float:
    """Best Dice score two strings of these lengths could reach."""

    first_len = len(first.replace(" ", "")) - 1
    second_len = len(second.replace(" ", "")) - 1
    if first_len < 1 or second_len < 1:
        return 1.0 if first == second else 0.0
    return 2.0 * min(first_len, second_len) / (first_len + second_len)


def string_similarity(first: str, second: str) -> float:
    """Sørensen–Dice coefficient over character bigrams, ignoring spaces."""

    first = first.replace(" ", "")
    second = second.replace(" ", "")
    if first == second:
        return 1.0 if first else 0.0
    if len(first) < 2 or len(second) < 2:
        return 0.0
    first_bigrams = _bigrams(first)
    second_bigrams = _bigrams(second)
    overlap = sum((first_bigrams & second_bigrams).values())
    return 2.0 * overlap / (len(first) - 1 + len(second) - 1)


def find_document_numbers(text: str | None) -> list[str]:
    if not text:
        return []
    found: list[str] = []
    for match in _DOC_NUMBER_PATTERN.finditer(text):
        series = match.group("series")
        number = match.group("number")
        found.append(f"{series} {number}" if series else number)
    return found


def extract_document_number(text: str | None) -> str | None:
    numbers = find_document_numbers(text)
    return numbers[0] if numbers else None


def _filename_stem(filename: str) -> str:
    stem = _EXTENSION_PATTERN.sub("", PurePath(filename).name)
    return stem.replace("_", " ").upper()


def extract_title(text: str | None) -> str | None:
    """Return the first heading-like line near the top of the document."""

    if not text:
        return None
    candidates = [line.strip() for line in text.split("\n") if len(line.strip()) > 10]
    for line in candidates[:TITLE_SCAN_LINES]:
        if not 15 < len(line) < 200:
            continue
        if any(pattern.search(line) for pattern in _TITLE_SKIP_PATTERNS):
            continue
        return line
    return None


def extract_supersedes_refs(text: str | None) -> tuple[str, ...]:
    """Collect every document named in a ``Supersedes ...`` clause."""

    if not text:
        return ()
    refs: list[str] = []
    for clause in _SUPERSEDES_PATTERN.finditer(text):
        rest = clause.group("rest").strip()
        numbers = find_document_numbers(rest)
        if numbers:
            refs.extend(numbers)
            continue
        title = rest.split(",")[0].strip().rstrip(".;")
        if 3 <= len(title) <= 200:
            refs.append(title)
    return tuple(_dedupe(refs))


def extract_opr(text: str | None) -> str | None:
    if not text:
        return None
    match = _OPR_PATTERN.search(text)
    return match.group("opr") if match else None


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        key = normalize_document_number(value) or value
        if key in seen:
            continue
        seen.add(key)
        ordered.append(value)
    return ordered


def extract_signals(text: str | None, filename: str, *, opr: str | None = None) -> DocumentSignals:
    """Build upload signals from already-extracted plain text."""

    head = (text or "")[:DOC_NUMBER_SCAN_CHARS]
    document_number = extract_document_number(_filename_stem(filename))
    if document_number is None:
        # The supersedes clause names the old number, not this one
        without_clauses = _SUPERSEDES_PATTERN.sub("", head)
        document_number = extract_document_number(without_clauses)
    title = extract_title(text) or _EXTENSION_PATTERN.sub("", PurePath(filename).name)
    return DocumentSignals(
        title=title,
        filename=filename,
        document_number=document_number,
        supersedes_refs=extract_supersedes_refs(text),
        opr=opr or extract_opr(text),
    )


__all__ = [
    "document_series_number",
    "extract_document_number",
    "extract_opr",
    "extract_signals",
    "extract_supersedes_refs",
    "extract_title",
    "find_document_numbers",
    "normalize_document_number",
    "normalize_filename",
    "normalize_title",
    "similarity_upper_bound",
    "string_similarity",
]
