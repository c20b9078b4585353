"""Weekly and monthly digests of new and updated policies."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from regsync.errors import InvalidInputError
from regsync.metrics.observability import get_logger
from regsync.models import (
    DigestDocument,
    DigestPeriod,
    DigestStats,
    DocumentHistory,
    PeriodType,
    PolicyDigest,
    utcnow,
)

ARCHIVE_MONTHS = 3
MIN_YEAR = 2000
MAX_YEAR = 2100

_MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_logger = get_logger("digest")


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def week_bounds(year: int, week: int) -> tuple[datetime, datetime]:
    """Monday 00:00 UTC of ISO ``week`` and the following Monday."""

    try:
        monday = date.fromisocalendar(year, week, 1)
    except ValueError as exc:
        raise InvalidInputError(f"{year} has no ISO week {week}") from exc
    start = datetime(monday.year, monday.month, monday.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise InvalidInputError("month must be a number between 1 and 12")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    return start, start + relativedelta(months=1)


def period_label(period_type: PeriodType, start: datetime, end: datetime) -> str:
    if period_type == "month":
        return f"{_MONTH_NAMES[start.month - 1]} {start.year}"
    last = end - timedelta(days=1)
    first_month = _MONTH_ABBREVIATIONS[start.month - 1]
    last_month = _MONTH_ABBREVIATIONS[last.month - 1]
    if first_month == last_month:
        return f"Week of {first_month} {start.day} - {last.day}, {last.year}"
    return f"Week of {first_month} {start.day} - {last_month} {last.day}, {last.year}"


def previous_period(period_type: PeriodType, now: datetime) -> tuple[int, int]:
    """Return ``(year, number)`` of the last complete week or month before ``now``."""

    if period_type == "week":
        iso = (now - timedelta(days=7)).isocalendar()
        return iso.year, iso.week
    last_of_previous = now.date().replace(day=1) - timedelta(days=1)
    return last_of_previous.year, last_of_previous.month


def resolve_period(
    period_type: str,
    year: Optional[int] = None,
    number: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    archive_months: int = ARCHIVE_MONTHS,
) -> DigestPeriod:
    """Validate a requested period, defaulting to the previous complete one."""

    if period_type not in ("week", "month"):
        raise InvalidInputError('period must be "week" or "month"')
    now = as_utc(now or utcnow())
    if year is None or number is None:
        year, number = previous_period(period_type, now)
    elif period_type == "week" and not 1 <= number <= 53:
        raise InvalidInputError("week must be a number between 1 and 53")
    elif period_type == "month" and not 1 <= number <= 12:
        raise InvalidInputError("month must be a number between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidInputError("year must be a valid 4-digit year")

    start, end = week_bounds(year, number) if period_type == "week" else month_bounds(year, number)
    if start < now - relativedelta(months=archive_months):
        raise InvalidInputError(f"Requested period is outside the {archive_months}-month archive limit")
    if start > now:
        raise InvalidInputError("Cannot view future periods")
    return DigestPeriod(
        type=period_type,  # type: ignore[arg-type]
        year=year,
        number=number,
        start=start,
        end=end,
        label=period_label(period_type, start, end),  # type: ignore[arg-type]
    )


def compute_digest(histories: Iterable[DocumentHistory], period: DigestPeriod) -> PolicyDigest:
    """Collect every version uploaded within ``period``, newest first."""

    documents: list[DigestDocument] = []
    new_policies = updated_policies = total_changes = 0
    for history in histories:
        changes = sorted(
            (version for version in history.versions if period.start <= as_utc(version.created_at) < period.end),
            key=lambda version: as_utc(version.created_at),
            reverse=True,
        )
        if not changes:
            continue
        is_new = period.start <= as_utc(history.created_at) < period.end
        documents.append(
            DigestDocument(
                id=history.id,
                name=history.name,
                short_title=history.short_title,
                is_new=is_new,
                changes=tuple(changes),
            ),
        )
        if is_new:
            new_policies += 1
        else:
            updated_policies += 1
        total_changes += len(changes)

    documents.sort(key=lambda document: document.id)
    documents.sort(key=lambda document: as_utc(document.changes[0].created_at), reverse=True)
    return PolicyDigest(
        period=period,
        stats=DigestStats(
            new_policies=new_policies,
            updated_policies=updated_policies,
            total_changes=total_changes,
        ),
        documents=tuple(documents),
    )


def build_digest(
    histories: Iterable[DocumentHistory],
    period_type: str,
    year: Optional[int] = None,
    number: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    archive_months: int = ARCHIVE_MONTHS,
) -> PolicyDigest:
    period = resolve_period(period_type, year, number, now=now, archive_months=archive_months)
    digest = compute_digest(histories, period)
    _logger.info(
        "digest.complete",
        period=period.type,
        year=period.year,
        number=period.number,
        new_policies=digest.stats.new_policies,
        updated_policies=digest.stats.updated_policies,
        total_changes=digest.stats.total_changes,
    )
    return digest


__all__ = [
    "build_digest",
    "compute_digest",
    "month_bounds",
    "period_label",
    "previous_period",
    "resolve_period",
    "week_bounds",
]
