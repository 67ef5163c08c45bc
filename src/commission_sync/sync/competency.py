"""Accounting-period (competency) resolution.

A month is closed once it has at least one entry and every entry in it is
``fechado``. Payments falling in a closed month roll forward to the current
month. The closed/open answer for a month is memoized for the lifetime of a
resolver, which callers scope to a single run.
"""

import calendar
import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

import structlog

from commission_sync.errors import ValidationError
from commission_sync.models import CommissionEntry, EntryStatus

logger = structlog.get_logger(__name__)

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


# =============================================================================
# MONTH HELPERS
# =============================================================================


def validate_month(month: str) -> str:
    """Return ``month`` if it is a ``YYYY-MM`` string, else raise ValidationError."""
    if not isinstance(month, str) or not _MONTH_RE.match(month):
        raise ValidationError(f"Invalid month '{month}', expected YYYY-MM")
    return month


def month_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def first_day(month: str) -> str:
    return f"{month}-01"


def last_day(month: str) -> str:
    year, mon = (int(part) for part in month.split("-"))
    return f"{month}-{calendar.monthrange(year, mon)[1]:02d}"


def next_month(month: str) -> str:
    year, mon = (int(part) for part in month.split("-"))
    if mon == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{mon + 1:02d}"


def payment_day(value: str | None, today: date) -> str:
    """Normalize a payment date or timestamp to ``YYYY-MM-DD``.

    A missing value means "paid today". Malformed values raise ValueError.
    """
    if not value:
        return today.isoformat()
    day = str(value).strip()[:10]
    date.fromisoformat(day)
    return day


# =============================================================================
# RESOLVER
# =============================================================================


@dataclass(frozen=True)
class Competency:
    """Where an entry paid on a given date belongs."""

    competency_date: str
    competency_month: str
    rolled: bool
    origin_month: str


class CompetencyResolver:
    """Resolves competencies against a fixed view of the existing entries.

    Build one per run: the entry view is captured at construction and the
    closed-month answers are cached for the resolver's lifetime.
    """

    def __init__(self, entries: Iterable[CommissionEntry], today: date):
        self._today = today
        self._statuses: dict[str, list[EntryStatus]] = defaultdict(list)
        for entry in entries:
            if entry.mes_competencia:
                self._statuses[entry.mes_competencia].append(entry.status)
        self._closed_cache: dict[str, bool] = {}

    @property
    def today(self) -> date:
        return self._today

    @property
    def current_month(self) -> str:
        return month_of(self._today)

    def is_month_closed(self, month: str) -> bool:
        """Closed iff the month has entries and all of them are closed."""
        cached = self._closed_cache.get(month)
        if cached is not None:
            return cached
        statuses = self._statuses.get(month, [])
        closed = bool(statuses) and all(s == EntryStatus.CLOSED for s in statuses)
        self._closed_cache[month] = closed
        if closed:
            logger.debug("month_closed", month=month, entries=len(statuses))
        return closed

    def resolve(self, payment_date: str) -> Competency:
        """Resolve the competency for a ``YYYY-MM-DD`` (or longer) payment date."""
        origin = payment_date[:7]
        if self.is_month_closed(origin):
            current = self.current_month
            return Competency(
                competency_date=first_day(current),
                competency_month=current,
                rolled=True,
                origin_month=origin,
            )
        return Competency(
            competency_date=first_day(origin),
            competency_month=origin,
            rolled=False,
            origin_month=origin,
        )
