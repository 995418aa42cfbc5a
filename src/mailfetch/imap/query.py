# src/mailfetch/imap/query.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union

from mailfetch.errors import InvalidRequest

logger = logging.getLogger(__name__)

# RFC 3501 date-month tokens; strftime("%b") would follow the process locale.
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

DateLike = Union[date, datetime, str]


def _imap_date(d: date) -> str:
    return f"{d.day}-{_MONTHS[d.month - 1]}-{d.year}"


def _q(s: str) -> str:
    """
    Quote/escape a string for IMAP SEARCH.
    IMAP uses double quotes for string literals; backslash can escape quotes.
    """
    s = s.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{s}"'


def parse_filter_date(value: DateLike) -> date:
    """
    Accepts a date, a datetime, an ISO string (``2024-01-31`` or
    ``2024-01-31T10:00:00``) or an RFC 2822 date string.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(f"Invalid date value: {value!r}")

    raw = value.strip()
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(raw).date()
    except (TypeError, ValueError, IndexError) as e:
        raise InvalidRequest(f"Invalid date value: {value!r}") from e


@dataclass
class IMAPQuery:
    parts: List[str] = field(default_factory=list)

    # --- basic fields ---
    def from_(self, s: str) -> "IMAPQuery":
        self.parts += ["FROM", _q(s)]
        return self

    def to(self, s: str) -> "IMAPQuery":
        self.parts += ["TO", _q(s)]
        return self

    def subject(self, s: str) -> "IMAPQuery":
        self.parts += ["SUBJECT", _q(s)]
        return self

    def body(self, s: str) -> "IMAPQuery":
        """
        Match only in body text.
        """
        self.parts += ["BODY", _q(s)]
        return self

    # --- date filters ---
    def since(self, d: date) -> "IMAPQuery":
        self.parts += ["SINCE", _imap_date(d)]
        return self

    def before(self, d: date) -> "IMAPQuery":
        self.parts += ["BEFORE", _imap_date(d)]
        return self

    # --- flags/status ---
    def seen(self) -> "IMAPQuery":
        self.parts += ["SEEN"]
        return self

    def unseen(self) -> "IMAPQuery":
        self.parts += ["UNSEEN"]
        return self

    def answered(self) -> "IMAPQuery":
        self.parts += ["ANSWERED"]
        return self

    def unanswered(self) -> "IMAPQuery":
        self.parts += ["UNANSWERED"]
        return self

    def build(self) -> str:
        return " ".join(self.parts) if self.parts else "ALL"


@dataclass
class SearchFilter:
    """
    Structured search criteria, combined with implicit AND.

    ``unread``/``answered`` are tri-state: True, False, or None for "either".
    ``before`` is inclusive of the given day.
    """
    since: Optional[date] = None
    before: Optional[date] = None
    unread: Optional[bool] = None
    answered: Optional[bool] = None
    from_: Optional[str] = None
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None

    def to_query(self) -> IMAPQuery:
        q = IMAPQuery()

        if self.since is not None:
            q.since(parse_filter_date(self.since))
        if self.before is not None:
            # IMAP BEFORE is exclusive
            q.before(parse_filter_date(self.before) + timedelta(days=1))

        if self.unread is True:
            q.unseen()
        elif self.unread is False:
            q.seen()

        if self.answered is True:
            q.answered()
        elif self.answered is False:
            q.unanswered()

        if self.from_:
            q.from_(self.from_)
        if self.to:
            q.to(self.to)
        if self.subject:
            q.subject(self.subject)
        if self.body:
            q.body(self.body)

        return q

    def build(self) -> str:
        criteria = self.to_query().build()
        logger.debug("Compiled search criteria: %s", criteria)
        return criteria
