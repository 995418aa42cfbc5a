# mailfetch/errors.py
from __future__ import annotations

from typing import Optional


class MailFetchError(Exception):
    """Base class for every error raised by mailfetch."""


class ConnectionFailure(MailFetchError):
    """Session could not be opened (or is not configured). Fatal for the whole operation."""


class InvalidRequest(MailFetchError, ValueError):
    """Malformed field name or filter value, rejected before any IMAP traffic."""


class MessageFetchFailure(MailFetchError):
    """
    Header/structure fetch or header parse failed for one UID.

    The orchestrator skips the UID and reports it through the error callback.
    """

    def __init__(self, uid: int, stage: str, detail: str = "") -> None:
        self.uid = uid
        self.stage = stage
        self.detail = detail
        msg = f"Unable to {stage} for UID {uid}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class FlagMutationFailure(MailFetchError):
    """STORE of a flag failed; raised to the caller of that mutation only."""

    def __init__(self, flag: str, sequence: str, detail: Optional[str] = None, *, action: str = "set") -> None:
        self.flag = flag
        self.sequence = sequence
        self.detail = detail or "Unknown IMAP error"
        self.action = action
        super().__init__(f"Unable to {action} flag {flag} on {sequence}: {self.detail}")
