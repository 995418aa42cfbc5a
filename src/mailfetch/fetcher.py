# src/mailfetch/fetcher.py
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from mailfetch.errors import MessageFetchFailure
from mailfetch.fetch_options import FetchOptions
from mailfetch.imap.client import ImapClient
from mailfetch.models.message import Message

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[int, MessageFetchFailure], None]


def _patterns(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip().lower() for v in (values or []) if v and v.strip()]


def is_excluded(message: Message, exclude_from: Sequence[str], exclude_subject: Sequence[str]) -> bool:
    """
    True when any sender address contains an exclude_from pattern or the
    subject contains an exclude_subject pattern (case-insensitive).
    """
    from_patterns = _patterns(exclude_from)
    if from_patterns:
        for address in message.from_:
            email = address.email.lower()
            if any(p in email for p in from_patterns):
                return True

    subject_patterns = _patterns(exclude_subject)
    if subject_patterns and message.subject:
        subject = message.subject.lower()
        if any(p in subject for p in subject_patterns):
            return True

    return False


def fetch_messages(
    client: ImapClient,
    uids: Iterable[int],
    options: FetchOptions,
    *,
    exclude_from: Sequence[str] = (),
    exclude_subject: Sequence[str] = (),
    on_error: Optional[ErrorHandler] = None,
) -> List[Message]:
    """
    Fetch UIDs one after another. A UID that fails is skipped and reported;
    the batch always completes.
    """
    messages: List[Message] = []
    failed = 0
    excluded = 0

    for uid in uids:
        try:
            message = client.fetch_message(uid, options)
        except MessageFetchFailure as e:
            failed += 1
            logger.warning("Skipping UID %s (%s): %s", uid, e.stage, e.detail or e)
            if on_error is not None:
                on_error(uid, e)
            continue

        if is_excluded(message, exclude_from, exclude_subject):
            excluded += 1
            continue
        messages.append(message)

    logger.info("Fetched %d messages (%d failed, %d excluded)", len(messages), failed, excluded)
    return messages
