# src/mailfetch/imap/client.py
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Union

from mailfetch.config import ConnectionConfig
from mailfetch.errors import ConnectionFailure, FlagMutationFailure, MessageFetchFailure
from mailfetch.fetch_options import FetchOptions
from mailfetch.imap.connection import ImapConnection, ImaplibConnection
from mailfetch.imap.headers import HeaderDecoder
from mailfetch.imap.walker import MimeStructureWalker
from mailfetch.models.message import Message

logger = logging.getLogger(__name__)

SEEN = "\\Seen"
ANSWERED = "\\Answered"

UidInput = Union[int, str, Iterable[Union[int, str]], None]


def build_sequence(uids: UidInput) -> str:
    """
    UID input -> comma-joined sequence of positive integers, in input order.
    Anything that is not a positive integer is dropped.
    """
    if uids is None:
        return ""
    if isinstance(uids, (int, str, bytes)):
        items: Iterable[Any] = [uids]
    else:
        items = uids

    out: List[str] = []
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, bytes):
            item = item.decode("ascii", errors="ignore")
        try:
            value = int(str(item).strip())
        except ValueError:
            continue
        if value > 0:
            out.append(str(value))
    return ",".join(out)


class ImapClient:
    """
    Owns one IMAP session and turns UIDs into decoded Message objects.

    The session opens lazily on first use and is released by ``disconnect()``
    (or by leaving the ``with`` block).
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        connection: Optional[ImapConnection] = None,
        target_encoding: str = "utf-8",
    ) -> None:
        self.config = config
        self.connection: ImapConnection = connection or ImaplibConnection()
        self.decoder = HeaderDecoder(target_encoding)
        self._session: Any = None

    # -----------------------
    # Session management
    # -----------------------

    @property
    def connected(self) -> bool:
        return self._session is not None

    def connect(self) -> None:
        if self._session is not None:
            return
        cfg = self.config
        if not cfg.mailbox_path or not cfg.username or not cfg.password:
            raise ConnectionFailure("Mailbox path, username and password are required")
        self._session = self.connection.open(
            cfg.mailbox_path,
            cfg.username,
            cfg.password,
            cfg.options,
            cfg.retries,
            dict(cfg.parameters),
        )

    def disconnect(self, expunge: bool = False) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        if not self.connection.close(session, expunge):
            logger.warning("IMAP close reported errors: %s", self.collect_last_error())

    def _stream(self) -> Any:
        if self._session is None:
            self.connect()
        return self._session

    def ping(self) -> bool:
        return self.connection.ping(self._stream())

    def collect_last_error(self) -> str:
        errors = [e for e in self.connection.errors() if e]
        return "; ".join(dict.fromkeys(errors)) or "Unknown IMAP error"

    def __enter__(self) -> "ImapClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # -----------------------
    # SEARCH
    # -----------------------

    def search(self, criteria: str = "ALL") -> List[int]:
        logger.debug("SEARCH %s", criteria)
        return sorted(self.connection.search(self._stream(), criteria or "ALL"))

    def get_unread_uids(self) -> List[int]:
        return self.search("UNSEEN")

    # -----------------------
    # FETCH
    # -----------------------

    def fetch_message(self, uid: int, options: Optional[FetchOptions] = None) -> Message:
        """
        Fetch and decode one message.

        Raises MessageFetchFailure when the header block or the structure
        cannot be obtained.
        """
        options = options or FetchOptions()
        session = self._stream()

        raw_header = self.connection.fetch_header(session, uid)
        if raw_header is None:
            raise MessageFetchFailure(uid, "fetch headers", self.collect_last_error())

        try:
            envelope = self.decoder.parse_envelope(raw_header)
        except ValueError as e:
            raise MessageFetchFailure(uid, "parse headers", str(e)) from e

        message = Message(uid)
        message.set_headers(self.decoder.parse_header_lines(raw_header))
        message.set_subject(envelope.subject)
        message.set_date(envelope.date)
        for address in envelope.from_:
            message.add_from(address)
        for address in envelope.to:
            message.add_to(address)
        for address in envelope.cc:
            message.add_cc(address)
        for address in envelope.bcc:
            message.add_bcc(address)
        for address in envelope.reply_to:
            message.add_reply_to(address)

        structure = self.connection.fetch_structure(session, uid)
        if structure is None:
            raise MessageFetchFailure(uid, "fetch structure", self.collect_last_error())

        overview = self.connection.fetch_overview(session, uid)
        if overview is not None:
            message.set_seen(overview.seen)
            message.set_answered(overview.answered)

        MimeStructureWalker(self.connection, session, uid, self.decoder).walk(message, structure, options)

        size = self._encoded_length(message.text_body) + self._encoded_length(message.html_body)
        size += sum(a.size for a in message.attachments)
        if size == 0 and overview is not None:
            size = overview.size
        message.set_size(size)

        return message

    def _encoded_length(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return len(text.encode(self.decoder.target_encoding, errors="replace"))

    # -----------------------
    # Flags
    # -----------------------

    def set_flag(self, uids: UidInput, flag: str) -> None:
        sequence = build_sequence(uids)
        if not sequence:
            return
        if not self.connection.set_flag(self._stream(), sequence, flag):
            raise FlagMutationFailure(flag, sequence, self.collect_last_error(), action="set")

    def clear_flag(self, uids: UidInput, flag: str) -> None:
        sequence = build_sequence(uids)
        if not sequence:
            return
        if not self.connection.clear_flag(self._stream(), sequence, flag):
            raise FlagMutationFailure(flag, sequence, self.collect_last_error(), action="clear")

    def mark_as_read(self, uids: UidInput) -> None:
        self.set_flag(uids, SEEN)

    def mark_as_unread(self, uids: UidInput) -> None:
        self.clear_flag(uids, SEEN)

    def mark_as_answered(self, uids: UidInput) -> None:
        self.set_flag(uids, ANSWERED)

    def mark_as_unanswered(self, uids: UidInput) -> None:
        self.clear_flag(uids, ANSWERED)
