# src/mailfetch/service.py
from __future__ import annotations

import base64
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from mailfetch.config import ConnectionConfig
from mailfetch.errors import ConnectionFailure, MessageFetchFailure
from mailfetch.fetcher import ErrorHandler, fetch_messages
from mailfetch.imap.client import ImapClient, UidInput
from mailfetch.imap.connection import ImapConnection
from mailfetch.imap.query import DateLike
from mailfetch.models.address import MessageAddress
from mailfetch.models.attachment import Attachment
from mailfetch.models.message import Message
from mailfetch.service_config import (
    ServiceConfig,
    validate_attachment_encoding,
    validate_limit,
    validate_order,
    validate_text_filter,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectionConfig, str], ImapClient]

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _addresses(addresses: Sequence[MessageAddress]) -> List[Dict[str, Optional[str]]]:
    return [a.to_dict() for a in addresses]


def _attachments(attachments: Sequence[Attachment], config: ServiceConfig) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for att in attachments:
        entry = att.to_dict()
        if config.include_attachment_content:
            data = att.content
            entry["size"] = att.size
            entry["content"] = (
                data if config.attachment_content_encoding == "binary"
                else base64.b64encode(data).decode("ascii")
            )
        out.append(entry)
    return out


def message_to_record(message: Message, fields: Sequence[str], config: ServiceConfig) -> Dict[str, Any]:
    """Field-keyed dict for one message; unknown field names map to None."""
    getters: Dict[str, Callable[[], Any]] = {
        "uid": lambda: message.uid,
        "subject": lambda: message.subject or "",
        "date": lambda: message.date.strftime(DATE_FORMAT) if message.date else None,
        "from": lambda: _addresses(message.from_),
        "to": lambda: _addresses(message.to),
        "cc": lambda: _addresses(message.cc),
        "bcc": lambda: _addresses(message.bcc),
        "replyTo": lambda: _addresses(message.reply_to),
        "textBody": lambda: message.text_body,
        "htmlBody": lambda: message.html_body,
        "attachments": lambda: _attachments(message.attachments, config),
        "headers": lambda: message.headers,
        "seen": lambda: message.seen,
        "answered": lambda: message.answered,
        "size": lambda: message.size,
        "preview": lambda: message.preview,
    }
    return {f: (getters[f]() if f in getters else None) for f in fields}


class ImapService:
    """
    Fluent facade over ImapClient: configure once, then ask for records.

        with ImapService().connect(mailbox, user, pw).unread_only().limit(10) as svc:
            records = svc.get_messages()
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        self.config = ServiceConfig.from_dict(config or {})
        self._client: Optional[ImapClient] = None
        self._connection: Optional[ImapConnection] = None
        self._client_factory: ClientFactory = self._default_factory
        self._error_handler: Optional[ErrorHandler] = None

    def _default_factory(self, connection_config: ConnectionConfig, encoding: str) -> ImapClient:
        return ImapClient(connection_config, connection=self._connection, target_encoding=encoding)

    @classmethod
    def create(cls) -> "ImapService":
        return cls()

    @staticmethod
    def test_connection(
        mailbox: str,
        username: str,
        password: str,
        options: int = 0,
        retries: int = 0,
        parameters: Optional[Dict[str, Any]] = None,
        connection: Optional[ImapConnection] = None,
    ) -> bool:
        """Open a session and close it again. Raises ConnectionFailure on failure."""
        cfg = ConnectionConfig(mailbox, username, password, options, retries, dict(parameters or {}))
        client = ImapClient(cfg, connection=connection)
        try:
            client.connect()
            return True
        finally:
            client.disconnect()

    # -----------------------
    # Fluent configuration
    # -----------------------

    def connect(
        self,
        mailbox: str,
        username: str,
        password: str,
        options: int = 0,
        retries: int = 0,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> "ImapService":
        self.config.mailbox = mailbox
        self.config.username = username
        self.config.password = password
        self.config.options = options
        self.config.retries = retries
        self.config.parameters = dict(parameters or {})
        return self

    def encoding(self, encoding: str) -> "ImapService":
        self.config.encoding = encoding
        return self

    def fields(self, fields: Sequence[str]) -> "ImapService":
        self.config.set_fields(fields)
        return self

    def exclude_fields(self, fields: Sequence[str]) -> "ImapService":
        self.config.set_exclude_fields(fields)
        return self

    def limit(self, count: int) -> "ImapService":
        self.config.limit = validate_limit(count)
        return self

    def order_by(self, direction: str) -> "ImapService":
        self.config.order = validate_order(direction)
        return self

    def since(self, value: DateLike) -> "ImapService":
        self.config.set_since(value)
        return self

    def before(self, value: DateLike) -> "ImapService":
        self.config.set_before(value)
        return self

    def unread_only(self, flag: bool = True) -> "ImapService":
        self.config.unread = True if flag else None
        return self

    def read_only(self, flag: bool = True) -> "ImapService":
        self.config.unread = False if flag else None
        return self

    def from_(self, email: str) -> "ImapService":
        self.config.from_ = validate_text_filter("from", email)
        return self

    def to(self, email: str) -> "ImapService":
        self.config.to = validate_text_filter("to", email)
        return self

    def subject_contains(self, text: str) -> "ImapService":
        self.config.subject_contains = validate_text_filter("subject_contains", text)
        return self

    def body_contains(self, text: str) -> "ImapService":
        self.config.body_contains = validate_text_filter("body_contains", text)
        return self

    def answered_only(self, flag: bool = True) -> "ImapService":
        self.config.answered = True if flag else None
        return self

    def unanswered_only(self, flag: bool = True) -> "ImapService":
        self.config.answered = False if flag else None
        return self

    def exclude_from(self, patterns: Sequence[str]) -> "ImapService":
        self.config.exclude_from_patterns = list(patterns)
        return self

    def exclude_subject_contains(self, patterns: Sequence[str]) -> "ImapService":
        self.config.exclude_subject_patterns = list(patterns)
        return self

    def include_attachment_content(self, flag: bool = True, encoding: str = "base64") -> "ImapService":
        self.config.attachment_content_encoding = validate_attachment_encoding(encoding)
        self.config.include_attachment_content = flag
        return self

    def use_client(self, client: ImapClient) -> "ImapService":
        self._client = client
        return self

    def use_connection(self, connection: ImapConnection) -> "ImapService":
        self._connection = connection
        self._client = None
        return self

    def with_client_factory(self, factory: ClientFactory) -> "ImapService":
        self._client_factory = factory
        return self

    def on_error(self, handler: Callable[[int, MessageFetchFailure], None]) -> "ImapService":
        self._error_handler = handler
        return self

    # -----------------------
    # Client lifecycle
    # -----------------------

    def _get_client(self) -> ImapClient:
        if self._client is not None:
            return self._client
        if not self.config.has_connection:
            raise ConnectionFailure("Connection not configured. Use connect() or provide connection config.")

        client = self._client_factory(self.config.connection_config(), self.config.encoding)
        client.connect()
        self._client = client
        return client

    def disconnect(self, expunge: bool = False) -> "ImapService":
        if self._client is not None:
            client, self._client = self._client, None
            client.disconnect(expunge)
        return self

    @contextmanager
    def session(self) -> Iterator["ImapService"]:
        try:
            yield self
        finally:
            self.disconnect()

    def __enter__(self) -> "ImapService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # -----------------------
    # Retrieval
    # -----------------------

    def get_messages(self, overrides: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        config = self.config.merge(overrides) if overrides else self.config

        client = self._get_client()
        uids = client.search(config.to_imap_criteria())
        if config.order == "desc":
            uids = list(reversed(uids))
        uids = uids[: config.limit]

        fields = config.get_active_fields()
        messages = fetch_messages(
            client,
            uids,
            config.build_fetch_options(fields),
            exclude_from=config.exclude_from_patterns,
            exclude_subject=config.exclude_subject_patterns,
            on_error=self._error_handler,
        )
        return [message_to_record(m, fields, config) for m in messages]

    def get_message(self, uid: int) -> Optional[Dict[str, Any]]:
        """Record for one UID, or None when it cannot be fetched."""
        client = self._get_client()
        fields = self.config.get_active_fields()
        try:
            message = client.fetch_message(uid, self.config.build_fetch_options(fields))
        except MessageFetchFailure as e:
            logger.warning("Unable to fetch UID %s (%s): %s", uid, e.stage, e.detail or e)
            if self._error_handler is not None:
                self._error_handler(uid, e)
            return None
        return message_to_record(message, fields, self.config)

    def get_unread_count(self) -> int:
        return len(self._get_client().get_unread_uids())

    def get_total_count(self, criteria: str = "ALL") -> int:
        return len(self._get_client().search(criteria))

    # -----------------------
    # Flags
    # -----------------------

    def mark_as_read(self, uids: UidInput) -> "ImapService":
        self._get_client().mark_as_read(uids)
        return self

    def mark_as_unread(self, uids: UidInput) -> "ImapService":
        self._get_client().mark_as_unread(uids)
        return self

    def mark_as_answered(self, uids: UidInput) -> "ImapService":
        self._get_client().mark_as_answered(uids)
        return self

    def mark_as_unanswered(self, uids: UidInput) -> "ImapService":
        self._get_client().mark_as_unanswered(uids)
        return self
