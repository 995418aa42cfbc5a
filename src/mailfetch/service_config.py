# src/mailfetch/service_config.py
from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from mailfetch.config import ConnectionConfig
from mailfetch.errors import InvalidRequest
from mailfetch.fetch_options import FetchOptions
from mailfetch.imap.query import DateLike, SearchFilter, parse_filter_date

AVAILABLE_FIELDS = (
    "uid",
    "subject",
    "date",
    "from",
    "to",
    "cc",
    "bcc",
    "replyTo",
    "textBody",
    "htmlBody",
    "attachments",
    "headers",
    "seen",
    "answered",
    "size",
    "preview",
)

DEFAULT_FIELDS = ("uid", "subject", "date", "from", "textBody")

ATTACHMENT_ENCODINGS = ("base64", "binary")

_FIELD_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def validate_fields(fields: Any) -> List[str]:
    """
    Field names must look like identifiers. Well-formed names outside
    AVAILABLE_FIELDS are accepted and come back as None in records.
    """
    if isinstance(fields, str) or not isinstance(fields, Sequence):
        raise InvalidRequest(f"Fields must be a list of names, got {fields!r}")
    out: List[str] = []
    for name in fields:
        if not isinstance(name, str) or not _FIELD_NAME_RE.match(name):
            raise InvalidRequest(f"Invalid field name: {name!r}")
        out.append(name)
    return out


def validate_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError) as e:
        raise InvalidRequest(f"Invalid limit: {limit!r}") from e
    if isinstance(limit, bool) or value < 0:
        raise InvalidRequest(f"Invalid limit: {limit!r}")
    return value


def validate_order(order: Any) -> str:
    value = str(order or "").strip().lower()
    if value not in ("asc", "desc"):
        raise InvalidRequest(f"Order must be 'asc' or 'desc', got {order!r}")
    return value


def validate_attachment_encoding(encoding: Any) -> str:
    value = str(encoding or "").strip().lower()
    if value not in ATTACHMENT_ENCODINGS:
        raise InvalidRequest('Attachment content encoding must be "base64" or "binary".')
    return value


def validate_flag_filter(name: str, value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raise InvalidRequest(f"Filter {name!r} must be true, false or null, got {value!r}")


def validate_text_filter(name: str, value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise InvalidRequest(f"Filter {name!r} must be a string, got {value!r}")


def validate_count(name: str, value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise InvalidRequest(f"Invalid {name}: {value!r}")
    try:
        result = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequest(f"Invalid {name}: {value!r}") from e
    if result < 0:
        raise InvalidRequest(f"Invalid {name}: {value!r}")
    return result


def _optional_date(value: Optional[DateLike]) -> Optional[date]:
    return None if value is None or value == "" else parse_filter_date(value)


def _patterns(values: Any) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str):
        return [values]
    return [str(v) for v in values]


@dataclass
class ServiceConfig:
    """
    Everything one retrieval request needs: connection settings, requested
    fields, IMAP-side filters and post-fetch exclusions.
    """
    # connection
    mailbox: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    options: int = 0
    retries: int = 0
    parameters: Dict[str, Any] = field(default_factory=dict)
    encoding: str = "UTF-8"

    # field selection
    fields: List[str] = field(default_factory=list)
    exclude_fields: List[str] = field(default_factory=list)

    # IMAP-level filters
    limit: int = 50
    order: str = "desc"
    since: Optional[date] = None
    before: Optional[date] = None
    unread: Optional[bool] = None
    answered: Optional[bool] = None
    from_: Optional[str] = None
    to: Optional[str] = None
    subject_contains: Optional[str] = None
    body_contains: Optional[str] = None

    # post-fetch exclusions
    exclude_from_patterns: List[str] = field(default_factory=list)
    exclude_subject_patterns: List[str] = field(default_factory=list)

    # attachment transport
    include_attachment_content: bool = False
    attachment_content_encoding: str = "base64"

    # -----------------------
    # Construction
    # -----------------------

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "ServiceConfig":
        inst = cls()

        conn = config.get("connection")
        if isinstance(conn, Mapping):
            inst.mailbox = conn.get("mailbox")
            inst.username = conn.get("username")
            inst.password = conn.get("password")
            inst.options = validate_count("options", conn.get("options"))
            inst.retries = validate_count("retries", conn.get("retries"))
            if isinstance(conn.get("parameters"), Mapping):
                inst.parameters = dict(conn["parameters"])
            inst.encoding = conn.get("encoding") or "UTF-8"

        if config.get("fields") is not None:
            inst.set_fields(config["fields"])
        if config.get("exclude_fields") is not None:
            inst.set_exclude_fields(config["exclude_fields"])

        filters = config.get("filters")
        if isinstance(filters, Mapping):
            inst.limit = validate_limit(filters.get("limit", 50))
            inst.order = validate_order(filters.get("order", "desc"))
            inst.set_since(filters.get("since"))
            inst.set_before(filters.get("before"))
            inst.unread = validate_flag_filter("unread", filters.get("unread"))
            inst.answered = validate_flag_filter("answered", filters.get("answered"))
            inst.from_ = validate_text_filter("from", filters.get("from"))
            inst.to = validate_text_filter("to", filters.get("to"))
            inst.subject_contains = validate_text_filter("subject_contains", filters.get("subject_contains"))
            inst.body_contains = validate_text_filter("body_contains", filters.get("body_contains"))

        exclude = config.get("exclude")
        if isinstance(exclude, Mapping):
            inst.exclude_from_patterns = _patterns(exclude.get("from"))
            inst.exclude_subject_patterns = _patterns(exclude.get("subject_contains"))

        attachments = config.get("attachments")
        if isinstance(attachments, Mapping):
            inst.include_attachment_content = bool(attachments.get("include_content", False))
            inst.attachment_content_encoding = validate_attachment_encoding(
                attachments.get("encoding", "base64")
            )

        return inst

    def merge(self, overrides: Mapping[str, Any]) -> "ServiceConfig":
        """
        Copy with per-request overrides applied. Exclusion patterns are
        appended to the existing ones rather than replacing them.
        """
        clone = copy.deepcopy(self)
        o = overrides

        if o.get("limit") is not None:
            clone.limit = validate_limit(o["limit"])
        if o.get("order") is not None:
            clone.order = validate_order(o["order"])
        if o.get("since") is not None:
            clone.set_since(o["since"])
        if o.get("before") is not None:
            clone.set_before(o["before"])
        if "unread" in o:
            clone.unread = validate_flag_filter("unread", o["unread"])
        if "answered" in o:
            clone.answered = validate_flag_filter("answered", o["answered"])
        for key, attr in (
            ("from", "from_"),
            ("to", "to"),
            ("subject_contains", "subject_contains"),
            ("body_contains", "body_contains"),
        ):
            if o.get(key) is not None:
                setattr(clone, attr, validate_text_filter(key, o[key]))

        if o.get("fields") is not None:
            clone.set_fields(o["fields"])
        if o.get("exclude_fields") is not None:
            clone.set_exclude_fields(o["exclude_fields"])

        if o.get("exclude_from") is not None:
            clone.exclude_from_patterns = clone.exclude_from_patterns + _patterns(o["exclude_from"])
        if o.get("exclude_subject") is not None:
            clone.exclude_subject_patterns = clone.exclude_subject_patterns + _patterns(o["exclude_subject"])

        return clone

    # -----------------------
    # Setters with validation
    # -----------------------

    def set_fields(self, fields: Sequence[str]) -> None:
        self.fields = validate_fields(fields)

    def set_exclude_fields(self, fields: Sequence[str]) -> None:
        self.exclude_fields = validate_fields(fields)

    def set_since(self, value: Optional[DateLike]) -> None:
        self.since = _optional_date(value)

    def set_before(self, value: Optional[DateLike]) -> None:
        self.before = _optional_date(value)

    # -----------------------
    # Derived values
    # -----------------------

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            mailbox_path=self.mailbox or "",
            username=self.username or "",
            password=self.password or "",
            options=self.options,
            retries=self.retries,
            parameters=dict(self.parameters),
        )

    @property
    def has_connection(self) -> bool:
        return bool(self.mailbox and self.username and self.password)

    def to_search_filter(self) -> SearchFilter:
        return SearchFilter(
            since=self.since,
            before=self.before,
            unread=self.unread,
            answered=self.answered,
            from_=self.from_,
            to=self.to,
            subject=self.subject_contains,
            body=self.body_contains,
        )

    def to_imap_criteria(self) -> str:
        return self.to_search_filter().build()

    def get_active_fields(self) -> List[str]:
        fields = list(self.fields) if self.fields else list(DEFAULT_FIELDS)
        if self.exclude_fields:
            excluded = set(self.exclude_fields)
            fields = [f for f in fields if f not in excluded]
        fields = [f for f in fields if f != "uid"]
        # uid is always present, and first
        return ["uid"] + list(dict.fromkeys(fields))

    def build_fetch_options(self, fields: Optional[Sequence[str]] = None) -> FetchOptions:
        wanted = set(fields if fields is not None else self.get_active_fields())
        attachments = "attachments" in wanted
        return FetchOptions(
            text_body="textBody" in wanted or "preview" in wanted,
            html_body="htmlBody" in wanted or "preview" in wanted,
            attachments=attachments,
            attachment_content=attachments and self.include_attachment_content,
        )
