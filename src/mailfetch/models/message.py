from __future__ import annotations

import html
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from mailfetch.models.address import MessageAddress
from mailfetch.models.attachment import Attachment

_TAG_RE = re.compile(r"<[^>]*>")
_STYLE_SCRIPT_RE = re.compile(r"<(style|script)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r"\s+")


class Message:
    """
    Decoded message.

    Built up by the IMAP decoding layer during a single fetch; callers only
    read it (every attribute is a read-only property).
    """

    def __init__(self, uid: int) -> None:
        self._uid = uid
        self._subject: Optional[str] = None
        self._date: Optional[datetime] = None
        self._from: List[MessageAddress] = []
        self._to: List[MessageAddress] = []
        self._cc: List[MessageAddress] = []
        self._bcc: List[MessageAddress] = []
        self._reply_to: List[MessageAddress] = []
        self._text_body: Optional[str] = None
        self._html_body: Optional[str] = None
        self._attachments: List[Attachment] = []
        self._headers: Dict[str, str] = {}
        self._seen = False
        self._answered = False
        self._size = 0

    # ---- read-only view ----

    @property
    def uid(self) -> int:
        return self._uid

    @property
    def subject(self) -> Optional[str]:
        return self._subject

    @property
    def date(self) -> Optional[datetime]:
        return self._date

    @property
    def from_(self) -> Tuple[MessageAddress, ...]:
        return tuple(self._from)

    @property
    def to(self) -> Tuple[MessageAddress, ...]:
        return tuple(self._to)

    @property
    def cc(self) -> Tuple[MessageAddress, ...]:
        return tuple(self._cc)

    @property
    def bcc(self) -> Tuple[MessageAddress, ...]:
        return tuple(self._bcc)

    @property
    def reply_to(self) -> Tuple[MessageAddress, ...]:
        return tuple(self._reply_to)

    @property
    def text_body(self) -> Optional[str]:
        return self._text_body

    @property
    def html_body(self) -> Optional[str]:
        return self._html_body

    @property
    def attachments(self) -> Tuple[Attachment, ...]:
        return tuple(self._attachments)

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def seen(self) -> bool:
        return self._seen

    @property
    def answered(self) -> bool:
        return self._answered

    @property
    def size(self) -> int:
        return self._size

    @property
    def preview(self) -> str:
        """
        Plain-text preview: the text body, or the HTML body with tags stripped
        when there is no text. Whitespace runs collapse to one space.
        """
        text = (self._text_body or "").strip()
        if not text and self._html_body is not None:
            stripped = _STYLE_SCRIPT_RE.sub(" ", self._html_body)
            stripped = _TAG_RE.sub("", stripped)
            text = html.unescape(stripped).strip()
        return _WS_RE.sub(" ", text)

    # ---- used by the decoding layer ----

    def set_subject(self, subject: Optional[str]) -> None:
        self._subject = subject

    def set_date(self, date: Optional[datetime]) -> None:
        self._date = date

    def add_from(self, address: MessageAddress) -> None:
        self._from.append(address)

    def add_to(self, address: MessageAddress) -> None:
        self._to.append(address)

    def add_cc(self, address: MessageAddress) -> None:
        self._cc.append(address)

    def add_bcc(self, address: MessageAddress) -> None:
        self._bcc.append(address)

    def add_reply_to(self, address: MessageAddress) -> None:
        self._reply_to.append(address)

    def append_text_body(self, text: str) -> None:
        self._text_body = (self._text_body or "") + text

    def append_html_body(self, html_body: str) -> None:
        self._html_body = (self._html_body or "") + html_body

    def add_attachment(self, attachment: Attachment) -> None:
        self._attachments.append(attachment)

    def set_headers(self, headers: Dict[str, str]) -> None:
        self._headers = dict(headers)

    def set_seen(self, seen: bool) -> None:
        self._seen = seen

    def set_answered(self, answered: bool) -> None:
        self._answered = answered

    def set_size(self, size: int) -> None:
        self._size = size

    def __repr__(self) -> str:
        return (
            f"Message(uid={self._uid}, subject={self._subject!r}, "
            f"attachments={len(self._attachments)}, size={self._size})"
        )
