# src/mailfetch/imap/walker.py
from __future__ import annotations

import base64
import binascii
import logging
import quopri
import re
from typing import Any, Callable, Optional

from mailfetch.errors import MessageFetchFailure
from mailfetch.fetch_options import FetchOptions
from mailfetch.imap.bodystructure import MimePart, PrimaryType, TransferEncoding
from mailfetch.imap.connection import ImapConnection
from mailfetch.imap.headers import HeaderDecoder
from mailfetch.models.attachment import Attachment, Deferred
from mailfetch.models.message import Message

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_RE = re.compile(r"[^\w.\- ()]")
_BASE64_JUNK_RE = re.compile(rb"[^A-Za-z0-9+/]")


def decode_transfer(data: bytes, encoding: TransferEncoding) -> bytes:
    """Undo the Content-Transfer-Encoding; unknown encodings pass through."""
    if encoding is TransferEncoding.BASE64:
        cleaned = _BASE64_JUNK_RE.sub(b"", data)
        cleaned += b"=" * (-len(cleaned) % 4)
        try:
            return base64.b64decode(cleaned)
        except (binascii.Error, ValueError):
            return b""
    if encoding is TransferEncoding.QUOTED_PRINTABLE:
        return quopri.decodestring(data)
    return data


def sanitize_filename(name: Optional[str]) -> str:
    if not name:
        return ""
    # keep the last path component only
    name = re.split(r"[\\/]", name)[-1]
    name = _UNSAFE_FILENAME_RE.sub("_", name).strip()
    return name.lstrip(".")


def _param(part: MimePart, name: str) -> Optional[str]:
    for params in (part.disposition_parameters, part.parameters):
        value = params.get(name)
        if value:
            return value
    return None


def _disposition(part: MimePart) -> str:
    return (part.disposition or "").strip().lower()


def is_body_part(part: MimePart) -> bool:
    return (
        part.primary_type is PrimaryType.TEXT
        and part.subtype.lower() in ("plain", "html")
        and _disposition(part) != "attachment"
    )


def is_attachment_part(part: MimePart) -> bool:
    if part.primary_type is PrimaryType.TEXT and part.subtype.lower() in ("plain", "html"):
        return _disposition(part) == "attachment"
    if _disposition(part) in ("inline", "attachment"):
        return True
    return any(
        key in params
        for params in (part.disposition_parameters, part.parameters)
        for key in ("filename", "name")
    )


class MimeStructureWalker:
    """
    Walks a MimePart tree for one message and fills in its bodies and
    attachments. Part bodies are fetched through the connection on demand.
    """

    def __init__(
        self,
        connection: ImapConnection,
        session: Any,
        uid: int,
        decoder: HeaderDecoder,
    ) -> None:
        self.connection = connection
        self.session = session
        self.uid = uid
        self.decoder = decoder

    def walk(self, message: Message, structure: MimePart, options: FetchOptions) -> None:
        if not structure.parts:
            self._visit(message, structure, "1", options, single_part=True)
            return
        for index, child in enumerate(structure.parts, start=1):
            self._visit(message, child, str(index), options)

    def _visit(
        self,
        message: Message,
        part: MimePart,
        address: str,
        options: FetchOptions,
        single_part: bool = False,
    ) -> None:
        if part.parts:
            # containers hold boundaries only
            for index, child in enumerate(part.parts, start=1):
                self._visit(message, child, f"{address}.{index}", options)
            return

        if is_attachment_part(part):
            if options.attachments:
                attachment = self._attachment(part, address, options, single_part)
                if attachment is not None:
                    message.add_attachment(attachment)
            return

        if not is_body_part(part):
            logger.debug("UID %s part %s (%s) ignored", self.uid, address, part.mime_type)
            return

        is_html = part.subtype.lower() == "html"
        if (is_html and not options.html_body) or (not is_html and not options.text_body):
            return

        data = self._fetch_decoded(part, address, single_part)
        if not data:
            return
        text = self.decoder.convert(data, part.parameters.get("charset"))
        if is_html:
            message.append_html_body(text)
        else:
            message.append_text_body(text)

    def _fetch_decoded(self, part: MimePart, address: str, single_part: bool) -> bytes:
        raw = self.connection.fetch_body(self.session, self.uid, None if single_part else address)
        if not raw:
            logger.debug("UID %s part %s has no body", self.uid, address)
            return b""
        return decode_transfer(raw, part.encoding)

    def _loader(self, part: MimePart, address: str, single_part: bool) -> Callable[[], bytes]:
        def load() -> bytes:
            raw = self.connection.fetch_body(self.session, self.uid, None if single_part else address)
            if raw is None:
                detail = "; ".join(self.connection.errors())
                raise MessageFetchFailure(self.uid, f"fetch attachment part {address}", detail)
            return decode_transfer(raw, part.encoding)

        return load

    def _attachment(
        self,
        part: MimePart,
        address: str,
        options: FetchOptions,
        single_part: bool,
    ) -> Optional[Attachment]:
        filename = sanitize_filename(self.decoder.decode_mime_header(_param(part, "filename") or _param(part, "name")))
        if not filename:
            filename = f"attachment-{address}"

        content_id = part.content_id.strip().strip("<>") if part.content_id else None

        if options.attachment_content:
            data = self._fetch_decoded(part, address, single_part)
            if not data:
                return None
            content: Any = data
            size: Optional[int] = len(data)
        else:
            content = Deferred(self._loader(part, address, single_part))
            size = part.size

        logger.debug("UID %s part %s attachment %r (%s)", self.uid, address, filename, part.mime_type)
        return Attachment(
            filename,
            part.mime_type,
            content,
            inline=_disposition(part) == "inline",
            content_id=content_id or None,
            size=size,
            part=address,
        )
