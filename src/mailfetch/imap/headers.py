# src/mailfetch/imap/headers.py
from __future__ import annotations

import codecs
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from email.errors import HeaderParseError
from email.header import decode_header
from email.parser import HeaderParser
from email.policy import compat32
from email.utils import getaddresses, parsedate_to_datetime
from typing import Dict, Iterable, List, Optional, Union

from mailfetch.models.address import MessageAddress

logger = logging.getLogger(__name__)

# CRLF (or bare LF) followed by whitespace is a folded continuation
_FOLDING_RE = re.compile(r"\r?\n[ \t]+")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass
class Envelope:
    subject: Optional[str] = None
    date: Optional[datetime] = None
    from_: List[MessageAddress] = field(default_factory=list)
    to: List[MessageAddress] = field(default_factory=list)
    cc: List[MessageAddress] = field(default_factory=list)
    bcc: List[MessageAddress] = field(default_factory=list)
    reply_to: List[MessageAddress] = field(default_factory=list)


def _charset_known(charset: str) -> bool:
    try:
        codecs.lookup(charset)
    except LookupError:
        return False
    return True


def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None


class HeaderDecoder:
    """
    Decodes RFC 2047 words, RFC 822 address lists and raw header blocks.

    Text output is constrained to ``target_encoding``: characters it cannot
    represent are replaced. None of the text conversions raise.
    """

    def __init__(self, target_encoding: str = "utf-8") -> None:
        if not _charset_known(target_encoding):
            logger.warning("Unknown target encoding %r, using utf-8", target_encoding)
            target_encoding = "utf-8"
        self.target_encoding = target_encoding

    def constrain(self, text: str) -> str:
        return text.encode(self.target_encoding, errors="replace").decode(self.target_encoding)

    def convert(self, data: bytes, charset: Optional[str] = None) -> str:
        """Bytes in ``charset`` (target encoding when absent) to text."""
        source = (charset or "").strip().strip('"') or self.target_encoding
        try:
            text = data.decode(source)
        except (LookupError, UnicodeDecodeError):
            logger.debug("Charset conversion from %r failed, falling back", source)
            text = data.decode(self.target_encoding, errors="replace")
        return self.constrain(text)

    def header_text(self, raw_header: Union[bytes, str]) -> str:
        """
        Raw header bytes to text. Unencoded 8-bit header values are read in
        the target encoding, or as latin-1 when they are not valid there.
        """
        if isinstance(raw_header, str):
            return raw_header
        try:
            return raw_header.decode(self.target_encoding)
        except UnicodeDecodeError:
            return raw_header.decode("latin-1")

    def decode_mime_header(self, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return value

        try:
            segments = decode_header(value)
        except HeaderParseError:
            return self.constrain(value)

        out: List[str] = []
        for chunk, charset in segments:
            if isinstance(chunk, str):
                out.append(chunk)
                continue
            if charset is None:
                # decode_header hands plain text back as raw-unicode-escape bytes
                try:
                    out.append(chunk.decode("raw-unicode-escape"))
                except UnicodeDecodeError:
                    out.append(chunk.decode("latin-1"))
                continue
            if charset.lower() != "unknown-8bit":
                try:
                    out.append(chunk.decode(charset))
                    continue
                except (LookupError, UnicodeDecodeError):
                    pass
            # failed conversion: keep the raw text
            out.append(chunk.decode("latin-1"))

        return self.constrain("".join(out))

    def map_address_list(self, values: Union[str, Iterable[str], None]) -> List[MessageAddress]:
        """
        Parse address header values; entries without both a local part and a
        host are dropped.
        """
        if values is None:
            return []
        if isinstance(values, str):
            values = [values]

        addresses: List[MessageAddress] = []
        for name, addr in getaddresses([v for v in values if v]):
            local, sep, host = (addr or "").rpartition("@")
            if not sep or not local or not host:
                continue
            display = self.decode_mime_header(name) if name else None
            addresses.append(MessageAddress(email=f"{local}@{host}", name=display or None))
        return addresses

    def parse_header_lines(self, raw_header: Union[bytes, str, None]) -> Dict[str, str]:
        """
        Header block -> {lower-cased name: value}. Later duplicates overwrite
        earlier ones; lines without a colon are dropped.
        """
        if raw_header is None:
            return {}

        unfolded = _FOLDING_RE.sub(" ", self.header_text(raw_header).strip())
        result: Dict[str, str] = {}
        for line in _LINE_SPLIT_RE.split(unfolded):
            if not line.strip():
                continue
            name, sep, value = line.partition(":")
            if not sep:
                continue
            result[name.strip().lower()] = value.strip()
        return result

    def parse_envelope(self, raw_header: Union[bytes, str, None]) -> Envelope:
        """
        Decode subject, date and address headers.

        Raises ValueError when there is no header block to parse.
        """
        if raw_header is None:
            raise ValueError("no header data")
        text = self.header_text(raw_header)
        if not text.strip():
            raise ValueError("empty header block")

        msg = HeaderParser(policy=compat32).parsestr(text)
        if not msg.keys():
            raise ValueError("header block has no fields")

        def _all(name: str) -> List[str]:
            return [str(v) for v in (msg.get_all(name) or [])]

        subject = msg.get("subject")
        date = msg.get("date")
        return Envelope(
            subject=self.decode_mime_header(_FOLDING_RE.sub(" ", str(subject))) if subject is not None else None,
            date=parse_date(str(date) if date is not None else None),
            from_=self.map_address_list(_all("from")),
            to=self.map_address_list(_all("to")),
            cc=self.map_address_list(_all("cc")),
            bcc=self.map_address_list(_all("bcc")),
            reply_to=self.map_address_list(_all("reply-to")),
        )
