# src/mailfetch/imap/bodystructure.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple


class PrimaryType(IntEnum):
    TEXT = 0
    MULTIPART = 1
    MESSAGE = 2
    APPLICATION = 3
    AUDIO = 4
    IMAGE = 5
    VIDEO = 6
    OTHER = 7

    @classmethod
    def from_name(cls, name: Optional[str]) -> "PrimaryType":
        if not name:
            return cls.OTHER
        try:
            return cls[name.upper()]
        except KeyError:
            return cls.OTHER

    @property
    def mime_name(self) -> str:
        return self.name.lower()


class TransferEncoding(IntEnum):
    SEVEN_BIT = 0
    EIGHT_BIT = 1
    BINARY = 2
    BASE64 = 3
    QUOTED_PRINTABLE = 4
    OTHER = 5

    @classmethod
    def from_name(cls, name: Optional[str]) -> "TransferEncoding":
        return _ENCODINGS.get((name or "7bit").strip().lower(), cls.OTHER)


_ENCODINGS = {
    "7bit": TransferEncoding.SEVEN_BIT,
    "8bit": TransferEncoding.EIGHT_BIT,
    "binary": TransferEncoding.BINARY,
    "base64": TransferEncoding.BASE64,
    "quoted-printable": TransferEncoding.QUOTED_PRINTABLE,
}


@dataclass
class MimePart:
    """
    One node of a message's MIME structure.

    Parameter names are lower-cased; values are kept as sent (they may still
    carry RFC 2047 encoded words).
    """
    primary_type: PrimaryType
    subtype: str
    encoding: TransferEncoding = TransferEncoding.SEVEN_BIT
    parameters: Dict[str, str] = field(default_factory=dict)
    disposition: Optional[str] = None
    disposition_parameters: Dict[str, str] = field(default_factory=dict)
    content_id: Optional[str] = None
    size: int = 0
    parts: List["MimePart"] = field(default_factory=list)

    @property
    def is_multipart(self) -> bool:
        return bool(self.parts)

    @property
    def mime_type(self) -> str:
        subtype = (self.subtype or "octet-stream").lower()
        return f"{self.primary_type.mime_name}/{subtype}"


class BodyStructureError(ValueError):
    pass


# -----------------------
# Tokenizer / s-expression reader
# -----------------------

def _tokenize(s: str) -> List[Tuple[str, Any]]:
    tokens: List[Tuple[str, Any]] = []
    i = 0
    n = len(s)
    while i < n:
        c = s[i]
        if c.isspace():
            i += 1
        elif c in "()":
            tokens.append((c, c))
            i += 1
        elif c == '"':
            i += 1
            buf = []
            while i < n and s[i] != '"':
                if s[i] == "\\" and i + 1 < n:
                    i += 1
                buf.append(s[i])
                i += 1
            if i >= n:
                raise BodyStructureError("unterminated quoted string")
            tokens.append(("str", "".join(buf)))
            i += 1
        elif c == "{":
            # literal: {N}\r\n<N chars>
            close = s.find("}", i)
            if close == -1:
                raise BodyStructureError("unterminated literal")
            length = int(s[i + 1 : close])
            start = close + 1
            if s.startswith("\r\n", start):
                start += 2
            elif s.startswith("\n", start):
                start += 1
            tokens.append(("str", s[start : start + length]))
            i = start + length
        else:
            j = i
            while j < n and not s[j].isspace() and s[j] not in '()"':
                j += 1
            atom = s[i:j]
            tokens.append(("nil", None) if atom.upper() == "NIL" else ("atom", atom))
            i = j
    return tokens


def _read(tokens: List[Tuple[str, Any]], pos: int) -> Tuple[Any, int]:
    kind, value = tokens[pos]
    if kind == "(":
        out: List[Any] = []
        pos += 1
        while pos < len(tokens) and tokens[pos][0] != ")":
            item, pos = _read(tokens, pos)
            out.append(item)
        if pos >= len(tokens):
            raise BodyStructureError("unbalanced parentheses")
        return out, pos + 1
    if kind == ")":
        raise BodyStructureError("unexpected ')'")
    return value, pos + 1


def _sexpr(s: str) -> Any:
    tokens = _tokenize(s)
    if not tokens:
        raise BodyStructureError("empty BODYSTRUCTURE")
    value, _ = _read(tokens, 0)
    return value


# -----------------------
# List -> MimePart
# -----------------------

def _params(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, list):
        return {}
    out: Dict[str, str] = {}
    for i in range(0, len(raw) - 1, 2):
        key, value = raw[i], raw[i + 1]
        if isinstance(key, str) and value is not None:
            out[key.lower()] = str(value)
    return out


def _disposition(raw: Any) -> Tuple[Optional[str], Dict[str, str]]:
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return raw[0], _params(raw[1] if len(raw) > 1 else None)
    return None, {}


def _int(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def _at(seq: List[Any], idx: int) -> Any:
    return seq[idx] if idx < len(seq) else None


def _build(node: List[Any]) -> MimePart:
    if node and isinstance(node[0], list):
        children: List[MimePart] = []
        idx = 0
        while idx < len(node) and isinstance(node[idx], list):
            children.append(_build(node[idx]))
            idx += 1
        subtype = _at(node, idx) or "mixed"
        params = _params(_at(node, idx + 1))
        disp, disp_params = _disposition(_at(node, idx + 2))
        return MimePart(
            primary_type=PrimaryType.MULTIPART,
            subtype=str(subtype).lower(),
            parameters=params,
            disposition=disp,
            disposition_parameters=disp_params,
            parts=children,
        )

    if len(node) < 7:
        raise BodyStructureError(f"truncated body part: {node!r}")

    primary = PrimaryType.from_name(_at(node, 0))
    subtype = str(_at(node, 1) or "octet-stream").lower()
    part = MimePart(
        primary_type=primary,
        subtype=subtype,
        parameters=_params(_at(node, 2)),
        content_id=_at(node, 3),
        encoding=TransferEncoding.from_name(_at(node, 5)),
        size=_int(_at(node, 6)),
    )

    # extension data follows the type-specific fields
    if primary is PrimaryType.TEXT:
        ext = 9  # lines, md5
    elif primary is PrimaryType.MESSAGE and subtype == "rfc822":
        ext = 11  # envelope, body, lines, md5
        inner = _at(node, 8)
        if isinstance(inner, list) and inner:
            nested = _build(inner)
            # IMAP numbers a multipart body's children directly under the message part
            part.parts = nested.parts if nested.is_multipart else [nested]
    else:
        ext = 8  # md5

    part.disposition, part.disposition_parameters = _disposition(_at(node, ext))
    return part


def parse_bodystructure(raw: str) -> MimePart:
    """
    Parse the parenthesised BODYSTRUCTURE value (starting at its opening
    parenthesis) into a MimePart tree.
    """
    value = _sexpr(raw)
    if not isinstance(value, list):
        raise BodyStructureError(f"BODYSTRUCTURE is not a list: {raw[:80]!r}")
    return _build(value)
