# src/mailfetch/imap/fetch_response.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Set, Union

FetchData = Sequence[Union[bytes, tuple, None]]

_FLAGS_RE = re.compile(r"\bFLAGS\s+\(([^)]*)\)", re.IGNORECASE)
_SIZE_RE = re.compile(r"\bRFC822\.SIZE\s+(\d+)", re.IGNORECASE)
_LITERAL_RE = re.compile(rb"\{(\d+)\}\s*$")
_SECTION_RE = re.compile(r"BODY\[([0-9.]*(?:HEADER|TEXT)?)\]", re.IGNORECASE)


@dataclass
class FetchPiece:
    meta: str
    payload: Optional[bytes] = None


def _text(raw: Union[bytes, str]) -> str:
    return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)


def iter_fetch_pieces(data: FetchData) -> Iterator[FetchPiece]:
    """
    imaplib returns FETCH data as a mix of ``(meta, payload)`` tuples (for
    literals) and bare ``bytes`` lines. Closing ``b')'`` lines are skipped.
    """
    for item in data or []:
        if item is None:
            continue
        if isinstance(item, tuple):
            meta = item[0] if item else b""
            payload = item[1] if len(item) > 1 else None
            yield FetchPiece(meta=_text(meta), payload=payload)
        else:
            line = _text(item)
            if line.strip() == ")":
                continue
            yield FetchPiece(meta=line)


def flatten_fetch_response(data: FetchData) -> str:
    """
    Rebuild the full FETCH response line, inlining every literal as a quoted
    string so that the result can be read as one s-expression.
    """
    out: List[str] = []
    for item in data or []:
        if item is None:
            continue
        if isinstance(item, tuple):
            meta = item[0] if isinstance(item[0], bytes) else str(item[0]).encode()
            payload = item[1] if len(item) > 1 and item[1] is not None else b""
            m = _LITERAL_RE.search(meta)
            if m:
                meta = meta[: m.start()]
                literal = _text(payload).replace("\\", "\\\\").replace('"', '\\"')
                out.append(_text(meta) + f'"{literal}"')
            else:
                out.append(_text(meta) + _text(payload))
        else:
            out.append(_text(item))
    return "".join(out)


def parse_flags(meta: str) -> Set[str]:
    m = _FLAGS_RE.search(meta or "")
    if not m:
        return set()
    return {f for f in m.group(1).split() if f}


def parse_rfc822_size(meta: str) -> Optional[int]:
    m = _SIZE_RE.search(meta or "")
    return int(m.group(1)) if m else None


def match_section_body(meta: str) -> Optional[str]:
    """Section name of a ``BODY[...]`` item (``""`` for the whole body), or None."""
    m = _SECTION_RE.search(meta or "")
    return m.group(1) if m else None


def extract_bodystructure_from_fetch_meta(meta: str) -> Optional[str]:
    """
    Return the parenthesised value following ``BODYSTRUCTURE`` in a FETCH
    response line, balanced on parentheses and aware of quoted strings.
    """
    if not meta:
        return None
    idx = meta.upper().find("BODYSTRUCTURE")
    if idx == -1:
        return None
    start = meta.find("(", idx)
    if start == -1:
        return None

    depth = 0
    in_quote = False
    i = start
    while i < len(meta):
        c = meta[i]
        if in_quote:
            if c == "\\":
                i += 2
                continue
            if c == '"':
                in_quote = False
        elif c == '"':
            in_quote = True
        elif c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return meta[start : i + 1]
        i += 1
    return None
