# src/mailfetch/imap/connection.py
from __future__ import annotations

import imaplib
import logging
import ssl
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from mailfetch.config import OP_HALFOPEN, OP_READONLY, MailboxSpec, parse_mailbox_path
from mailfetch.errors import ConnectionFailure
from mailfetch.imap.bodystructure import BodyStructureError, MimePart, parse_bodystructure
from mailfetch.imap.fetch_response import (
    extract_bodystructure_from_fetch_meta,
    flatten_fetch_response,
    iter_fetch_pieces,
    match_section_body,
    parse_flags,
    parse_rfc822_size,
)

logger = logging.getLogger(__name__)

RETRYABLE = (imaplib.IMAP4.abort, TimeoutError, OSError, ssl.SSLError)


@dataclass
class Overview:
    seen: bool = False
    answered: bool = False
    size: int = 0


class ImapConnection(Protocol):
    """
    Protocol primitives the client is built on.

    Only ``open`` raises; every other primitive reports failure through its
    return value (None / False / empty list) and leaves the reason in
    ``errors()``.
    """

    def open(
        self,
        mailbox_path: str,
        username: str,
        password: str,
        options: int = 0,
        retries: int = 0,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Any: ...

    def close(self, session: Any, expunge: bool = False) -> bool: ...

    def ping(self, session: Any) -> bool: ...

    def search(self, session: Any, criteria: str) -> List[int]: ...

    def fetch_header(self, session: Any, uid: int) -> Optional[bytes]: ...

    def fetch_structure(self, session: Any, uid: int) -> Optional[MimePart]: ...

    def fetch_overview(self, session: Any, uid: int) -> Optional[Overview]: ...

    def fetch_body(self, session: Any, uid: int, part: Optional[str] = None) -> Optional[bytes]: ...

    def set_flag(self, session: Any, sequence: str, flag: str) -> bool: ...

    def clear_flag(self, session: Any, sequence: str, flag: str) -> bool: ...

    def errors(self) -> List[str]: ...


@dataclass
class ImapSession:
    conn: imaplib.IMAP4
    mailbox: MailboxSpec
    readonly: bool = False
    selected: bool = False


def _format_mailbox_arg(mailbox: str) -> str:
    if mailbox.upper() == "INBOX":
        return "INBOX"
    if mailbox.startswith('"') and mailbox.endswith('"'):
        return mailbox
    return f'"{mailbox}"'


class ImaplibConnection:
    """ImapConnection over the standard library's imaplib."""

    def __init__(self, *, backoff_seconds: float = 0.2) -> None:
        self.backoff_seconds = backoff_seconds
        self._errors: List[str] = []

    # -----------------------
    # Diagnostics
    # -----------------------

    def _record(self, message: str) -> None:
        logger.debug("IMAP error: %s", message)
        if message not in self._errors:
            self._errors.append(message)

    def errors(self) -> List[str]:
        out, self._errors = self._errors, []
        return out

    # -----------------------
    # Connection management
    # -----------------------

    def _ssl_context(self, spec: MailboxSpec, parameters: Dict[str, Any]) -> ssl.SSLContext:
        ctx = parameters.get("ssl_context")
        if ctx is not None:
            return ctx
        ctx = ssl.create_default_context()
        if not spec.validate_cert:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        return ctx

    def _connect(self, spec: MailboxSpec, parameters: Dict[str, Any]) -> imaplib.IMAP4:
        timeout = parameters.get("timeout")
        if spec.use_ssl:
            return imaplib.IMAP4_SSL(
                spec.host, spec.port, ssl_context=self._ssl_context(spec, parameters), timeout=timeout
            )
        conn = imaplib.IMAP4(spec.host, spec.port, timeout=timeout)
        if spec.starttls:
            typ, data = conn.starttls(ssl_context=self._ssl_context(spec, parameters))
            if typ != "OK":
                raise imaplib.IMAP4.error(f"STARTTLS failed: {data}")
        return conn

    def open(
        self,
        mailbox_path: str,
        username: str,
        password: str,
        options: int = 0,
        retries: int = 0,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> ImapSession:
        spec = parse_mailbox_path(mailbox_path)
        parameters = dict(parameters or {})
        readonly = spec.readonly or bool(options & OP_READONLY)
        last_exc: Optional[BaseException] = None

        for attempt in range(max(0, retries) + 1):
            conn: Optional[imaplib.IMAP4] = None
            try:
                conn = self._connect(spec, parameters)
                conn.login(username, password)
                session = ImapSession(conn=conn, mailbox=spec, readonly=readonly)

                if not options & OP_HALFOPEN:
                    typ, data = conn.select(_format_mailbox_arg(spec.mailbox), readonly=readonly)
                    if typ != "OK":
                        raise imaplib.IMAP4.error(f"select({spec.mailbox!r}) failed: {data}")
                    session.selected = True

                logger.info(
                    "IMAP session opened on %s:%s mailbox=%s readonly=%s",
                    spec.host, spec.port, spec.mailbox, readonly,
                )
                return session

            except RETRYABLE as e:
                last_exc = e
                self._record(str(e) or e.__class__.__name__)
                self._safe_logout(conn)
                if attempt < retries and self.backoff_seconds > 0:
                    time.sleep(self.backoff_seconds * (attempt + 1))
                continue
            except imaplib.IMAP4.error as e:
                # authentication and protocol refusals are not retried
                self._record(str(e))
                self._safe_logout(conn)
                raise ConnectionFailure(
                    f'Unable to connect to mailbox "{mailbox_path}": {e}'
                ) from e

        raise ConnectionFailure(
            f'Unable to connect to mailbox "{mailbox_path}": {last_exc}'
        ) from last_exc

    def _safe_logout(self, conn: Optional[imaplib.IMAP4]) -> None:
        if conn is None:
            return
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug("logout after failure raised: %s", e)

    def close(self, session: ImapSession, expunge: bool = False) -> bool:
        ok = True
        conn = session.conn
        try:
            if session.selected:
                if expunge and not session.readonly:
                    conn.expunge()
                conn.close()
                session.selected = False
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"close failed: {e}")
            ok = False
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"logout failed: {e}")
            ok = False
        logger.info("IMAP session closed on %s", session.mailbox.host)
        return ok

    def ping(self, session: ImapSession) -> bool:
        try:
            typ, _ = session.conn.noop()
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"NOOP failed: {e}")
            return False
        return typ == "OK"

    # -----------------------
    # SEARCH / FETCH
    # -----------------------

    def search(self, session: ImapSession, criteria: str) -> List[int]:
        criteria = criteria or "ALL"
        try:
            if criteria.isascii():
                typ, data = session.conn.uid("SEARCH", None, criteria)
            else:
                typ, data = session.conn.uid("SEARCH", "CHARSET", "UTF-8", criteria.encode("utf-8"))
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"SEARCH failed: {e}")
            return []
        if typ != "OK":
            self._record(f"SEARCH failed: {data}")
            return []

        raw = (data or [b""])[0] or b""
        return sorted(int(x) for x in raw.split() if x.isdigit())

    def _uid_fetch(self, session: ImapSession, uid: int, attrs: str) -> Optional[List[Any]]:
        try:
            typ, data = session.conn.uid("FETCH", str(uid), attrs)
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"FETCH {attrs} failed for UID {uid}: {e}")
            return None
        if typ != "OK" or not data or data == [None]:
            self._record(f"FETCH {attrs} failed for UID {uid}: {data}")
            return None
        return data

    def _fetch_section(self, session: ImapSession, uid: int, section: str) -> Optional[bytes]:
        data = self._uid_fetch(session, uid, f"(BODY.PEEK[{section}])")
        if data is None:
            return None
        for piece in iter_fetch_pieces(data):
            sec = match_section_body(piece.meta)
            if piece.payload is not None and sec is not None and sec.upper() == section.upper():
                return piece.payload
        return None

    def fetch_header(self, session: ImapSession, uid: int) -> Optional[bytes]:
        return self._fetch_section(session, uid, "HEADER")

    def fetch_body(self, session: ImapSession, uid: int, part: Optional[str] = None) -> Optional[bytes]:
        return self._fetch_section(session, uid, part or "TEXT")

    def fetch_structure(self, session: ImapSession, uid: int) -> Optional[MimePart]:
        data = self._uid_fetch(session, uid, "(BODYSTRUCTURE)")
        if data is None:
            return None
        raw = extract_bodystructure_from_fetch_meta(flatten_fetch_response(data))
        if not raw:
            self._record(f"No BODYSTRUCTURE in response for UID {uid}")
            return None
        try:
            return parse_bodystructure(raw)
        except BodyStructureError as e:
            self._record(f"Unparseable BODYSTRUCTURE for UID {uid}: {e}")
            return None

    def fetch_overview(self, session: ImapSession, uid: int) -> Optional[Overview]:
        data = self._uid_fetch(session, uid, "(UID FLAGS RFC822.SIZE)")
        if data is None:
            return None
        meta = " ".join(piece.meta for piece in iter_fetch_pieces(data))
        flags = {f.lower() for f in parse_flags(meta)}
        return Overview(
            seen="\\seen" in flags,
            answered="\\answered" in flags,
            size=parse_rfc822_size(meta) or 0,
        )

    # -----------------------
    # Mutations
    # -----------------------

    def _store(self, session: ImapSession, sequence: str, mode: str, flag: str) -> bool:
        try:
            typ, data = session.conn.uid("STORE", sequence, mode, f"({flag})")
        except (imaplib.IMAP4.error, OSError) as e:
            self._record(f"STORE {mode} {flag} failed: {e}")
            return False
        if typ != "OK":
            self._record(f"STORE {mode} {flag} failed: {data}")
            return False
        return True

    def set_flag(self, session: ImapSession, sequence: str, flag: str) -> bool:
        return self._store(session, sequence, "+FLAGS", flag)

    def clear_flag(self, session: ImapSession, sequence: str, flag: str) -> bool:
        return self._store(session, sequence, "-FLAGS", flag)
