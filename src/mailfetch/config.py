# mailfetch/config.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from mailfetch.errors import ConnectionFailure

# open() option bits
OP_READONLY = 2
OP_HALFOPEN = 64

DEFAULT_IMAPS_PORT = 993
DEFAULT_IMAP_PORT = 143

_MAILBOX_PATH_RE = re.compile(r"^\{(?P<server>[^}]+)\}(?P<mailbox>.*)$")


@dataclass(frozen=True)
class MailboxSpec:
    """
    Parsed form of a mailbox path such as ``{imap.gmail.com:993/imap/ssl}INBOX``.
    """
    host: str
    port: int
    use_ssl: bool = True
    starttls: bool = False
    validate_cert: bool = True
    readonly: bool = False
    mailbox: str = "INBOX"


def parse_mailbox_path(path: str) -> MailboxSpec:
    """
    Accepts ``{host[:port][/flag...]}MAILBOX`` or a bare ``host[:port]``.

    Recognised flags: /ssl, /notls, /tls, /novalidate-cert, /validate-cert,
    /readonly. Other flags (/imap, /imap4rev1, /service=...) are ignored.
    """
    raw = (path or "").strip()
    if not raw:
        raise ConnectionFailure("Mailbox path is empty")

    m = _MAILBOX_PATH_RE.match(raw)
    if m:
        server = m.group("server")
        mailbox = m.group("mailbox") or "INBOX"
    else:
        server = raw
        mailbox = "INBOX"

    host_port, *flags = server.split("/")
    flags = [f.strip().lower() for f in flags if f.strip()]

    use_ssl = "ssl" in flags
    starttls = "tls" in flags and not use_ssl
    validate_cert = "novalidate-cert" not in flags
    readonly = "readonly" in flags

    host, _, port_s = host_port.partition(":")
    host = host.strip()
    if not host:
        raise ConnectionFailure(f"Mailbox path has no host: {path!r}")

    if port_s:
        try:
            port = int(port_s)
        except ValueError as e:
            raise ConnectionFailure(f"Invalid port in mailbox path: {path!r}") from e
    else:
        port = DEFAULT_IMAPS_PORT if use_ssl else DEFAULT_IMAP_PORT

    # bare host:993 without flags means implicit TLS
    if not m and port == DEFAULT_IMAPS_PORT:
        use_ssl = True

    return MailboxSpec(
        host=host,
        port=port,
        use_ssl=use_ssl,
        starttls=starttls,
        validate_cert=validate_cert,
        readonly=readonly,
        mailbox=mailbox,
    )


@dataclass(frozen=True)
class ConnectionConfig:
    """Mailbox path and credentials for one session."""
    mailbox_path: str
    username: str
    password: str
    options: int = 0
    retries: int = 0
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"ConnectionConfig(mailbox_path={self.mailbox_path!r}, "
            f"username={self.username!r}, password='***', "
            f"options={self.options}, retries={self.retries})"
        )


def load_connection_config_from_env(prefix: str = "IMAP_") -> Optional[ConnectionConfig]:
    """
    Build a ConnectionConfig from environment variables (``.env`` is loaded first).

    Returns None when mailbox, username or password is missing.
    """
    load_dotenv(override=False)

    mailbox = os.getenv(f"{prefix}MAILBOX", "").strip()
    username = os.getenv(f"{prefix}USERNAME", "").strip()
    password = os.getenv(f"{prefix}PASSWORD", "")
    if not mailbox or not username or not password:
        return None

    parameters: Dict[str, Any] = {}
    timeout = os.getenv(f"{prefix}TIMEOUT", "").strip()
    if timeout:
        parameters["timeout"] = float(timeout)

    return ConnectionConfig(
        mailbox_path=mailbox,
        username=username,
        password=password,
        retries=int(os.getenv(f"{prefix}RETRIES", "0") or 0),
        parameters=parameters,
    )
