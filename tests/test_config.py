import pytest

from mailfetch.config import (
    ConnectionConfig,
    load_connection_config_from_env,
    parse_mailbox_path,
)
from mailfetch.errors import ConnectionFailure


def test_parse_full_mailbox_path():
    spec = parse_mailbox_path("{imap.gmail.com:993/imap/ssl}INBOX")
    assert spec.host == "imap.gmail.com"
    assert spec.port == 993
    assert spec.use_ssl is True
    assert spec.mailbox == "INBOX"
    assert spec.validate_cert is True


def test_parse_flags_and_folder():
    spec = parse_mailbox_path("{mail.local/imap/tls/novalidate-cert/readonly}Archive/2024")
    assert spec.port == 143
    assert spec.use_ssl is False
    assert spec.starttls is True
    assert spec.validate_cert is False
    assert spec.readonly is True
    assert spec.mailbox == "Archive/2024"


def test_parse_bare_host():
    assert parse_mailbox_path("imap.example.com:993").use_ssl is True
    plain = parse_mailbox_path("imap.example.com")
    assert (plain.port, plain.use_ssl, plain.mailbox) == (143, False, "INBOX")


@pytest.mark.parametrize("bad", ["", "   ", "{:993/ssl}INBOX", "{host:abc}INBOX"])
def test_parse_rejects_bad_paths(bad):
    with pytest.raises(ConnectionFailure):
        parse_mailbox_path(bad)


def test_load_from_env(monkeypatch):
    monkeypatch.setattr("mailfetch.config.load_dotenv", lambda **kw: False)
    monkeypatch.setenv("IMAP_MAILBOX", "{imap.example.com:993/imap/ssl}INBOX")
    monkeypatch.setenv("IMAP_USERNAME", "me@example.com")
    monkeypatch.setenv("IMAP_PASSWORD", "pw")
    monkeypatch.setenv("IMAP_RETRIES", "3")
    monkeypatch.setenv("IMAP_TIMEOUT", "12.5")

    cfg = load_connection_config_from_env()

    assert isinstance(cfg, ConnectionConfig)
    assert cfg.username == "me@example.com"
    assert cfg.retries == 3
    assert cfg.parameters == {"timeout": 12.5}
    assert "pw" not in repr(cfg)


def test_load_from_env_missing_values(monkeypatch):
    monkeypatch.setattr("mailfetch.config.load_dotenv", lambda **kw: False)
    monkeypatch.delenv("IMAP_MAILBOX", raising=False)
    monkeypatch.setenv("IMAP_USERNAME", "me@example.com")
    monkeypatch.setenv("IMAP_PASSWORD", "pw")
    assert load_connection_config_from_env() is None
