import pytest

from fake_imap_connection import FakeImapConnection

from mailfetch.config import ConnectionConfig
from mailfetch.imap.client import ImapClient


@pytest.fixture
def fake_conn() -> FakeImapConnection:
    return FakeImapConnection()


@pytest.fixture
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        mailbox_path="{imap.example.com:993/imap/ssl}INBOX",
        username="user@example.com",
        password="secret",
    )


@pytest.fixture
def client(fake_conn, connection_config) -> ImapClient:
    c = ImapClient(connection_config, connection=fake_conn)
    yield c
    c.disconnect()
