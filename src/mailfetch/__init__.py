from mailfetch.config import (
    OP_HALFOPEN,
    OP_READONLY,
    ConnectionConfig,
    MailboxSpec,
    load_connection_config_from_env,
    parse_mailbox_path,
)
from mailfetch.errors import (
    ConnectionFailure,
    FlagMutationFailure,
    InvalidRequest,
    MailFetchError,
    MessageFetchFailure,
)
from mailfetch.fetch_options import FetchOptions
from mailfetch.fetcher import fetch_messages
from mailfetch.imap.client import ImapClient
from mailfetch.imap.query import SearchFilter
from mailfetch.models import Attachment, Message, MessageAddress
from mailfetch.service import ImapService
from mailfetch.service_config import ServiceConfig

__all__ = [
    "OP_HALFOPEN",
    "OP_READONLY",
    "ConnectionConfig",
    "MailboxSpec",
    "load_connection_config_from_env",
    "parse_mailbox_path",
    "ConnectionFailure",
    "FlagMutationFailure",
    "InvalidRequest",
    "MailFetchError",
    "MessageFetchFailure",
    "FetchOptions",
    "fetch_messages",
    "ImapClient",
    "SearchFilter",
    "Attachment",
    "Message",
    "MessageAddress",
    "ImapService",
    "ServiceConfig",
]
