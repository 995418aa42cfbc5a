from mailfetch.imap.bodystructure import MimePart, PrimaryType, TransferEncoding, parse_bodystructure
from mailfetch.imap.client import ImapClient, build_sequence
from mailfetch.imap.connection import ImapConnection, ImaplibConnection, Overview
from mailfetch.imap.headers import Envelope, HeaderDecoder
from mailfetch.imap.query import IMAPQuery, SearchFilter, parse_filter_date
from mailfetch.imap.walker import MimeStructureWalker, decode_transfer

__all__ = [
    "ImapClient",
    "build_sequence",
    "ImapConnection",
    "ImaplibConnection",
    "Overview",
    "MimePart",
    "PrimaryType",
    "TransferEncoding",
    "parse_bodystructure",
    "Envelope",
    "HeaderDecoder",
    "IMAPQuery",
    "SearchFilter",
    "parse_filter_date",
    "MimeStructureWalker",
    "decode_transfer",
]
