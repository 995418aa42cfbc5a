from mailfetch.models.address import MessageAddress
from mailfetch.models.attachment import Attachment, AttachmentContent, Deferred, Materialized
from mailfetch.models.message import Message

__all__ = [
    "MessageAddress",
    "Attachment",
    "AttachmentContent",
    "Deferred",
    "Materialized",
    "Message",
]
