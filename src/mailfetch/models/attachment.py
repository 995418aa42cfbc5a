from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union


@dataclass(frozen=True)
class Materialized:
    data: bytes


@dataclass(frozen=True)
class Deferred:
    """
    Fetch-and-decode callable, invoked at most once.

    The part was not fetched when the message was walked, so an empty body
    can no longer cause it to be skipped: the loader returns b"" for it. A
    body the server does not return at all raises MessageFetchFailure.
    """
    loader: Callable[[], bytes]


AttachmentContent = Union[Materialized, Deferred]


class Attachment:
    """
    One attachment part of a message.

    ``content`` is either held as bytes or produced by a one-shot loader on
    first access; the loader is dropped once it has run.
    """

    def __init__(
        self,
        filename: str,
        mime_type: str,
        content: Union[AttachmentContent, bytes, None] = None,
        *,
        inline: bool = False,
        content_id: Optional[str] = None,
        size: Optional[int] = None,
        part: Optional[str] = None,
    ) -> None:
        if content is None:
            content = Materialized(b"")
        elif isinstance(content, (bytes, bytearray)):
            content = Materialized(bytes(content))

        self._filename = filename
        self._mime_type = mime_type
        self._content: AttachmentContent = content
        self._inline = inline
        self._content_id = content_id
        self._size = size
        self._part = part

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @property
    def inline(self) -> bool:
        return self._inline

    @property
    def content_id(self) -> Optional[str]:
        return self._content_id

    @property
    def part(self) -> Optional[str]:
        return self._part

    @property
    def has_content(self) -> bool:
        return isinstance(self._content, Materialized)

    @property
    def content(self) -> bytes:
        state = self._content
        if isinstance(state, Deferred):
            data = state.loader()
            self._content = Materialized(data)
            self._size = len(data)
            return data
        return state.data

    @property
    def size(self) -> int:
        if self._size is not None:
            return self._size
        state = self._content
        if isinstance(state, Materialized):
            return len(state.data)
        return 0

    def __repr__(self) -> str:
        return (
            f"Attachment("
            f"filename={self._filename!r}, "
            f"mime_type={self._mime_type!r}, "
            f"part={self._part!r}, "
            f"size={self.size} bytes, "
            f"loaded={self.has_content})"
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "filename": self._filename,
            "size": self.size,
            "mimeType": self._mime_type,
            "isInline": self._inline,
            "contentId": self._content_id,
            "partNumber": self._part,
        }
