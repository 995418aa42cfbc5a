# mailfetch/fetch_options.py
from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class FetchOptions:
    """Which parts of a message to fetch and decode."""
    text_body: bool = False
    html_body: bool = False
    attachments: bool = False
    attachment_content: bool = False

    @classmethod
    def everything(cls) -> "FetchOptions":
        return cls(text_body=True, html_body=True, attachments=True, attachment_content=True)

    def with_text_body(self, flag: bool = True) -> "FetchOptions":
        return replace(self, text_body=flag)

    def with_html_body(self, flag: bool = True) -> "FetchOptions":
        return replace(self, html_body=flag)

    def with_attachments(self, flag: bool = True) -> "FetchOptions":
        return replace(self, attachments=flag)

    def with_attachment_content(self, flag: bool = True) -> "FetchOptions":
        return replace(self, attachment_content=flag)
