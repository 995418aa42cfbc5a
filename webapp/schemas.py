from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class MessagesRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    mailbox: Optional[str] = None

    limit: int = Field(default=10, ge=0, le=500)
    order: Literal["asc", "desc"] = "desc"
    body_length: int = 500
    fields: Optional[List[str]] = None

    date_from: Optional[str] = None
    date_to: Optional[str] = None
    read_status: Optional[Literal["READ", "UNREAD", "ALL"]] = None
    answered_status: Optional[Literal["ANSWERED", "UNANSWERED", "ALL"]] = None
    search_text: Optional[str] = None
    search_field: Literal["SUBJECT", "FROM", "TO", "BODY", "TEXT"] = "SUBJECT"

    exclude_from: List[str] = Field(default_factory=list)
    exclude_subject: List[str] = Field(default_factory=list)

    include_attachment_content: bool = False


class MessageActionRequest(MessagesRequest):
    action: Optional[Literal["mark-read", "mark-unread", "mark-answered", "mark-unanswered"]] = None
