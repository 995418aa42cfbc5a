import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from mailfetch import ConnectionFailure, FlagMutationFailure, ImapService, InvalidRequest
from mailfetch.imap.connection import ImapConnection

from context import DEFAULT_MAILBOX, ENV_CONNECTION, run_blocking
from schemas import MessageActionRequest, MessagesRequest

load_dotenv(override=True)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI()

WEB_FIELDS = [
    "uid",
    "subject",
    "from",
    "to",
    "cc",
    "replyTo",
    "date",
    "textBody",
    "htmlBody",
    "attachments",
    "seen",
    "answered",
    "preview",
]

ACTIONS = {
    "mark-read": ImapService.mark_as_read,
    "mark-unread": ImapService.mark_as_unread,
    "mark-answered": ImapService.mark_as_answered,
    "mark-unanswered": ImapService.mark_as_unanswered,
}


def get_connection() -> Optional[ImapConnection]:
    """Protocol layer for new services; None selects the imaplib default."""
    return None


# -----------------------
# Error mapping
# -----------------------

def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": message})


@app.exception_handler(ConnectionFailure)
async def _connection_failure(request: Request, exc: ConnectionFailure) -> JSONResponse:
    return _error(401, f"Connection failed: {exc}")


@app.exception_handler(InvalidRequest)
async def _invalid_request(request: Request, exc: InvalidRequest) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(FlagMutationFailure)
async def _flag_failure(request: Request, exc: FlagMutationFailure) -> JSONResponse:
    return _error(502, str(exc))


# -----------------------
# Helpers
# -----------------------

def build_service(req: MessagesRequest, connection: Optional[ImapConnection]) -> ImapService:
    username = (req.username or "").strip()
    password = (req.password or "").strip()
    mailbox = (req.mailbox or "").strip()
    retries = 0
    parameters: Dict[str, Any] = {}

    if (not username or not password) and ENV_CONNECTION is not None:
        username = username or ENV_CONNECTION.username
        password = password or ENV_CONNECTION.password
        mailbox = mailbox or ENV_CONNECTION.mailbox_path
        retries = ENV_CONNECTION.retries
        parameters = dict(ENV_CONNECTION.parameters)

    if not username or not password:
        raise HTTPException(status_code=400, detail="Username and password required")

    service = ImapService().connect(mailbox or DEFAULT_MAILBOX, username, password, retries=retries, parameters=parameters)
    if connection is not None:
        service.use_connection(connection)

    service.fields(req.fields or WEB_FIELDS).limit(req.limit).order_by(req.order)

    if req.date_from:
        service.since(req.date_from)
    if req.date_to:
        service.before(req.date_to)

    if req.read_status == "UNREAD":
        service.unread_only()
    elif req.read_status == "READ":
        service.read_only()

    if req.answered_status == "ANSWERED":
        service.answered_only()
    elif req.answered_status == "UNANSWERED":
        service.unanswered_only()

    if req.search_text:
        if req.search_field == "FROM":
            service.from_(req.search_text)
        elif req.search_field == "TO":
            service.to(req.search_text)
        elif req.search_field in ("BODY", "TEXT"):
            service.body_contains(req.search_text)
        else:
            service.subject_contains(req.search_text)

    exclude_from = [p.strip() for p in req.exclude_from if p.strip()]
    if exclude_from:
        service.exclude_from(exclude_from)
    exclude_subject = [p.strip() for p in req.exclude_subject if p.strip()]
    if exclude_subject:
        service.exclude_subject_contains(exclude_subject)

    if req.include_attachment_content:
        service.include_attachment_content(True, "base64")

    service.on_error(lambda uid, exc: logger.warning("UID %s skipped: %s", uid, exc))
    return service


def _format_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    dt = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    return f"{dt:%b} {dt.day}, {dt:%Y %H:%M}"


def format_message(record: Dict[str, Any], body_length: int) -> Dict[str, Any]:
    body_length = min(max(body_length, 100), 20000)
    body = record.get("preview") or ""

    out = dict(record)
    out["subject"] = record.get("subject") or ""
    out["date"] = _format_date(record.get("date"))
    out["bodyPreview"] = body[:body_length]
    out["bodyFull"] = body
    out["bodyTruncated"] = len(body) > body_length
    out["seen"] = bool(record.get("seen", False))
    out["answered"] = bool(record.get("answered", False))

    attachments: List[Dict[str, Any]] = []
    for att in record.get("attachments") or []:
        entry = dict(att)
        entry["sizeFormatted"] = f"{att['size'] / 1024:.1f} KB"
        attachments.append(entry)
    out["attachments"] = attachments
    return out


def _list_messages(service: ImapService, req: MessagesRequest) -> Dict[str, Any]:
    with service.session():
        records = service.get_messages()
        criteria = service.config.to_imap_criteria()
        total = service.get_total_count(criteria)

    messages = [format_message(r, req.body_length) for r in records]
    return {
        "success": True,
        "count": len(messages),
        "totalFound": total,
        "searchCriteria": criteria,
        "messages": messages,
    }


def _single_message(service: ImapService, uid: int, req: MessageActionRequest) -> Optional[Dict[str, Any]]:
    with service.session():
        if req.action is not None:
            ACTIONS[req.action](service, uid)
        record = service.get_message(uid)

    if record is None:
        return None
    return {"success": True, "message": format_message(record, req.body_length)}


# -----------------------
# API
# -----------------------

@app.post("/api/messages")
async def list_messages(
    req: MessagesRequest,
    connection: Optional[ImapConnection] = Depends(get_connection),
) -> dict:
    service = build_service(req, connection)
    return await run_blocking(_list_messages, service, req)


@app.post("/api/messages/{uid}")
async def get_message(
    uid: int,
    req: MessageActionRequest,
    connection: Optional[ImapConnection] = Depends(get_connection),
) -> dict:
    if uid <= 0:
        raise HTTPException(status_code=400, detail="Invalid message UID")

    service = build_service(req, connection)
    result = await run_blocking(_single_message, service, uid, req)
    if result is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return result
