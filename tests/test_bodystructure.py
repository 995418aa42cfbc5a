import pytest

from mailfetch.imap.bodystructure import (
    BodyStructureError,
    PrimaryType,
    TransferEncoding,
    parse_bodystructure,
)
from mailfetch.imap.fetch_response import (
    extract_bodystructure_from_fetch_meta,
    flatten_fetch_response,
    iter_fetch_pieces,
    match_section_body,
    parse_flags,
    parse_rfc822_size,
)

SIMPLE = '("TEXT" "PLAIN" ("CHARSET" "UTF-8") NIL NIL "7BIT" 12 1 NIL NIL NIL)'

MIXED = (
    '((("TEXT" "PLAIN" ("CHARSET" "utf-8") NIL NIL "QUOTED-PRINTABLE" 20 2 NIL NIL NIL)'
    '("TEXT" "HTML" ("CHARSET" "utf-8") NIL NIL "BASE64" 40 1 NIL NIL NIL) "ALTERNATIVE" ("BOUNDARY" "b1") NIL NIL)'
    '("APPLICATION" "PDF" ("NAME" "report.pdf") "<cid1@x>" NIL "BASE64" 1000 NIL '
    '("ATTACHMENT" ("FILENAME" "report.pdf")) NIL) "MIXED" ("BOUNDARY" "b0") NIL NIL)'
)

FORWARDED = (
    '(("TEXT" "PLAIN" NIL NIL NIL "7BIT" 5 1 NIL NIL NIL)'
    '("MESSAGE" "RFC822" NIL NIL NIL "7BIT" 500 '
    '("Mon, 1 Jan 2024 00:00:00 +0000" "inner" NIL NIL NIL NIL NIL NIL NIL "<id@x>") '
    '(("TEXT" "PLAIN" NIL NIL NIL "7BIT" 10 1 NIL NIL NIL)("TEXT" "HTML" NIL NIL NIL "7BIT" 20 1 NIL NIL NIL) '
    '"ALTERNATIVE" NIL NIL NIL) 20 NIL ("INLINE" NIL) NIL) "MIXED" NIL NIL NIL)'
)


def test_single_part():
    part = parse_bodystructure(SIMPLE)
    assert part.primary_type is PrimaryType.TEXT
    assert part.subtype == "plain"
    assert part.parameters == {"charset": "UTF-8"}
    assert part.encoding is TransferEncoding.SEVEN_BIT
    assert part.size == 12
    assert part.parts == []
    assert part.disposition is None


def test_nested_multipart():
    root = parse_bodystructure(MIXED)
    assert root.primary_type is PrimaryType.MULTIPART
    assert root.subtype == "mixed"
    assert root.parameters == {"boundary": "b0"}

    alt, pdf = root.parts
    assert alt.subtype == "alternative"
    assert [p.subtype for p in alt.parts] == ["plain", "html"]
    assert alt.parts[0].encoding is TransferEncoding.QUOTED_PRINTABLE
    assert alt.parts[1].encoding is TransferEncoding.BASE64

    assert pdf.mime_type == "application/pdf"
    assert pdf.content_id == "<cid1@x>"
    assert pdf.disposition == "ATTACHMENT"
    assert pdf.disposition_parameters == {"filename": "report.pdf"}
    assert pdf.size == 1000


def test_rfc822_children_sit_under_message_part():
    root = parse_bodystructure(FORWARDED)
    forwarded = root.parts[1]
    assert forwarded.mime_type == "message/rfc822"
    assert forwarded.disposition == "INLINE"
    assert [p.subtype for p in forwarded.parts] == ["plain", "html"]


def test_unknown_type_and_encoding():
    part = parse_bodystructure('("FONT" "WOFF" NIL NIL NIL "X-UUENCODE" 3 NIL NIL NIL NIL)')
    assert part.primary_type is PrimaryType.OTHER
    assert part.encoding is TransferEncoding.OTHER


@pytest.mark.parametrize("bad", ["", '("TEXT" "PLAIN"', '"TEXT"', '("TEXT" "PLAIN")'])
def test_malformed(bad):
    with pytest.raises(BodyStructureError):
        parse_bodystructure(bad)


def test_flatten_inlines_literals():
    data = [
        (
            b'1 (UID 7 BODYSTRUCTURE (("TEXT" "PLAIN" ("CHARSET" "utf-8") NIL NIL "7BIT" 5 1 NIL NIL NIL)'
            b'("APPLICATION" "OCTET-STREAM" ("NAME" {10}',
            b'weird"name',
        ),
        b') NIL NIL "BASE64" 100 NIL NIL NIL) "MIXED" NIL NIL NIL))',
    ]
    raw = extract_bodystructure_from_fetch_meta(flatten_fetch_response(data))
    root = parse_bodystructure(raw)
    assert root.parts[1].parameters == {"name": 'weird"name'}


def test_fetch_piece_helpers():
    data = [
        (b"1 (UID 5 FLAGS (\\Seen \\Answered) RFC822.SIZE 1234 BODY[HEADER] {12}", b"Subject: x\r\n"),
        b")",
    ]
    pieces = list(iter_fetch_pieces(data))
    assert len(pieces) == 1
    meta = pieces[0].meta
    assert parse_flags(meta) == {"\\Seen", "\\Answered"}
    assert parse_rfc822_size(meta) == 1234
    assert match_section_body(meta) == "HEADER"
    assert pieces[0].payload == b"Subject: x\r\n"


def test_section_matching():
    assert match_section_body("1 (UID 5 BODY[1.2] {3}") == "1.2"
    assert match_section_body("1 (UID 5 BODY[TEXT] {3}") == "TEXT"
    assert match_section_body("1 (UID 5 FLAGS ())") is None
