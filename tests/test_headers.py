from datetime import datetime, timezone

import pytest

from mailfetch.imap.headers import HeaderDecoder


@pytest.fixture
def decoder():
    return HeaderDecoder("utf-8")


def test_decode_mime_header_passthrough(decoder):
    assert decoder.decode_mime_header(None) is None
    assert decoder.decode_mime_header("") == ""
    assert decoder.decode_mime_header("Plain subject") == "Plain subject"


def test_decode_mime_header_encoded_words(decoder):
    assert decoder.decode_mime_header("=?UTF-8?B?SMOpbGxv?=") == "Héllo"
    assert decoder.decode_mime_header("=?ISO-8859-1?Q?Caf=E9?= au lait") == "Café au lait"


def test_decode_mime_header_unknown_charset_falls_back(decoder):
    out = decoder.decode_mime_header("=?x-unknown?Q?abc?=")
    assert out == "abc"


def test_decode_mime_header_constrained_to_target():
    ascii_decoder = HeaderDecoder("ascii")
    assert ascii_decoder.decode_mime_header("=?UTF-8?B?SMOpbGxv?=") == "H?llo"


def test_convert_bad_charset_never_raises(decoder):
    assert decoder.convert(b"abc", "no-such-charset") == "abc"
    assert decoder.convert("é".encode("latin-1"), "latin-1") == "é"
    assert decoder.convert(b"\xff\xfe", "utf-8") == "\ufffd\ufffd"


def test_map_address_list(decoder):
    addrs = decoder.map_address_list(
        ['"=?UTF-8?Q?J=C3=BCrgen?=" <jurgen@example.de>, bob@example.com']
    )
    assert [a.email for a in addrs] == ["jurgen@example.de", "bob@example.com"]
    assert addrs[0].name == "Jürgen"
    assert addrs[1].name is None


def test_map_address_list_drops_incomplete(decoder):
    assert decoder.map_address_list(["nobody", "@host.com", "user@"]) == []


def test_parse_header_lines_unfolds_and_overwrites(decoder):
    raw = (
        b"Subject: first line\r\n"
        b"  continued\r\n"
        b"X-Dup: one\r\n"
        b"garbage line\r\n"
        b"X-Dup: two\r\n"
        b"\r\n"
    )
    headers = decoder.parse_header_lines(raw)
    assert headers == {"subject": "first line continued", "x-dup": "two"}


def test_parse_envelope(decoder):
    raw = (
        b"From: =?UTF-8?Q?Ana=C3=AFs?= <anais@example.fr>\r\n"
        b"To: a@example.com, b@example.com\r\n"
        b"Cc: c@example.com\r\n"
        b"Reply-To: replies@example.com\r\n"
        b"Subject: =?UTF-8?B?UmFwcG9ydA==?= mensuel\r\n"
        b"Date: Tue, 02 Jan 2024 10:30:00 +0000\r\n"
        b"\r\n"
    )
    env = decoder.parse_envelope(raw)
    assert env.subject == "Rapport mensuel"
    assert env.date == datetime(2024, 1, 2, 10, 30, tzinfo=timezone.utc)
    assert env.from_[0].name == "Anaïs"
    assert [a.email for a in env.to] == ["a@example.com", "b@example.com"]
    assert env.cc[0].email == "c@example.com"
    assert env.reply_to[0].email == "replies@example.com"
    assert env.bcc == []


def test_parse_envelope_bad_date_is_none(decoder):
    env = decoder.parse_envelope(b"Subject: x\r\nDate: yesterday-ish\r\n\r\n")
    assert env.date is None
    assert env.subject == "x"


@pytest.mark.parametrize("raw", [None, b"", b"\r\n\r\n"])
def test_parse_envelope_rejects_empty(decoder, raw):
    with pytest.raises(ValueError):
        decoder.parse_envelope(raw)


def test_parse_envelope_keeps_raw_utf8_headers(decoder):
    raw = "Subject: Grüße aus Köln\r\nFrom: Jörg <j@example.de>\r\n\r\n".encode("utf-8")
    env = decoder.parse_envelope(raw)
    assert env.subject == "Grüße aus Köln"
    assert env.from_[0].name == "Jörg"
    assert env.from_[0].email == "j@example.de"


def test_parse_envelope_raw_word_next_to_encoded_word(decoder):
    raw = "Subject: Grüße =?utf-8?q?K=C3=B6ln?=\r\n\r\n".encode("utf-8")
    assert decoder.parse_envelope(raw).subject == "Grüße Köln"


def test_raw_latin1_header_falls_back(decoder):
    raw = "Subject: Café\r\n\r\n".encode("latin-1")
    assert decoder.parse_envelope(raw).subject == "Café"
    assert decoder.parse_header_lines(raw) == {"subject": "Café"}


def test_decode_mime_header_plain_non_ascii(decoder):
    assert decoder.decode_mime_header("Grüße") == "Grüße"
    assert decoder.decode_mime_header("Grüße =?utf-8?q?K=C3=B6ln?=") == "Grüße Köln"
