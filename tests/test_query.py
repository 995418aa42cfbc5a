from datetime import date, datetime

import pytest

from mailfetch.errors import InvalidRequest
from mailfetch.imap.query import IMAPQuery, SearchFilter, parse_filter_date


def test_empty_filter_is_all():
    assert SearchFilter().build() == "ALL"
    assert IMAPQuery().build() == "ALL"


def test_since_and_unread():
    f = SearchFilter(since=date(2024, 1, 1), unread=True)
    assert f.build() == "SINCE 1-Jan-2024 UNSEEN"


def test_before_is_inclusive():
    f = SearchFilter(before=date(2024, 1, 31))
    assert f.build() == "BEFORE 1-Feb-2024"


def test_before_rolls_over_year():
    assert SearchFilter(before=date(2023, 12, 31)).build() == "BEFORE 1-Jan-2024"


def test_read_and_unanswered():
    f = SearchFilter(unread=False, answered=False)
    assert f.build() == "SEEN UNANSWERED"


def test_answered_true():
    assert SearchFilter(answered=True).build() == "ANSWERED"


def test_clause_order():
    f = SearchFilter(
        body="b",
        subject="s",
        to="t@x",
        from_="f@x",
        answered=True,
        unread=True,
        before=date(2024, 3, 10),
        since=date(2024, 3, 1),
    )
    assert f.build() == (
        'SINCE 1-Mar-2024 BEFORE 11-Mar-2024 UNSEEN ANSWERED '
        'FROM "f@x" TO "t@x" SUBJECT "s" BODY "b"'
    )


def test_substring_escaping():
    f = SearchFilter(subject='say "hi" \\ bye')
    assert f.build() == 'SUBJECT "say \\"hi\\" \\\\ bye"'


def test_empty_strings_are_absent():
    assert SearchFilter(from_="", to="", subject="", body="").build() == "ALL"


def test_string_dates_are_parsed():
    f = SearchFilter(since="2024-02-05")
    assert f.build() == "SINCE 5-Feb-2024"


def test_parse_filter_date_variants():
    assert parse_filter_date(date(2024, 1, 2)) == date(2024, 1, 2)
    assert parse_filter_date(datetime(2024, 1, 2, 13, 0)) == date(2024, 1, 2)
    assert parse_filter_date("2024-01-02") == date(2024, 1, 2)
    assert parse_filter_date("2024-01-02T08:00:00") == date(2024, 1, 2)
    assert parse_filter_date("Tue, 02 Jan 2024 10:30:00 +0000") == date(2024, 1, 2)


@pytest.mark.parametrize("bad", ["", "not a date", "2024-13-45", None, 12])
def test_parse_filter_date_rejects_garbage(bad):
    with pytest.raises(InvalidRequest):
        parse_filter_date(bad)
