from datetime import date

import pytest

from mailfetch.errors import InvalidRequest
from mailfetch.service_config import DEFAULT_FIELDS, ServiceConfig


def test_invalid_field_raises():
    config = ServiceConfig()
    with pytest.raises(InvalidRequest):
        config.set_fields(["uid", "unknown-field"])


@pytest.mark.parametrize("bad", [[""], [3], ["1abc"], "uid"])
def test_malformed_field_names(bad):
    with pytest.raises(InvalidRequest):
        ServiceConfig().set_fields(bad)


def test_build_fetch_options_respects_requested_fields():
    config = ServiceConfig()
    options = config.build_fetch_options(["uid", "subject"])
    assert options.attachments is False
    assert options.attachment_content is False
    assert options.text_body is False
    assert options.html_body is False

    config.include_attachment_content = True
    with_attachments = config.build_fetch_options(["uid", "attachments"])
    assert with_attachments.attachments is True
    assert with_attachments.attachment_content is True


def test_preview_needs_both_bodies():
    options = ServiceConfig().build_fetch_options(["preview"])
    assert options.text_body is True
    assert options.html_body is True


def test_active_fields_always_contain_uid():
    config = ServiceConfig()
    config.set_fields(["subject"])
    config.set_exclude_fields(["subject"])
    assert config.get_active_fields() == ["uid"]


def test_active_fields_defaults_and_order():
    config = ServiceConfig()
    assert config.get_active_fields() == list(DEFAULT_FIELDS)
    config.set_fields(["subject", "uid", "date"])
    assert config.get_active_fields() == ["uid", "subject", "date"]


def test_from_dict_sections():
    config = ServiceConfig.from_dict(
        {
            "connection": {
                "mailbox": "{imap.example.com:993/imap/ssl}INBOX",
                "username": "u",
                "password": "p",
                "retries": "2",
                "encoding": "ISO-8859-1",
            },
            "fields": ["uid", "subject"],
            "exclude_fields": ["subject"],
            "filters": {
                "limit": 5,
                "order": "asc",
                "since": "2024-01-01",
                "before": "2024-01-31",
                "unread": True,
                "from": "boss@example.com",
                "subject_contains": "report",
            },
            "exclude": {"from": ["noreply@"], "subject_contains": ["spam"]},
        }
    )
    assert config.has_connection
    assert config.retries == 2
    assert config.encoding == "ISO-8859-1"
    assert config.limit == 5
    assert config.order == "asc"
    assert config.since == date(2024, 1, 1)
    assert config.exclude_from_patterns == ["noreply@"]
    assert config.get_active_fields() == ["uid"]
    assert config.to_imap_criteria() == (
        'SINCE 1-Jan-2024 BEFORE 1-Feb-2024 UNSEEN FROM "boss@example.com" SUBJECT "report"'
    )


def test_merge_appends_exclusions_and_copies():
    base = ServiceConfig(exclude_from_patterns=["a@"], exclude_subject_patterns=["x"])
    merged = base.merge({"limit": 3, "exclude_from": ["b@"], "exclude_subject": ["y"], "unread": False})

    assert merged.exclude_from_patterns == ["a@", "b@"]
    assert merged.exclude_subject_patterns == ["x", "y"]
    assert merged.limit == 3
    assert merged.unread is False
    # original untouched
    assert base.limit == 50
    assert base.exclude_from_patterns == ["a@"]
    assert base.unread is None


@pytest.mark.parametrize(
    "overrides",
    [{"limit": -1}, {"limit": "many"}, {"order": "sideways"}, {"since": "not-a-date"}],
)
def test_merge_rejects_bad_values(overrides):
    with pytest.raises(InvalidRequest):
        ServiceConfig().merge(overrides)


def test_connection_config_repr_hides_password():
    cfg = ServiceConfig(mailbox="m", username="u", password="hunter2").connection_config()
    assert "hunter2" not in repr(cfg)


@pytest.mark.parametrize(
    "filters",
    [
        {"unread": "yes"},
        {"answered": "no"},
        {"unread": 1},
        {"from": 5},
        {"to": ["a@example.com"]},
        {"subject_contains": 3.5},
        {"body_contains": {"x": 1}},
    ],
)
def test_from_dict_rejects_mistyped_filters(filters):
    with pytest.raises(InvalidRequest):
        ServiceConfig.from_dict({"filters": filters})


@pytest.mark.parametrize(
    "connection",
    [{"retries": "many"}, {"retries": -1}, {"options": "ro"}, {"options": True}],
)
def test_from_dict_rejects_bad_connection_numbers(connection):
    with pytest.raises(InvalidRequest):
        ServiceConfig.from_dict({"connection": connection})


@pytest.mark.parametrize(
    "overrides",
    [{"unread": "yes"}, {"answered": 0}, {"from": 5}, {"body_contains": b"raw"}],
)
def test_merge_rejects_mistyped_filters(overrides):
    with pytest.raises(InvalidRequest):
        ServiceConfig().merge(overrides)


def test_boolean_filters_still_compile():
    config = ServiceConfig.from_dict({"filters": {"unread": False, "answered": None, "to": "x@example.com"}})
    assert config.to_imap_criteria() == 'SEEN TO "x@example.com"'
