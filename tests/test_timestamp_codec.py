from datetime import datetime, timedelta

import pytest

from talkutils.config import DEFAULT_MESSAGES
from talkutils.timestamp_codec import UTC, TimestampCodec, split_date_format


def test_parse_utc_timestamp(codec):
    parsed = codec.parse("23:29, 10 May 2019 (UTC)")
    assert parsed is not None
    assert parsed.date == datetime(2019, 5, 10, 23, 29, tzinfo=UTC)


def test_parse_finds_timestamp_at_end_of_signature(codec):
    parsed = codec.parse("[[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)")
    assert parsed.date == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


def test_parse_returns_none_without_timestamp(codec):
    assert codec.parse("no date here") is None


def test_direction_marks_are_ignored(codec):
    parsed = codec.parse("\u200e10:00, 1 January 2024 (UTC)")
    assert parsed is not None
    assert parsed.date == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


def test_day_overflow_rolls_into_next_month(codec):
    parsed = codec.parse("10:00, 32 January 2024 (UTC)")
    assert parsed.date == datetime(2024, 2, 1, 10, 0, tzinfo=UTC)


def test_named_timezone_is_subtracted():
    codec = TimestampCodec("H:i, j F Y", DEFAULT_MESSAGES, timezone="Europe/Berlin")
    winter = codec.parse("10:00, 1 January 2024 (CET)")
    summer = codec.parse("10:00, 1 July 2024 (CEST)")
    assert winter.date == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
    assert summer.date == datetime(2024, 7, 1, 8, 0, tzinfo=UTC)


def test_numeric_offset_timezone():
    codec = TimestampCodec("H:i, j F Y", DEFAULT_MESSAGES, timezone=180)
    assert codec.parse("10:00, 1 January 2024 (+03)").date == datetime(2024, 1, 1, 7, 0, tzinfo=UTC)


def test_thai_solar_year():
    codec = TimestampCodec("H:i, j n xkY", DEFAULT_MESSAGES)
    assert codec.parse("10:00, 1 1 2567 (UTC)").date == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


def test_custom_digits():
    digits = "٠١٢٣٤٥٦٧٨٩"
    codec = TimestampCodec("H:i, j F Y", DEFAULT_MESSAGES, digits=digits)
    parsed = codec.parse("١٠:٠٥, ٣ March ٢٠٢٤ (UTC)")
    assert parsed.date == datetime(2024, 3, 3, 10, 5, tzinfo=UTC)
    assert codec.format(parsed.date) == "١٠:٠٥, ٣ March ٢٠٢٤"


def test_split_date_format_handles_quotes_and_escapes():
    assert split_date_format('H:i "at" \\j') == [
        ("token", "H"), ("literal", ":"), ("token", "i"), ("literal", " "),
        ("literal", "at"), ("literal", " "), ("literal", "j"),
    ]
    assert split_date_format('"ab') == [("literal", '"'), ("literal", "a"), ("literal", "b")]


def test_format_default(codec):
    date = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    assert codec.format(date) == "10:00, 1 January 2024"
    assert codec.format(date, add_timezone=True) == "10:00, 1 January 2024 (UTC)"


def test_format_with_offset_postfix():
    codec = TimestampCodec("H:i, j F Y", DEFAULT_MESSAGES, timezone=90)
    date = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    assert codec.format(date, add_timezone=True) == "11:30, 1 January 2024 (UTC+1.5)"


def test_format_improved(codec):
    now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert codec.format(datetime(2024, 1, 1, 10, 0, tzinfo=UTC), style="improved", now=now) == "Today, 10:00"
    assert codec.format(datetime(2023, 12, 31, 10, 0, tzinfo=UTC), style="improved", now=now) == "Yesterday, 10:00"
    assert codec.format(datetime(2022, 5, 3, 8, 0, tzinfo=UTC), style="improved", now=now) == "3 May 2022, 08:00"


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=30), "just now"),
    (timedelta(0), "just now"),
    (timedelta(hours=2, minutes=59), "2 hours ago"),
    (timedelta(minutes=1), "1 minute ago"),
    (-timedelta(days=1, hours=3), "in 1 day"),
])
def test_format_relative(codec, delta, expected):
    now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert codec.format(now - delta, style="relative", now=now) == expected


def test_format_relative_accepts_naive_dates(codec):
    now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert codec.format(datetime(2024, 1, 1, 11, 0), style="relative", now=now) == "1 hour ago"


def test_round_trip_through_format_and_parse(codec):
    date = datetime(2021, 11, 7, 4, 3, tzinfo=UTC)
    assert codec.parse(codec.format(date, add_timezone=True)).date == date
