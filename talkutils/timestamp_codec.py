"""
Timestamp parsing and formatting driven by a MediaWiki-style date format
(``H:i, j F Y``) and a table of localized month/weekday names.
"""

import re
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import List, NamedTuple, Optional, Tuple, Union
from zoneinfo import ZoneInfo

DATE_TOKEN_MESSAGE_NAMES = {
    "xg": [
        "january-gen", "february-gen", "march-gen", "april-gen", "may-gen", "june-gen",
        "july-gen", "august-gen", "september-gen", "october-gen", "november-gen", "december-gen",
    ],
    "D": ["sun", "mon", "tue", "wed", "thu", "fri", "sat"],
    "l": ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"],
    "F": [
        "january", "february", "march", "april", "may_long", "june", "july", "august",
        "september", "october", "november", "december",
    ],
    "M": ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
}

NUMERIC_TOKEN_WIDTHS = {
    "d": "2", "H": "2", "i": "2",
    "j": "1,2", "n": "1,2", "G": "1,2",
    "Y": "4", "xkY": "4",
}

GROUP_TOKENS = {"xg", "d", "j", "D", "l", "F", "M", "n", "Y", "xkY", "G", "H", "i"}

DIR_MARKS = re.compile("[\u200e\u200f]")

UTC = dt_timezone.utc


class ParsedTimestamp(NamedTuple):
    date: datetime
    match: "re.Match"


def split_date_format(date_format: str) -> List[Tuple[str, str]]:
    """
    Split a date format into ``("token", code)`` and ``("literal", text)``
    parts. ``\\`` escapes the next character, ``"..."`` is a literal and an
    unclosed quote is a literal ``"``.
    """
    parts = []
    p = 0
    length = len(date_format)
    while p < length:
        code = date_format[p]
        if code == "x" and p < length - 1:
            p += 1
            code += date_format[p]
            if code == "xk" and p < length - 1:
                p += 1
                code += date_format[p]

        if code == "xx":
            parts.append(("literal", "x"))
        elif code in GROUP_TOKENS:
            parts.append(("token", code))
        elif code == "\\":
            if p < length - 1:
                p += 1
                parts.append(("literal", date_format[p]))
            else:
                parts.append(("literal", "\\"))
        elif code == '"':
            end_quote = date_format.find('"', p + 1) if p < length - 1 else -1
            if end_quote == -1:
                parts.append(("literal", '"'))
            else:
                parts.append(("literal", date_format[p + 1:end_quote]))
                p = end_quote
        else:
            # Unknown x-codes degrade to their last character
            parts.append(("literal", code[-1]))
        p += 1
    return parts


def _lenient_utc(year, month_idx, day, hours, minutes) -> datetime:
    # Overflowing fields roll over the way Date.UTC does (day 32 -> next month)
    year += month_idx // 12
    month_idx %= 12
    return datetime(year, month_idx + 1, 1, tzinfo=UTC) + timedelta(
        days=day - 1, hours=hours, minutes=minutes
    )


def _offset_minutes(date: datetime, zone: Union[str, int, None]) -> float:
    if zone is None or zone == "UTC" or zone == 0:
        return 0
    if isinstance(zone, int):
        return zone
    return date.astimezone(ZoneInfo(zone)).utcoffset().total_seconds() / 60


class TimestampCodec:
    def __init__(self, date_format: str, messages: dict, timezone: Union[str, int] = "UTC",
                 digits: Optional[str] = None, improved_formats: Optional[dict] = None,
                 just_now: str = "just now"):
        self.date_format = date_format
        self.messages = messages
        self.timezone = timezone
        self.digits = digits
        self.improved_formats = improved_formats or {}
        self.just_now = just_now

        self.parts = split_date_format(date_format)
        self.matching_groups = [value for kind, value in self.parts if kind == "token"]
        self.utc_string = messages.get("timezone-utc", "UTC")

        self.main_part_pattern = self._build_main_part_pattern()
        self.timezone_pattern = (
            r"\((?:" + re.escape(self.utc_string) + r"|[A-Z]{1,5}|[+-]\d{0,4})\)"
        )
        self.timestamp_pattern = self.main_part_pattern + " +" + self.timezone_pattern
        self.timestamp_regexp = re.compile(self.timestamp_pattern)
        self.no_timezone_regexp = re.compile(self.main_part_pattern)
        self.timezone_regexp = re.compile(self.timezone_pattern)
        # \b only works for word characters, hence the alternative space
        self.parse_regexp = re.compile(
            r"^([\s\S]*(?:^|[^=])(?:\b| ))(" + self.timestamp_pattern + ")(?![\"»])"
        )

    @classmethod
    def from_config(cls, config) -> "TimestampCodec":
        return cls(
            config.date_format,
            config.messages,
            timezone=config.timezone,
            digits=config.digits,
            improved_formats=config.improved_formats,
            just_now=config.just_now,
        )

    def names(self, code: str) -> List[str]:
        return [self.messages.get(name, name) for name in DATE_TOKEN_MESSAGE_NAMES[code]]

    def _build_main_part_pattern(self) -> str:
        digit = "[" + re.escape(self.digits) + "]" if self.digits else "[0-9]"
        pattern = ""
        for kind, value in self.parts:
            if kind == "literal":
                pattern += re.escape(value)
            elif value in DATE_TOKEN_MESSAGE_NAMES:
                pattern += "(" + "|".join(re.escape(name) for name in self.names(value)) + ")"
            else:
                pattern += "(" + digit + "{" + NUMERIC_TOKEN_WIDTHS[value] + "})"
        return pattern

    def _untransform_digits(self, text: str) -> int:
        if self.digits:
            text = "".join(str(self.digits.index(ch)) if ch in self.digits else ch for ch in text)
        return int(text)

    def _transform_digits(self, text: str) -> str:
        if not self.digits:
            return text
        return "".join(self.digits[int(ch)] if ch.isdigit() else ch for ch in text)

    # --- Parsing ---

    def date_from_match(self, match, timezone=None, group_offset: int = 3) -> datetime:
        zone = self.timezone if timezone is None else timezone
        year = 1900
        month_idx = 0
        day = 0
        hours = 0
        minutes = 0
        for i, code in enumerate(self.matching_groups):
            text = match.group(i + group_offset)
            if code in ("xg", "F", "M"):
                names = self.names(code)
                month_idx = names.index(text) if text in names else -1
            elif code in ("d", "j"):
                day = self._untransform_digits(text)
            elif code in ("D", "l"):
                pass  # day of the week carries no information
            elif code == "n":
                month_idx = self._untransform_digits(text) - 1
            elif code == "Y":
                year = self._untransform_digits(text)
            elif code == "xkY":
                year = self._untransform_digits(text) - 543
            elif code in ("G", "H"):
                hours = self._untransform_digits(text)
            elif code == "i":
                minutes = self._untransform_digits(text)

        date = _lenient_utc(year, month_idx, day, hours, minutes)
        return date - timedelta(minutes=_offset_minutes(date, zone))

    def parse(self, timestamp: str, timezone=None) -> Optional[ParsedTimestamp]:
        # Direction marks sneak in when timestamps are copied from the history
        adjusted = DIR_MARKS.sub(" ", timestamp)
        match = self.parse_regexp.match(adjusted)
        if not match:
            return None
        return ParsedTimestamp(self.date_from_match(match, timezone), match)

    # --- Formatting ---

    def timezone_postfix(self, offset_minutes: float) -> str:
        postfix = f" ({self.utc_string}"
        if offset_minutes:
            hours = offset_minutes / 60
            if hours == int(hours):
                hours = int(hours)
            postfix += ("+" if hours > 0 else "-") + str(abs(hours))
        return postfix + ")"

    def _localize(self, date: datetime, timezone) -> Tuple[datetime, float]:
        zone = self.timezone if timezone is None else timezone
        if date.tzinfo is None:
            date = date.replace(tzinfo=UTC)
        offset = _offset_minutes(date, zone)
        if isinstance(zone, str) and zone != "UTC":
            return date.astimezone(ZoneInfo(zone)), offset
        return date.astimezone(UTC) + timedelta(minutes=offset), offset

    def render(self, local: datetime, date_format: Optional[str] = None) -> str:
        """Write ``local``'s fields (already shifted to the wanted zone) using a date format."""
        parts = self.parts if date_format is None else split_date_format(date_format)
        weekday = (local.weekday() + 1) % 7  # Sunday first
        out = ""
        for kind, value in parts:
            if kind == "literal":
                out += value
            elif value in ("xg", "F", "M"):
                out += self.names(value)[local.month - 1]
            elif value in ("D", "l"):
                out += self.names(value)[weekday]
            elif value == "d":
                out += self._transform_digits(f"{local.day:02d}")
            elif value == "j":
                out += self._transform_digits(str(local.day))
            elif value == "n":
                out += self._transform_digits(str(local.month))
            elif value == "Y":
                out += self._transform_digits(str(local.year))
            elif value == "xkY":
                out += self._transform_digits(str(local.year + 543))
            elif value == "G":
                out += self._transform_digits(str(local.hour))
            elif value == "H":
                out += self._transform_digits(f"{local.hour:02d}")
            elif value == "i":
                out += self._transform_digits(f"{local.minute:02d}")
        return out

    def format(self, date: datetime, style: str = "default", add_timezone: bool = False,
               now: Optional[datetime] = None, timezone=None) -> str:
        if style == "relative":
            return self.format_relative(date, now)

        local, offset = self._localize(date, timezone)
        if style == "improved":
            text = self.render(local, self._improved_format(local, now, timezone))
        else:
            text = self.render(local)
        if add_timezone:
            text += self.timezone_postfix(offset)
        return text

    def _improved_format(self, local: datetime, now: Optional[datetime], timezone) -> str:
        now_local, _ = self._localize(now or datetime.now(UTC), timezone)
        yesterday = now_local - timedelta(days=1)
        if local.date() == now_local.date():
            key = "today"
        elif local.date() == yesterday.date():
            key = "yesterday"
        elif local.year == now_local.year:
            key = "currentyear"
        else:
            key = "other"
        return self.improved_formats.get(key, self.date_format)

    def format_relative(self, date: datetime, now: Optional[datetime] = None) -> str:
        """Coarse duration rounded down: ``5 minutes ago``, ``in 2 days``."""
        now = now or datetime.now(UTC)
        if date.tzinfo is None:
            date = date.replace(tzinfo=UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        seconds = (now - date).total_seconds()
        if 0 <= seconds < 60:
            return self.just_now

        future = seconds < 0
        seconds = abs(seconds)
        units = (
            (365 * 86400, "year"),
            (30 * 86400, "month"),
            (86400, "day"),
            (3600, "hour"),
            (60, "minute"),
            (1, "second"),
        )
        value, name = 0, "second"
        for size, unit in units:
            if seconds >= size:
                value, name = int(seconds // size), unit
                break
        label = f"{value} {name}{'' if value == 1 else 's'}"
        return f"in {label}" if future else f"{label} ago"
