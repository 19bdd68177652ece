"""
Site configuration, logging setup and the structured logging helper.

The configuration is an immutable value passed explicitly into every engine
entry point. It is built from defaults, an optional JSON file and
environment variables (``.env`` files are honored through python-dotenv).
"""

import os
import json
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple, Union

from dotenv import load_dotenv

from talkutils.rules import (
    KEEP_IN_ENDING,
    STRIP_BEGINNING,
    PatternRule,
    rule_from_value,
)

logger = logging.getLogger("talkutils")


def setup_logging(level: Optional[str] = None):
    level_name = (level or os.getenv("LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def log_event(level: int, message: str, **data):
    """Lightweight structured logging helper."""
    try:
        serialized = " | ".join(f"{k}={v}" for k, v in data.items())
        logger.log(level, f"{message}{' | ' + serialized if serialized else ''}")
    except Exception:
        logger.log(level, message)


# English content-language messages used by the timestamp grammar
DEFAULT_MESSAGES = {
    "january": "January", "february": "February", "march": "March", "april": "April",
    "may_long": "May", "june": "June", "july": "July", "august": "August",
    "september": "September", "october": "October", "november": "November", "december": "December",
    "jan": "Jan", "feb": "Feb", "mar": "Mar", "apr": "Apr", "may": "May", "jun": "Jun",
    "jul": "Jul", "aug": "Aug", "sep": "Sep", "oct": "Oct", "nov": "Nov", "dec": "Dec",
    "january-gen": "January", "february-gen": "February", "march-gen": "March",
    "april-gen": "April", "may-gen": "May", "june-gen": "June", "july-gen": "July",
    "august-gen": "August", "september-gen": "September", "october-gen": "October",
    "november-gen": "November", "december-gen": "December",
    "sun": "Sun", "mon": "Mon", "tue": "Tue", "wed": "Wed", "thu": "Thu", "fri": "Fri", "sat": "Sat",
    "sunday": "Sunday", "monday": "Monday", "tuesday": "Tuesday", "wednesday": "Wednesday",
    "thursday": "Thursday", "friday": "Friday", "saturday": "Saturday",
    "timezone-utc": "UTC",
}

DEFAULT_IMPROVED_FORMATS = {
    "today": '"Today", H:i',
    "yesterday": '"Yesterday", H:i',
    "currentyear": "j F, H:i",
    "other": "j F Y, H:i",
}

DEFAULT_KEEP_IN_SECTION_ENDING = (
    PatternRule("trailing-comments", r"\n{2,}(?:<!--[\s\S]*?-->\s*)+$", KEEP_IN_ENDING),
    PatternRule(
        "section-tags",
        r"\n+(?:<!--[\s\S]*?-->\s*)*</?(?:section|onlyinclude)(?: [\w ]+(?:=[^<>]+?)?)? */?>\s*(?:<!--[\s\S]*?-->\s*)*$",
        KEEP_IN_ENDING,
        True,
    ),
    PatternRule("noinclude", r"\n+<noinclude>([\s\S]*?)</noinclude>\s*$", KEEP_IN_ENDING, True),
)

DEFAULT_SIGNATURE_PREFIX = (
    r"(?:\s[-–−—―]+\xa0?[A-Z][A-Za-z\-_]*)?(?:\s+>+)?"
    r"(?:[·•\-‑–−—―─~⁓/→⇒\s\u200d\u200e\u200f\u2060]|&\w+;|&#\d+;)*(?:\s+\()?$"
)

POPULAR_INLINE_ELEMENTS = (
    "a", "abbr", "b", "big", "cite", "code", "del", "dfn", "em", "font", "i", "ins", "kbd",
    "mark", "q", "s", "samp", "small", "span", "strike", "strong", "sub", "sup", "tt", "u", "var",
)

POPULAR_NOT_INLINE_ELEMENTS = (
    "blockquote", "caption", "center", "dd", "div", "dl", "dt", "figure", "figcaption", "form",
    "h1", "h2", "h3", "h4", "h5", "h6", "hr", "li", "ol", "p", "pre", "section", "table", "tbody",
    "td", "tfoot", "th", "thead", "tr", "ul",
)


@dataclass(frozen=True)
class SiteConfig:
    # Timestamps
    date_format: str = "H:i, j F Y"
    messages: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MESSAGES))
    timezone: Union[str, int] = "UTC"
    digits: Optional[str] = None
    timestamp_style: str = "default"
    improved_formats: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMPROVED_FORMATS))
    just_now: str = "just now"

    # Indentation
    indentation_char_mode: str = "mimic"
    default_indentation_char: str = ":"
    space_after_indentation_chars: bool = True

    # Signatures
    signature_prefix_pattern: Optional[str] = DEFAULT_SIGNATURE_PREFIX
    signature_ending_pattern: Optional[str] = r" \(talk\)$"
    user_namespaces: Tuple[str, ...] = ("User", "User talk", "U", "UT")
    contributions_pages: Tuple[str, ...] = ("Special:Contributions",)
    plain_text_signatures: bool = True
    user_signature: str = " ~~~~"
    posted_at_marker: bool = False

    # Templates and markers
    paragraph_templates: Tuple[str, ...] = ("pb", "Paragraph break")
    outdent_templates: Tuple[str, ...] = ("outdent", "od")
    clear_templates: Tuple[str, ...] = ("Clear", "Clr", "-")
    reflist_talk_templates: Tuple[str, ...] = ("Reflist-talk", "Reftalk")
    unsigned_templates: Tuple[str, ...] = ("Unsigned", "Unsigned IP", "Unsigned2")
    closed_discussion_templates: Tuple[Tuple[str, ...], Tuple[str, ...]] = (
        ("Closed", "Archive top", "Discussion top", "Hat", "Atop"),
        ("Archive bottom", "Discussion bottom", "Hab", "Abot"),
    )
    no_signature_classes: Tuple[str, ...] = ("mw-notalk", "cd-noSignature")
    file_namespaces: Tuple[str, ...] = ("File", "Image")
    keep_in_section_ending: Tuple[PatternRule, ...] = DEFAULT_KEEP_IN_SECTION_ENDING
    bad_comment_beginnings: Tuple[PatternRule, ...] = ()
    popular_inline_elements: Tuple[str, ...] = POPULAR_INLINE_ELEMENTS
    popular_not_inline_elements: Tuple[str, ...] = POPULAR_NOT_INLINE_ELEMENTS

    # Page layout
    new_topics_on_top: Optional[bool] = None

    # Transport
    api_url: Optional[str] = None
    user_agent: str = "talk-edit/0.1 (+https://www.mediawiki.org/wiki/API:Etiquette)"
    request_timeout: float = 30.0
    max_conflict_retries: int = 2

    def __post_init__(self):
        if self.indentation_char_mode not in ("mimic", "unify"):
            raise ValueError(f"Unknown indentation mode: {self.indentation_char_mode}")
        if self.timestamp_style not in ("default", "improved", "relative"):
            raise ValueError(f"Unknown timestamp style: {self.timestamp_style}")

    def with_overrides(self, **changes) -> "SiteConfig":
        return replace(self, **_coerce(changes))


ENV_OVERRIDES = {
    "TALK_API_URL": "api_url",
    "TALK_TIMEZONE": "timezone",
    "TALK_DATE_FORMAT": "date_format",
    "TALK_INDENTATION_MODE": "indentation_char_mode",
    "TALK_USER_AGENT": "user_agent",
    "TALK_TIMESTAMP_STYLE": "timestamp_style",
}

_TUPLE_FIELDS = {
    "user_namespaces", "contributions_pages", "paragraph_templates", "outdent_templates",
    "clear_templates", "reflist_talk_templates", "unsigned_templates", "no_signature_classes",
    "file_namespaces", "popular_inline_elements", "popular_not_inline_elements",
}


def _coerce(data: dict) -> dict:
    """Turn JSON values (lists, strings) into the types the dataclass holds."""
    known = {f.name for f in fields(SiteConfig)}
    result = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Unknown config key ignored: %s", key)
            continue
        if key in _TUPLE_FIELDS:
            value = tuple(value)
        elif key == "closed_discussion_templates":
            beginnings, endings = (list(value) + [[], []])[:2]
            value = (tuple(beginnings), tuple(endings))
        elif key == "keep_in_section_ending":
            value = tuple(rule_from_value(v, KEEP_IN_ENDING, i) for i, v in enumerate(value))
        elif key == "bad_comment_beginnings":
            value = tuple(rule_from_value(v, STRIP_BEGINNING, i) for i, v in enumerate(value))
        elif key == "timezone" and isinstance(value, str) and value.lstrip("+-").isdigit():
            value = int(value)
        elif key in ("messages", "improved_formats"):
            merged = dict(DEFAULT_MESSAGES if key == "messages" else DEFAULT_IMPROVED_FORMATS)
            merged.update(value)
            value = merged
        result[key] = value
    return result


def load_config(path: Optional[str] = None, **overrides) -> SiteConfig:
    """
    Build a SiteConfig: defaults < JSON file < environment < explicit overrides.
    """
    load_dotenv()

    data = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            data.update(json.load(f))

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value

    data.update(overrides)
    config = SiteConfig(**_coerce(data))
    log_event(logging.DEBUG, "Config loaded", path=path, mode=config.indentation_char_mode, tz=config.timezone)
    return config
