"""
Wikitext helpers: markup stripping for comparisons, entity decoding, word
overlap and signature extraction.
"""

import re
import html as _html_module
from typing import List, Optional

from talkutils.code_masker import blank_text
from talkutils.models import Signature

# Maximum signature length (255) minus "[[u:a" plus the space before the timestamp
SIGNATURE_SCAN_LIMIT = 251

QUOTE_REGEXP = re.compile(
    r"(<blockquote|<q(?=[\s>]))([\s\S]*?)(</blockquote>|</q>)", re.IGNORECASE
)
HTML_COMMENT_CONTENT_REGEXP = re.compile(r"(<!--)([\s\S]*?)(-->)")
WORD_REGEXP = re.compile(r"[^\W\d_]{2,}")


def hide_html_comments(code: str) -> str:
    """Blank out the contents of ``<!-- -->`` keeping the positions intact."""
    return HTML_COMMENT_CONTENT_REGEXP.sub(
        lambda m: m.group(1) + " " * len(m.group(2)) + m.group(3), code
    )


def remove_wiki_markup(code: str) -> str:
    """
    Strip formatting, links, tags and comments. The result is not meant for
    display, only for comparing texts.
    """
    code = re.sub(r"<!--[\s\S]*?-->", "", code)
    # Displayed text of [[wikilinks]]
    code = re.sub(r"\[\[:?(?:[^|\[\]<>\n]+\|)?(.+?)\]\]", r"\1", code)
    # Template names say nothing about the text
    code = re.sub(r"\{\{:?(?:[^|{}<>\n]+)(?:\|(.+?))?\}\}", lambda m: m.group(1) or "", code)
    # Displayed text of [links]
    code = re.sub(r"\[https?://[^\[\]<>\"\n ]+ *([^\]]*)\]", r"\1", code)
    code = re.sub(r"'''(.+?)'''", r"\1", code)
    code = re.sub(r"''(.+?)''", r"\1", code)
    code = re.sub(r"<br ?/?>", " ", code)
    code = re.sub(r"<\w+(?: [\w ]+?=[^<>]+?| ?/?)>", "", code)
    code = re.sub(r"</\w+ ?>", "", code)
    code = re.sub(r" {2,}", " ", code)
    return code.strip()


def normalize_code(text: str) -> str:
    """Decode the entities used to escape link text and collapse whitespace."""
    for entity, char in (
        ("&lt;", "<"), ("&gt;", ">"), ("&#91;", "["), ("&#93;", "]"),
        ("&#123;", "{"), ("&#124;", "|"), ("&#125;", "}"),
    ):
        text = text.replace(entity, char)
    return re.sub(r"\s+", " ", text)


def decode_html_entities(text: str) -> str:
    if "&" not in text:
        return text
    return _html_module.unescape(text)


def brs_to_newlines(code: str) -> str:
    return re.sub(r"<br ?/?>\n?", "\n", code, flags=re.IGNORECASE)


def calculate_word_overlap(s1: str, s2: str, case_insensitive: bool = False) -> float:
    """
    Share of words (two letters or more) present in both strings among all
    distinct words.
    """
    def words(s):
        found = WORD_REGEXP.findall(s.lower() if case_insensitive else s)
        return list(dict.fromkeys(found))

    arr1, arr2 = words(s1), words(s2)
    if not arr1 or not arr2:
        return 0
    total = len(arr2)
    overlap = 0
    for word in arr1:
        if word in arr2:
            overlap += 1
        else:
            total += 1
    return overlap / total


def generate_page_name_pattern(name: str) -> str:
    """
    Pattern matching a page name with a case-insensitive first letter and
    any run of spaces or underscores in place of spaces.
    """
    if not name:
        return ""
    first = name[0]
    if first.upper() != first.lower():
        first_pattern = "[" + first.upper() + first.lower() + "]"
    else:
        first_pattern = re.escape(first)
    rest = re.sub(r"(?:\\ |_)+", "[ _]+", re.escape(name[1:]))
    return first_pattern + rest


def any_space(name: str) -> str:
    return re.sub(r"(?:\\ |_)+", "[ _]+", re.escape(name))


def normalize_user_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = re.sub(r"[ _]+", " ", name).strip()
    return name[:1].upper() + name[1:]


def capture_user_name_pattern(config) -> str:
    """Pattern with ``author`` (and ``slash``) groups for a link to a user page."""
    namespaces = "|".join(any_space(ns) for ns in config.user_namespaces)
    contributions = "|".join(any_space(page) for page in config.contributions_pages)
    return (
        r"\[\[[ _]*:?(?:\w*:){0,2}(?:(?:" + namespaces + r")[ _]*:[ _]*|"
        r"(?:Special[ _]*:[ _]*Contributions|" + contributions + r")/[ _]*)"
        r"(?P<author>[^|\]/]+)(?P<slash>/)?"
    )


def unsigned_templates_regexp(config):
    if not config.unsigned_templates:
        return None
    names = "|".join(generate_page_name_pattern(name) for name in config.unsigned_templates)
    return re.compile(
        r"(?P<dirty>\{\{ *(?:" + names + r") *\| *(?P<arg1>[^}|]+?) *"
        r"(?:\| *(?P<arg2>[^}]+?) *)?\}\}).*\n"
    )


def extract_signatures(code: str, config, codec) -> List[Signature]:
    """
    Find signatures in wikitext: a user link followed by a timestamp on the
    same line, an unsigned template, or (when enabled) a plain ``-- Name``
    followed by a timestamp. Only basic parsing happens here; the exact
    comment boundaries are refined by the source matcher.
    """
    adjusted = hide_html_comments(code)
    adjusted = QUOTE_REGEXP.sub(lambda m: m.group(1) + blank_text(m.group(2)) + m.group(3), adjusted)

    timestamp = codec.timestamp_pattern
    timestamp_line_regexp = re.compile(
        r"^(?P<sig_line>(?P<before>.*)(?P<ts>" + timestamp + r")(?:\}\}|</small>)?).*(?:\n*|$)",
        re.MULTILINE | re.IGNORECASE,
    )
    user_pattern = capture_user_name_pattern(config)
    signature_regexp = re.compile(
        r"^(?P<before>.*)(?P<dirty>" + user_pattern + r".{1," + str(SIGNATURE_SCAN_LIMIT) + r"}"
        r"(?P<ts_full>(?P<ts>" + timestamp + r")(?:\}\}|</small>)?))",
        re.IGNORECASE,
    )
    author_link_regexp = re.compile(user_pattern, re.IGNORECASE)
    plain_text_regexp = re.compile(
        r"^(?P<before>.*)(?P<dirty>(?:--|—|–|−)\s*"
        r"(?P<author>[^\W\d_][^\[\]|<>{}\n]{0,84}?)\s+"
        r"(?P<ts_full>(?P<ts>" + timestamp + r")(?:\}\}|</small>)?))"
    )

    signatures = []
    for line_match in timestamp_line_regexp.finditer(adjusted):
        line = line_match.group(0)
        line_start = line_match.start()
        next_comment_start = line_match.end()
        match = signature_regexp.match(line)
        if match:
            author = normalize_user_name(decode_html_entities(match.group("author")))
            start = line_start + len(match.group("before"))
            end = line_start + match.end("ts_full")
            # The greedy prefix caught the last user link; take the first one of the same author
            ending_start = max(0, match.start("ts_full") - SIGNATURE_SCAN_LIMIT)
            for link_match in author_link_regexp.finditer(line, ending_start):
                if link_match.group("slash"):
                    continue
                if normalize_user_name(decode_html_entities(link_match.group("author"))) == author:
                    start = line_start + link_match.start()
                    break
            signatures.append(Signature(
                author, match.group("ts"), start, end, code[start:end],
                next_comment_start_index=next_comment_start,
            ))
            continue

        match = plain_text_regexp.match(line) if config.plain_text_signatures else None
        if match:
            author = normalize_user_name(match.group("author"))
            start = line_start + match.start("dirty")
            end = line_start + match.end("ts_full")
            signatures.append(Signature(
                author, match.group("ts"), start, end, code[start:end],
                next_comment_start_index=next_comment_start,
            ))
        else:
            # Kept only to delimit the next comment
            start = line_start + len(line_match.group("before"))
            end = line_start + len(line_match.group("sig_line"))
            signatures.append(Signature(
                None, line_match.group("ts"), start, end, code[start:end],
                next_comment_start_index=next_comment_start,
            ))

    unsigned_regexp = unsigned_templates_regexp(config)
    if unsigned_regexp:
        for match in unsigned_regexp.finditer(adjusted):
            arg1, arg2 = match.group("arg1"), match.group("arg2")
            if codec.no_timezone_regexp.search(arg1):
                author, timestamp_text = arg2, arg1
            elif arg2 and codec.no_timezone_regexp.search(arg2):
                author, timestamp_text = arg1, arg2
            else:
                author, timestamp_text = arg1, None
            start = match.start()
            # The same line may have been taken for a bare timestamp already
            signatures = [
                sig for sig in signatures
                if not (sig.author is None and start <= sig.start_index < match.end())
            ]
            signatures.append(Signature(
                normalize_user_name(decode_html_entities(author or "")) or None,
                timestamp_text,
                start,
                match.end("dirty"),
                match.group("dirty"),
                next_comment_start_index=match.end(),
            ))
        signatures.sort(key=lambda sig: sig.start_index)

    for i, sig in enumerate(signatures):
        sig.comment_start_index = signatures[i - 1].next_comment_start_index if i else 0

    signatures = [sig for sig in signatures if sig.author]
    for i, sig in enumerate(signatures):
        sig.index = i
        if sig.timestamp:
            parsed = codec.parse(sig.timestamp)
            sig.date = parsed.date if parsed else None
    return signatures
