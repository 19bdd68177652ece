"""
Splices composed code into the page code at a located position. Nothing
outside the spliced range is rewritten, and any doubt about the position
ends in an error instead of a guess.
"""

import re
import logging
from typing import Optional

from talkutils.code_masker import CodeMasker, mask_distracting_code
from talkutils.config import SiteConfig, log_event
from talkutils.errors import EditError, ParseError
from talkutils.models import CommentMatch, SectionMatch
from talkutils.source_matcher import find_reply_place
from talkutils.timestamp_codec import TimestampCodec
from talkutils.wikitext import extract_signatures

ACTIONS = ("reply", "replyInSection", "addSubsection", "addSection", "edit", "delete")

ANY_HEADING_REGEXP = re.compile(r"^(=+).*\1[ \t\x01\x02]*$", re.MULTILINE)


def cleanup_breaks(code: str, config) -> str:
    """Drop ``<br>`` right before or after a block-level tag, where it only adds a blank line."""
    blocks = "|".join(config.popular_not_inline_elements)
    code = re.sub(r"<br ?/?>(\n?)(?=</?(?:" + blocks + r")\b)", r"\1", code, flags=re.IGNORECASE)
    code = re.sub(r"(</(?:" + blocks + r") *>)<br ?/?>", r"\1", code, flags=re.IGNORECASE)
    return code


def _line_end(code: str, index: int) -> int:
    end = code.find("\n", index)
    return len(code) if end == -1 else end + 1


def _delete_comment(code: str, match: CommentMatch, section_match: Optional[SectionMatch],
                    config, codec) -> str:
    if match.is_opening_section:
        if section_match is None:
            raise ParseError("locateSection")
        if len(extract_signatures(section_match.code, config, codec)) > 1:
            raise EditError("hasReplies")
        return code[:section_match.start_pos] + code[section_match.content_end_pos:]

    # 1. A deeper indented line right after the comment is a reply to it
    indentation_length = len(match.indentation_characters)
    replies = re.match(r".+\n+[:*#]{" + str(indentation_length + 1) + r",}", code[match.end_pos:])
    if replies:
        raise EditError("hasReplies")

    # 2. The comment goes away together with the rest of its last line
    return code[:match.line_start_pos] + code[_line_end(code, match.signature_end_pos):]


def _add_section(code: str, payload: str, new_topic_on_top: bool) -> str:
    if new_topic_on_top:
        # Headings inside comments don't count
        first_heading = ANY_HEADING_REGEXP.search(mask_distracting_code(code))
        if first_heading:
            before = code[:first_heading.start()]
            return before + payload + "\n" + code[first_heading.start():]
        before = code + "\n" if code and not code.endswith("\n") else code
        return before + payload

    before = code.rstrip()
    return before + ("\n\n" if before else "") + payload


def assemble(page_code: str, match, action: str, payload: str = "",
             config: Optional[SiteConfig] = None, masker: Optional[CodeMasker] = None,
             new_topic_on_top: bool = False, position: Optional[int] = None,
             section_match: Optional[SectionMatch] = None, codec=None) -> str:
    """
    Return the new page code after ``action`` at ``match``.

    ``match`` is a CommentMatch for ``reply``, ``edit`` and ``delete``, a
    SectionMatch for ``replyInSection`` and ``addSubsection`` and is ignored
    for ``addSection``. ``position`` is the reply offset computed by
    ``find_reply_place``; it is computed here when not given.
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}")
    config = config or SiteConfig()
    codec = codec or TimestampCodec.from_config(config)
    if page_code is None:
        raise ParseError("noCode")

    if masker is not None:
        payload = masker.unmask(payload)
    payload = cleanup_breaks(payload, config)

    if action == "reply":
        if position is None:
            position, _ = find_reply_place(page_code, match, config, codec)
        new_code = page_code[:position] + payload + page_code[position:]

    elif action == "replyInSection":
        index = match.first_chunk_content_end_pos
        new_code = page_code[:index] + payload + page_code[index:]

    elif action == "addSubsection":
        before = page_code[:match.content_end_pos].rstrip("\n") + "\n\n"
        after = page_code[match.content_end_pos:].lstrip("\n")
        new_code = before + payload + ("\n" + after if after else "")

    elif action == "addSection":
        new_code = _add_section(page_code, payload, new_topic_on_top)

    elif action == "edit":
        new_code = page_code[:match.line_start_pos] + payload + page_code[match.signature_end_pos:]

    else:
        new_code = _delete_comment(page_code, match, section_match, config, codec)

    log_event(logging.DEBUG, "Page code assembled", action=action,
              old_length=len(page_code), new_length=len(new_code))
    return new_code
