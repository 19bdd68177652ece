"""
Edit flows: every attempt loads fresh code, locates the target, composes the
message, assembles the page and submits it. An edit conflict restarts the
whole attempt; offsets are never reused across revisions.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from talkutils.comment_composer import compose_comment
from talkutils.config import log_event
from talkutils.errors import ApiError
from talkutils.models import Comment, PageCode, Section
from talkutils.page_assembler import assemble
from talkutils.source_matcher import (
    find_reply_place,
    guess_new_topic_placement,
    locate_comment,
    locate_section,
    section_reply_indentation,
)

MAX_HEADING_LEVEL = 6


# --- Pure steps: code in, code out ---

def prepare_reply(code: str, comment: Comment, text: str, config, codec,
                  now: Optional[datetime] = None) -> str:
    match = locate_comment(code, comment, config, codec)
    position, reply_indentation = find_reply_place(code, match, config, codec)
    composed = compose_comment(text, "reply", config, codec, target_prefix=reply_indentation, now=now)
    return assemble(code, match, "reply", composed.text, config, composed.masker,
                    position=position, codec=codec)


def prepare_reply_in_section(code: str, section: Section, text: str, config, codec,
                             now: Optional[datetime] = None, container_list_type: Optional[str] = None) -> str:
    match = locate_section(code, section, config, codec)
    indentation = section_reply_indentation(match, section, code, config, codec, container_list_type)
    composed = compose_comment(text, "replyInSection", config, codec, target_prefix=indentation, now=now)
    return assemble(code, match, "replyInSection", composed.text, config, composed.masker, codec=codec)


def prepare_add_subsection(code: str, section: Section, headline: str, text: str, config, codec,
                           now: Optional[datetime] = None) -> str:
    match = locate_section(code, section, config, codec)
    level = min(match.heading_level + 1, MAX_HEADING_LEVEL)
    composed = compose_comment(text, "addSubsection", config, codec, headline=headline, level=level, now=now)
    return assemble(code, match, "addSubsection", composed.text, config, composed.masker, codec=codec)


def prepare_add_section(code: str, headline: str, text: str, config, codec,
                        now: Optional[datetime] = None) -> str:
    on_top, _ = guess_new_topic_placement(code, config, codec)
    composed = compose_comment(text, "addSection", config, codec, headline=headline, now=now)
    return assemble(code, None, "addSection", composed.text, config, composed.masker,
                    new_topic_on_top=on_top, codec=codec)


def prepare_edit(code: str, comment: Comment, text: str, config, codec,
                 headline: Optional[str] = None) -> str:
    match = locate_comment(code, comment, config, codec)
    opening_code = ""
    if match.heading_code is not None:
        heading_end = match.heading_start_pos + len(match.heading_code)
        opening_code = code[heading_end:match.start_pos]
        if headline is None:
            headline = match.headline_code
    else:
        headline = None
    composed = compose_comment(
        text, "edit", config, codec,
        target_prefix=match.indentation_characters,
        headline=headline,
        level=match.heading_level,
        signature=match.signature_code,
        small=match.in_small_font,
        opening_code=opening_code,
    )
    if match.heading_code is not None:
        match = replace(match, line_start_pos=match.heading_start_pos)
    return assemble(code, match, "edit", composed.text, config, composed.masker, codec=codec)


def prepare_delete(code: str, comment: Comment, config, codec) -> str:
    match = locate_comment(code, comment, config, codec)
    section_match = None
    if match.is_opening_section and comment.section is not None:
        section_match = locate_section(code, comment.section, config, codec)
    return assemble(code, match, "delete", config=config, section_match=section_match, codec=codec)


# --- Submission ---

def make_summary(action: str, section: Optional[Section] = None, author: Optional[str] = None) -> str:
    verbs = {
        "reply": f"Reply to {author}" if author else "Reply",
        "replyInSection": "Reply",
        "addSubsection": "New subsection",
        "addSection": "New section",
        "edit": "Edit comment",
        "delete": "Delete comment",
    }
    verb = verbs.get(action, action)
    if section is not None and action != "addSection":
        return f"/* {section.headline} */ {verb}"
    return verb


def run_with_conflict_retries(config, attempt: Callable[[], str]) -> str:
    """Run ``attempt`` again from scratch after an edit conflict."""
    tries = config.max_conflict_retries + 1
    for number in range(1, tries + 1):
        try:
            return attempt()
        except ApiError as e:
            if e.code != "editconflict" or number == tries:
                raise
            log_event(logging.WARNING, "Edit conflict, reloading the page", attempt=number, retries=tries - 1)
    raise AssertionError("unreachable")


def _load_prepare_submit(api, title: str, prepare: Callable[[PageCode], str], summary: str, config) -> str:
    def attempt():
        page = api.load_code(title)
        new_code = prepare(page)
        api.submit_edit(page.title, new_code, summary, page.base_timestamp, page.query_timestamp)
        return new_code

    return run_with_conflict_retries(config, attempt)


def handle_reply(api, title: str, comment: Comment, text: str, config, codec, summary: Optional[str] = None) -> str:
    summary = summary or make_summary("reply", comment.section, comment.author)
    return _load_prepare_submit(
        api, title, lambda page: prepare_reply(page.content, comment, text, config, codec), summary, config
    )


def handle_reply_in_section(api, title: str, section: Section, text: str, config, codec,
                            summary: Optional[str] = None) -> str:
    summary = summary or make_summary("replyInSection", section)
    return _load_prepare_submit(
        api, title, lambda page: prepare_reply_in_section(page.content, section, text, config, codec),
        summary, config,
    )


def handle_add_subsection(api, title: str, section: Section, headline: str, text: str, config, codec,
                          summary: Optional[str] = None) -> str:
    summary = summary or make_summary("addSubsection", section)
    return _load_prepare_submit(
        api, title,
        lambda page: prepare_add_subsection(page.content, section, headline, text, config, codec),
        summary, config,
    )


def handle_add_section(api, title: str, headline: str, text: str, config, codec,
                       summary: Optional[str] = None) -> str:
    summary = summary or f"/* {headline} */ " + make_summary("addSection")
    return _load_prepare_submit(
        api, title, lambda page: prepare_add_section(page.content, headline, text, config, codec), summary, config
    )


def handle_edit(api, title: str, comment: Comment, text: str, config, codec,
                summary: Optional[str] = None, headline: Optional[str] = None) -> str:
    summary = summary or make_summary("edit", comment.section)
    return _load_prepare_submit(
        api, title, lambda page: prepare_edit(page.content, comment, text, config, codec, headline=headline),
        summary, config,
    )


def handle_delete(api, title: str, comment: Comment, config, codec, summary: Optional[str] = None) -> str:
    summary = summary or make_summary("delete", comment.section)
    return _load_prepare_submit(
        api, title, lambda page: prepare_delete(page.content, comment, config, codec), summary, config
    )
