from datetime import datetime

import pytest

from conftest import TOPIC_CODE
from talkutils.errors import ParseError
from talkutils.models import Comment, Section
from talkutils.source_matcher import (
    find_reply_place,
    locate_comment,
    mask_closed_discussions,
)
from talkutils.timestamp_codec import UTC


def _comment(codec, author, timestamp, indentation, text, index, previous=(), section=None, **kwargs):
    return Comment(
        author=author,
        timestamp=timestamp,
        date=codec.parse(timestamp).date,
        indentation_characters=indentation,
        text=text,
        index=index,
        previous_comments=list(previous),
        section=section,
        **kwargs,
    )


def test_reply_comment_is_located(config, codec, topic):
    _, _, alice, _ = topic
    match = locate_comment(TOPIC_CODE, alice, config, codec)
    assert match.indentation_characters == ":"
    assert match.code == "Answer."
    assert match.signature_code == " -- Alice 10:00, 1 January 2024 (UTC)"
    assert match.line_start_pos == TOPIC_CODE.index(": Answer.")
    assert match.start_pos == TOPIC_CODE.index("Answer.")
    assert match.score > 2.5
    assert "identity" in match.matched_fields


def test_opening_comment_includes_heading(config, codec, topic):
    _, bob, _, _ = topic
    match = locate_comment(TOPIC_CODE, bob, config, codec)
    assert match.is_opening_section
    assert match.heading_start_pos == 0
    assert match.line_start_pos == 0
    assert match.headline_code == "Topic"
    assert match.heading_level == 2
    assert match.code == "Question?"


def test_locating_twice_gives_the_same_result(config, codec, topic):
    _, _, _, carol = topic
    assert locate_comment(TOPIC_CODE, carol, config, codec) == locate_comment(TOPIC_CODE, carol, config, codec)


def test_unknown_comment_raises(config, codec, topic):
    section, _, _, _ = topic
    ghost = _comment(codec, "Dave", "12:00, 1 January 2024 (UTC)", ":", "Never said", 3, section=section)
    with pytest.raises(ParseError) as info:
        locate_comment(TOPIC_CODE, ghost, config, codec)
    assert info.value.key == "parse.locateComment"


def test_reply_indentation_follows_deeper_thread(config, codec, topic):
    _, _, alice, _ = topic
    match = locate_comment(TOPIC_CODE, alice, config, codec)
    assert match.reply_indentation_characters == "::"
    position, indentation = find_reply_place(TOPIC_CODE, match, config, codec)
    assert position == len(TOPIC_CODE)
    assert indentation == "::"


def test_reply_to_last_comment_goes_deeper(config, codec, topic):
    _, _, _, carol = topic
    match = locate_comment(TOPIC_CODE, carol, config, codec)
    assert find_reply_place(TOPIC_CODE, match, config, codec) == (len(TOPIC_CODE), ":::")


def test_reply_place_stops_before_next_thread(config, codec):
    code = (
        "== T ==\n"
        "Question [[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)\n"
        ": Answer here [[User:Ann|Ann]] 10:00, 1 January 2024 (UTC)\n"
        "Next thread [[User:Carol|Carol]] 11:00, 1 January 2024 (UTC)\n"
    )
    section = Section("T")
    bob = _comment(codec, "Bob", "09:00, 1 January 2024 (UTC)", "", "Question", 0, section=section,
                   is_opening_section=True, follows_heading=True)
    ann = _comment(codec, "Ann", "10:00, 1 January 2024 (UTC)", ":", "Answer here", 1, [bob], section=section)
    match = locate_comment(code, ann, config, codec)
    position, indentation = find_reply_place(code, match, config, codec)
    assert position == code.index("Next thread")
    assert indentation == "::"


def test_reply_into_closed_discussion_is_refused(config, codec):
    code = (
        "== T ==\n"
        "Question [[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)\n"
        "{{Archive top}}\n"
        ": Closed reply [[User:Ann|Ann]] 10:00, 1 January 2024 (UTC)\n"
        "{{Archive bottom}}\n"
    )
    section = Section("T")
    bob = _comment(codec, "Bob", "09:00, 1 January 2024 (UTC)", "", "Question", 0, section=section,
                   is_opening_section=True, follows_heading=True)
    ann = _comment(codec, "Ann", "10:00, 1 January 2024 (UTC)", ":", "Closed reply", 1, [bob], section=section)
    match = locate_comment(code, ann, config, codec)
    with pytest.raises(ParseError) as info:
        find_reply_place(code, match, config, codec)
    assert info.value.code == "closed"


def test_heading_inside_reply_gap_is_refused(config, codec):
    code = (
        "== T ==\n"
        "Question [[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)\n"
        ": {{Archive top}}\n"
        "== Old ==\n"
        "Closed text\n"
        "{{Archive bottom}}\n"
    )
    bob = _comment(codec, "Bob", "09:00, 1 January 2024 (UTC)", "", "Question", 0, section=Section("T"),
                   is_opening_section=True, follows_heading=True)
    match = locate_comment(code, bob, config, codec)
    with pytest.raises(ParseError) as info:
        find_reply_place(code, match, config, codec)
    assert info.value.code == "locateComment"


def test_reply_right_before_outdent_is_refused(config, codec):
    code = (
        "== T ==\n"
        "Question [[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)\n"
        "{{od}} Next [[User:Carol|Carol]] 11:00, 1 January 2024 (UTC)\n"
    )
    bob = _comment(codec, "Bob", "09:00, 1 January 2024 (UTC)", "", "Question", 0, section=Section("T"),
                   is_opening_section=True, follows_heading=True)
    match = locate_comment(code, bob, config, codec)
    with pytest.raises(ParseError) as info:
        find_reply_place(code, match, config, codec)
    assert info.value.code == "findPlace"


def test_closed_discussions_are_masked_in_place(config):
    code = "before\n{{Archive top}}\n: x\n{{Archive bottom}}\nafter"
    masked = mask_closed_discussions(code, config)
    assert len(masked) == len(code)
    assert masked.startswith("before\n")
    assert masked.endswith("\x02\nafter")
    assert "Archive" not in masked


def test_unsigned_template_comment_is_located(config, codec):
    code = (
        "== T ==\n"
        "Question [[User:Bob|Bob]] 09:00, 1 January 2024 (UTC)\n"
        ": Forgot to sign {{Unsigned|Ann|10:00, 1 January 2024 (UTC)}}\n"
    )
    section = Section("T")
    bob = _comment(codec, "Bob", "09:00, 1 January 2024 (UTC)", "", "Question", 0, section=section,
                   is_opening_section=True, follows_heading=True)
    ann = Comment(
        author="Ann",
        timestamp="10:00, 1 January 2024",  # as shown by the template, without the zone
        date=datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
        indentation_characters=":",
        text="Forgot to sign",
        index=1,
        previous_comments=[bob],
        section=section,
    )
    match = locate_comment(code, ann, config, codec)
    assert match.code == "Forgot to sign"
    assert match.signature_code.strip().startswith("{{Unsigned")
