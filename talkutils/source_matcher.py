"""
Finds the code of a rendered section or comment in the current revision of
the page, scores every plausible candidate and works out where a reply or a
new topic goes.

Scores are weighted sums of named signals (see ``SECTION_WEIGHTS`` and
``COMMENT_WEIGHTS``), so the reason a candidate won can be logged.
"""

import re
import logging
from bisect import bisect_left
from dataclasses import replace
from typing import List, NamedTuple, Optional, Tuple

from talkutils.code_masker import INLINE_END, INLINE_START, CodeMasker, mask_distracting_code
from talkutils.config import log_event
from talkutils.errors import ParseError
from talkutils.models import Comment, CommentMatch, Section, SectionMatch, Signature
from talkutils.rules import (
    KEEP_IN_ENDING,
    STRIP_BEGINNING,
    PatternRule,
    measure_kept_ending,
    move_to_signature,
    strip_beginnings,
)
from talkutils.wikitext import (
    calculate_word_overlap,
    extract_signatures,
    generate_page_name_pattern,
    normalize_code,
    normalize_user_name,
    remove_wiki_markup,
)

SECTION_WEIGHTS = {
    "oldest_comment": 1,
    "oldest_comment_overlap": 1,
    "headline": 1,
    "index": 0.5,
    "level_and_ancestors": 0.25,
}
MAX_SECTION_SCORE = 3.75
MIN_SECTION_SCORE = 1

COMMENT_WEIGHTS = {
    "identity": 2,
    "text_overlap": 1,
    "headline": 1,
    "previous_comments": 0.5,
    "index": 0.0001,
}
MIN_COMMENT_SCORE = 2.5

HEADING_REGEXP = re.compile(r"^((=+)(.*)\2[ \t\x01\x02]*)(?:\n|\Z)", re.MULTILINE)
TOPIC_HEADING_REGEXP = re.compile(r"^==[^=].*?==[ \t\x01\x02]*(?:\n|\Z)", re.MULTILINE)
COMMENT_HEADING_REGEXP = re.compile(r"(^[\s\S]*(?:^|\n))((=+)(.*)\3[ \t\x01\x02]*\n)")
NEXT_HEADING_REGEXP = re.compile(r"\n+(=+).*\1[ \t\x01\x02]*(?:\n|\Z)|\Z")
GAP_HEADING_REGEXP = re.compile(r"^(=+).*\1[ \t\x01\x02]*$", re.MULTILINE)
VOTE_PLACEHOLDER_REGEXP = re.compile(r"\n([#*] *\n+)\Z")
LAST_LIST_PLACEHOLDER_REGEXP = re.compile(r"\n([#*]) *\n+\Z")
WIKILINK_TEXT_REGEXP = re.compile(r"\[\[:?(?:[^|\[\]<>\n]+\|)?(.+?)\]\]")
INDENTATION_PATTERN = r"\n*([:*#]+)( *)"


class ScoredCandidate(NamedTuple):
    source: object
    score: float
    matched_fields: Tuple[str, ...]


def _weighted(values: dict, weights: dict) -> Tuple[float, Tuple[str, ...]]:
    score = sum(weights[name] * value for name, value in values.items())
    return score, tuple(name for name, value in values.items() if value > 0)


def _names_pattern(names) -> str:
    return "|".join(generate_page_name_pattern(name) for name in names)


def section_ending_rules(config) -> List[PatternRule]:
    """Code at the end of a section that must stay after anything added to it."""
    rules = list(config.keep_in_section_ending)
    if config.clear_templates:
        rules.append(PatternRule(
            "clear-template",
            r"\n+\{\{ *(?:" + _names_pattern(config.clear_templates) + r") *\}\}\s*$",
            KEEP_IN_ENDING,
        ))
    if config.reflist_talk_templates:
        rules.append(PatternRule(
            "reflist-talk",
            r"\n+\{\{ *(?:" + _names_pattern(config.reflist_talk_templates) + r") *(?:\|.*)?\}\}.*\s*$",
            KEEP_IN_ENDING,
        ))
    return rules


def bad_beginning_rules(config) -> List[PatternRule]:
    """Code at the start of a comment slice that belongs to the page, not to the comment."""
    namespaces = "|".join(re.escape(ns) for ns in config.file_namespaces)
    rules = [PatternRule("file-before-list", r"^\[\[(?:" + namespaces + r"):.+\n+(?=[*:#])",
                         STRIP_BEGINNING, True)]
    rules.extend(config.bad_comment_beginnings)
    if config.clear_templates:
        rules.append(PatternRule(
            "clear-template",
            r"^\{\{ *(?:" + _names_pattern(config.clear_templates) + r") *\}\} *\n+",
            STRIP_BEGINNING,
            True,
        ))
    return rules


# --- Sections ---

def _collect_section_data(match, code: str, adjusted: str) -> SectionMatch:
    full_heading = match.group(1)
    level = len(match.group(2))
    heading_start = match.start()
    escaped = re.escape(full_heading)
    adjusted_from = adjusted[heading_start:]
    code_from = code[heading_start:]

    section_match = (
        re.search(
            r"(" + escaped + r"[\s\S]*?\n)={1," + str(level) + r"}[^=].*=+[ \t\x01\x02]*(?:\n|\Z)",
            adjusted_from,
        )
        or re.search(r"(" + escaped + r"[\s\S]*)", adjusted_from)
    )
    section_code = code_from[section_match.start(1):section_match.end(1)]

    first_chunk_match = (
        re.search(r"(" + escaped + r"[\s\S]*?\n)\n*={1,6}[^=].*=+[ \t\x01\x02]*(?:\n|\Z)", adjusted_from)
        or re.search(r"(" + escaped + r"[\s\S]*)", adjusted_from)
    )
    first_chunk_code = code_from[first_chunk_match.start(1):first_chunk_match.end(1)]

    start = heading_start + section_match.start(1)
    content_start = heading_start + len(match.group(0))
    end = start + len(section_code)
    first_chunk_end = start + len(first_chunk_code)

    return SectionMatch(
        start_pos=start,
        end_pos=end,
        heading_start_pos=heading_start,
        code=section_code,
        score=0.0,
        content_start_pos=content_start,
        content_end_pos=end,
        first_chunk_end_pos=first_chunk_end,
        first_chunk_content_end_pos=first_chunk_end,
        first_chunk_code=first_chunk_code,
        heading_level=level,
        headline=normalize_code(remove_wiki_markup(match.group(3))),
    )


def _apply_section_endings(data: SectionMatch, config) -> SectionMatch:
    rules = section_ending_rules(config)
    content_end = data.content_end_pos - measure_kept_ending(rules, data.code)
    first_chunk_content_end = data.first_chunk_content_end_pos - measure_kept_ending(rules, data.first_chunk_code)

    # An empty list item at the end is a voting placeholder: new votes go above it
    vote = VOTE_PLACEHOLDER_REGEXP.search(data.first_chunk_code)
    if vote:
        first_chunk_content_end -= len(vote.group(1))

    return replace(data, content_end_pos=content_end, first_chunk_content_end_pos=first_chunk_content_end)


def _oldest_signature(signatures: List[Signature]) -> Optional[Signature]:
    dated = [sig for sig in signatures if sig.date is not None]
    if dated:
        return min(dated, key=lambda sig: sig.date)
    return signatures[0] if signatures else None


def score_section_candidate(candidate: SectionMatch, section: Section, index: int,
                            ancestors: List[str], config, codec,
                            in_section_context: bool = False) -> ScoredCandidate:
    """Pure scoring of one heading of the code against the rendered section."""
    target_headline = normalize_code(section.headline).strip()
    target_ancestors = [normalize_code(a) for a in section.ancestors]

    signatures = extract_signatures(candidate.code, config, codec)
    oldest_signature = _oldest_signature(signatures)
    oldest_comment = section.oldest_comment

    if oldest_signature:
        does_oldest_match = bool(
            oldest_comment
            and oldest_comment.timestamp == oldest_signature.timestamp
            and normalize_user_name(oldest_comment.author) == oldest_signature.author
        )
        if oldest_comment:
            comment_code = candidate.code[oldest_signature.comment_start_index:oldest_signature.start_index]
            overlap = calculate_word_overlap(oldest_comment.text, remove_wiki_markup(comment_code))
        else:
            overlap = 0
    else:
        does_oldest_match = oldest_comment is None
        overlap = 0.5 if oldest_comment is None else 0

    if "{{" in section.headline:
        # Headlines with templates render differently from their code
        headline_value = 0.5
    else:
        headline_value = float(candidate.headline == target_headline)

    if in_section_context:
        index_value = 0.0
        ancestors_value = 0.0
    else:
        index_value = float(index == section.index)
        ancestors_value = float(candidate.heading_level == section.level and ancestors == target_ancestors)

    score, matched = _weighted({
        "oldest_comment": float(does_oldest_match),
        "oldest_comment_overlap": overlap,
        "headline": headline_value,
        "index": index_value,
        "level_and_ancestors": ancestors_value,
    }, SECTION_WEIGHTS)
    return ScoredCandidate(candidate, score, matched)


def locate_section(code: Optional[str], section: Section, config, codec,
                   in_section_context: bool = False) -> SectionMatch:
    """
    Find ``section`` in ``code``. With ``in_section_context`` the code is a
    single section fetched on its own, so indexes and ancestors mean nothing.
    """
    if code is None:
        raise ParseError("noCode")

    adjusted = mask_distracting_code(code)
    candidates = []
    stack = []  # (level, headline) of the enclosing headings
    for index, match in enumerate(HEADING_REGEXP.finditer(adjusted)):
        data = _collect_section_data(match, code, adjusted)
        while stack and stack[-1][0] >= data.heading_level:
            stack.pop()
        ancestors = [headline for _, headline in stack]
        stack.append((data.heading_level, data.headline))

        if not data.code or not data.first_chunk_code:
            continue
        scored = score_section_candidate(data, section, index, ancestors, config, codec, in_section_context)
        if scored.score <= MIN_SECTION_SCORE:
            continue
        candidates.append(scored)
        if scored.score >= MAX_SECTION_SCORE:
            break

    if not candidates:
        log_event(logging.INFO, "Section not found", headline=section.headline, index=section.index)
        raise ParseError("locateSection", details={"headline": section.headline})

    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.score > best.score:
            best = candidate

    log_event(logging.DEBUG, "Section located", headline=section.headline, candidates=len(candidates),
              score=best.score, fields=",".join(best.matched_fields))
    source = _apply_section_endings(best.source, config)
    return replace(source, score=best.score, matched_fields=best.matched_fields)


# --- Comments ---

class _CommentSlice:
    """
    The code between the previous signature and this one, trimmed step by
    step down to the comment itself.
    """

    def __init__(self, comment: Comment, signature: Signature, code: str, config, codec):
        self.comment = comment
        self.config = config
        self.codec = codec

        self.index = signature.index
        self.author = signature.author
        self.timestamp = signature.timestamp
        self.start = signature.comment_start_index
        self.end = signature.start_index
        self.signature_end = signature.start_index + len(signature.dirty_code)
        self.signature_dirty_code = signature.dirty_code
        self.signature_code = signature.dirty_code
        self.code = code[self.start:self.end]
        self.line_start = self.start

        self.heading = None
        self.heading_code = None
        self.heading_start = None
        self.heading_level = None
        self.headline_code = None
        self.original_indentation = ""
        self.indentation = ""
        self.indentation_spacing = ""
        self.reply_indentation = ""
        self.in_small_font = False

        self._find_heading()
        self._exclude_bad_beginnings()
        self._exclude_indentation_and_intro()
        self._adjust_signature()
        self._adjust_indentation()

    def _find_heading(self):
        masker = CodeMasker(self.code).mask_sensitive_code()
        match = COMMENT_HEADING_REGEXP.search(masker.text)
        if match:
            self.heading = [masker.unmask(group) for group in match.groups()]

    def _exclude_bad_beginnings(self):
        if self.heading:
            before, heading_code, equal_signs, headline = self.heading
            self.heading_code = heading_code
            self.heading_start = self.start + len(before)
            self.heading_level = len(equal_signs)
            self.headline_code = headline.strip()
            shift = len(before) + len(heading_code)
            self.code = self.code[shift:]
            self.start += shift
            self.line_start = self.heading_start if self.comment.is_opening_section else self.start
            return

        # Lines ending like signatures belong to earlier comments we couldn't parse
        for pattern in (self.config.signature_ending_pattern, self.codec.timezone_pattern):
            if not pattern:
                continue
            regexp = re.compile("(?:" + pattern.rstrip("$") + ")$")
            cut = None
            for line_match in re.finditer(r"^(.+)\n", self.code, re.MULTILINE):
                line = WIKILINK_TEXT_REGEXP.sub(r"\1", line_match.group(1))
                if regexp.search(line):
                    if line_match.end() == len(self.code):
                        break
                    cut = line_match.end()
            if cut:
                self.code = self.code[cut:]
                self.start += cut
                self.line_start = self.start

        self.code, start_shift, line_start_shift = strip_beginnings(bad_beginning_rules(self.config), self.code)
        if start_shift:
            self.line_start = self.start + line_start_shift
            self.start += start_shift

    def _replace_indentation(self, match):
        before, chars, after = match.group(1), match.group(2), match.group(3) or ""
        remainder = ""
        adjusted_chars = chars
        start_shift = len(match.group(0))
        # A "#" list inside the comment with the comment itself as the first item
        if (not before and len(re.findall(r"(?:^|\n)[:*#]", self.code)) >= 2
                and adjusted_chars.endswith("#")):
            adjusted_chars = adjusted_chars[:-1]
            self.original_indentation = adjusted_chars
            if len(adjusted_chars) < self.comment.level:
                adjusted_chars += ":"
            start_shift -= 1 + len(after)
            remainder = "#" + after
        else:
            self.original_indentation = chars
        self.indentation = adjusted_chars
        self.line_start = self.start + len(before)
        self.start += start_shift
        self.indentation_spacing = after
        return remainder

    def _exclude_indentation_and_intro(self):
        if self.comment.level == 0:
            return

        self.code = re.sub(r"^()" + INDENTATION_PATTERN, self._replace_indentation, self.code, count=1)

        # The comment starts after an unsigned intro: take the last indented line block
        if not self.indentation:
            self.code = re.sub(
                r"(^[\s\S]*?\n)" + INDENTATION_PATTERN + r"(?![\s\S]*\n[^:*#])",
                self._replace_indentation,
                self.code,
                count=1,
            )

        # Lines of a table or a gallery above the comment may look like indentation
        if len(self.indentation) < self.comment.level and "\n" in self.code:
            self.code = re.sub(
                r"^([\s\S]+?\n)([:*#]{" + str(self.comment.level) + r"})( *)",
                self._replace_indentation,
                self.code,
                count=1,
            )

    def _adjust_signature(self):
        prefix = self.config.signature_prefix_pattern
        inline = "|".join(self.config.popular_inline_elements)
        tag = r"(?i)(?:<(?:" + inline + r")(?: [\w ]+?=[^<>]+?)?> *)+$"
        patterns = [
            r"'+$",
            prefix,
            tag,
            prefix,
            tag,
            r"\s+'+$",
            r"<!-- *Template:Unsigned.*$",
            prefix,
        ]
        self.code, self.signature_dirty_code, moved = move_to_signature(
            patterns, self.code, self.signature_dirty_code
        )
        self.end -= moved
        self.signature_code = self.signature_dirty_code

        if re.match(r"<small>", self.code, re.IGNORECASE) and re.search(
            r"</small>[ \xa0\t]*\Z", self.signature_code, re.IGNORECASE
        ):
            self.in_small_font = True
            self.code = self.code[len("<small>"):]
            self.signature_code = re.sub(r"</small>[ \xa0\t]*\Z", "", self.signature_code, flags=re.IGNORECASE)

    def _adjust_indentation(self):
        self.reply_indentation = self.indentation
        if not self.comment.is_opening_section:
            # A later line of the comment may be indented deeper than its first line
            match = re.search(r"\n([:*#]*[:*])(?!:*#).*\Z", self.code + self.signature_dirty_code)
            if match:
                self.reply_indentation = match.group(1)
                if len(self.reply_indentation) < len(self.original_indentation):
                    prefix = self.original_indentation[len(self.reply_indentation):] + self.indentation_spacing
                    self.code = prefix + self.code
                    self.original_indentation = self.original_indentation[:len(self.reply_indentation)]
                    self.indentation = self.original_indentation
                    self.start -= len(prefix)
        self.reply_indentation += self.config.default_indentation_char

    def to_match(self) -> CommentMatch:
        return CommentMatch(
            start_pos=self.start,
            end_pos=self.end,
            line_start_pos=self.line_start,
            signature_end_pos=self.signature_end,
            code=self.code,
            signature_code=self.signature_code,
            signature_dirty_code=self.signature_dirty_code,
            index=self.index,
            author=self.author,
            timestamp=self.timestamp,
            indentation_characters=self.indentation,
            original_indentation=self.original_indentation,
            indentation_spacing=self.indentation_spacing,
            reply_indentation_characters=self.reply_indentation,
            heading_start_pos=self.heading_start,
            heading_code=self.heading_code,
            heading_level=self.heading_level,
            headline_code=self.headline_code,
            is_opening_section=self.comment.is_opening_section,
            in_small_font=self.in_small_font,
            level=self.comment.level,
        )


def _same_minute(first, second) -> bool:
    if first is None or second is None:
        return False
    return first.replace(second=0, microsecond=0) == second.replace(second=0, microsecond=0)


def _timestamps_match(comment: Comment, signature: Signature) -> bool:
    if comment.timestamp == signature.timestamp:
        return True
    if comment.timestamp and signature.timestamp and comment.timestamp.startswith(signature.timestamp):
        return True
    return _same_minute(comment.date, signature.date)


def score_comment_candidate(candidate: CommentMatch, comment: Comment, candidate_count: int,
                            signatures: List[Signature]) -> ScoredCandidate:
    """Pure scoring of one signature's comment code against the rendered comment."""
    does_index_match = comment.index == candidate.index

    previous_match = False
    previous_equal = None
    if comment.previous_comments:
        for i, previous in enumerate(comment.previous_comments):
            signature_index = candidate.index - 1 - i
            if signature_index < 0:
                break
            signature = signatures[signature_index]
            previous_match = (
                signature.timestamp == previous.timestamp
                and signature.author == normalize_user_name(previous.author)
            )
            # Two comments by the same author in the same minute
            if previous_equal is not False:
                previous_equal = (
                    candidate.timestamp == signature.timestamp
                    and candidate.author == signature.author
                )
            if not previous_match:
                break
    else:
        previous_match = candidate.index == 0
    previous_equal = bool(previous_equal)

    if comment.section is not None:
        if candidate.headline_code is None:
            headline_value = -0.4999
        else:
            headline_value = float(
                normalize_code(remove_wiki_markup(candidate.headline_code))
                == normalize_code(comment.section.headline)
            )
    else:
        headline_value = float(candidate.heading_code is None)

    overlap = calculate_word_overlap(comment.text, remove_wiki_markup(candidate.code))

    identity = (
        candidate_count == 1
        or overlap > 0.5
        or (comment.index == 0 and previous_match and headline_value > 0)
        or (comment.index != 0 and previous_match and not previous_equal)
    )

    score, matched = _weighted({
        "identity": float(identity),
        "text_overlap": overlap,
        "headline": headline_value,
        "previous_comments": float(previous_match),
        "index": float(does_index_match),
    }, COMMENT_WEIGHTS)
    return ScoredCandidate(candidate, score, matched)


def locate_comment(code: Optional[str], comment: Comment, config, codec,
                   in_section_context: bool = False) -> CommentMatch:
    """
    Find ``comment`` in ``code``: every signature of the same author with a
    matching timestamp is a candidate, the best one scoring above
    ``MIN_COMMENT_SCORE`` wins.
    """
    if code is None:
        raise ParseError("noCode")

    signatures = extract_signatures(code, config, codec)
    author = normalize_user_name(comment.author)
    matching = [sig for sig in signatures if sig.author == author and _timestamps_match(comment, sig)]
    candidates = [_CommentSlice(comment, sig, code, config, codec).to_match() for sig in matching]

    scored = [score_comment_candidate(c, comment, len(candidates), signatures) for c in candidates]
    accepted = [s for s in scored if s.score > MIN_COMMENT_SCORE]

    if not accepted:
        log_event(logging.INFO, "Comment not found", author=author, timestamp=comment.timestamp,
                  signatures=len(signatures), candidates=len(candidates), section_context=in_section_context)
        raise ParseError("locateComment", details={"author": author, "timestamp": comment.timestamp})

    best = accepted[0]
    for candidate in accepted[1:]:
        if candidate.score > best.score:
            best = candidate

    log_event(logging.DEBUG, "Comment located", author=author, timestamp=comment.timestamp,
              candidates=len(candidates), score=round(best.score, 4), fields=",".join(best.matched_fields))
    return replace(best.source, score=best.score, matched_fields=best.matched_fields)


# --- Reply placement ---

def _markers(indentation_length: int, total_length: int) -> str:
    spaces = max(total_length - indentation_length - 1, 0)
    return INLINE_START * indentation_length + " " * spaces + INLINE_END


def _template_end(code: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(code) - 1:
        pair = code[i:i + 2]
        if pair == "{{":
            depth += 1
            i += 2
            continue
        if pair == "}}":
            depth -= 1
            i += 2
            if depth == 0:
                return i
            continue
        i += 1
    return len(code)


def mask_closed_discussions(code: str, config) -> str:
    """
    Replace closed discussions with same-length markers keeping the
    indentation length, so nothing gets inserted into them.
    """
    beginnings, endings = config.closed_discussion_templates
    if not beginnings:
        return code

    begin_names = _names_pattern(beginnings)
    if endings:
        pair_regexp = re.compile(
            r"\{\{ *(?:" + begin_names + r") *(?=[|}])[^}]*\}\}\s*([:*#]*)[\s\S]*?"
            r"\{\{ *(?:" + _names_pattern(endings) + r") *(?=[|}])[^}]*\}\}"
        )
        code = pair_regexp.sub(lambda m: _markers(len(m.group(1)), len(m.group(0))), code)

    # Templates closing the discussion in one go, with the discussion as a parameter
    single_regexp = re.compile(r"\{\{ *(?:" + begin_names + r") *\|[^}]{0,50}?=\s*([:*#]*)")
    position = 0
    while True:
        match = single_regexp.search(code, position)
        if not match:
            break
        end = _template_end(code, match.start())
        code = code[:match.start()] + _markers(len(match.group(1)), end - match.start()) + code[end:]
        position = match.start() + 1
    return code


def _adjusted_chunk_after(code: str, index: int, config) -> str:
    adjusted = mask_closed_discussions(mask_distracting_code(code), config)
    next_heading = NEXT_HEADING_REGEXP.search(adjusted, index)
    chunk_end = next_heading.start() + 1
    chunk_end -= measure_kept_ending(section_ending_rules(config), code[index:chunk_end])
    return adjusted[index:chunk_end]


def _any_signature_pattern(match: CommentMatch, config, codec) -> str:
    alternatives = [re.escape(match.signature_code), codec.timestamp_pattern + ".*"]
    if config.unsigned_templates:
        names = _names_pattern(config.unsigned_templates)
        alternatives.append(r"\{\{ *(?:" + names + r") *\|.*")
    alternatives.append(r"(?:^|\n)\x01.+")
    return r"^(?P<between>[\s\S]*?(?:" + "|".join(alternatives) + r")\n)\n*"


def find_reply_place(code: str, match: CommentMatch, config, codec) -> Tuple[int, str]:
    """
    Position after the thread of replies to the comment and the indentation
    a reply placed there gets.
    """
    reply_indentation = match.reply_indentation_characters
    after = _adjusted_chunk_after(code, match.end_pos, config)
    if re.match(r" +\x02", after):
        raise ParseError("closed")

    max_indentation_length = len(reply_indentation) - 1
    end_of_thread = r"(?P<after>(?![:*#\x01\n])"
    if max_indentation_length > 0:
        end_of_thread += r"|[:*#\x01]{1," + str(max_indentation_length) + r"}(?![:*\x01])"
    end_of_thread += ")"

    any_signature = _any_signature_pattern(match, config, codec)
    proper_place = re.match(any_signature + end_of_thread, after)
    between = proper_place.group("between") if proper_place else after
    is_next_line = between.count("\n") == 1

    if config.outdent_templates:
        outdent = re.match(
            r"\s*([:*#]*)[ \t]*\{\{ *(?:" + _names_pattern(config.outdent_templates) + r") *(?:\||\}\})",
            after[len(between):],
        )
        if outdent:
            if is_next_line:
                # Can't reply to a comment that is followed by an outdent right away
                raise ParseError("findPlace")
            if len(outdent.group(1)) <= len(reply_indentation):
                previous_signature = re.match(any_signature, after)
                between = previous_signature.group("between") if previous_signature else between

    first_char = "[#*:]" if config.indentation_char_mode == "mimic" else "#"
    multi_char = "" if (config.indentation_char_mode == "unify" and len(reply_indentation) == 1) else "[:*#]{2,}|"
    changed = re.search(r"\n((" + multi_char + first_char + r")[:*#]*).*\n\Z", between)
    if changed:
        # The thread below uses its own markers; keep in line with them
        changed_indentation = changed.group(1)[:len(reply_indentation)]
        reply_indentation = re.sub(r":$", config.default_indentation_char, changed_indentation)

    # Closed discussions are masked in the chunk; headings inside them still end the section
    gap = mask_distracting_code(code)[match.end_pos:match.end_pos + len(between)]
    if GAP_HEADING_REGEXP.search(gap):
        raise ParseError("locateComment", details={"reason": "heading inside the reply gap"})

    position = match.end_pos + len(between)
    log_event(logging.DEBUG, "Reply place found", position=position, indentation=reply_indentation)
    return position, reply_indentation


def extract_last_comment_indentation(section_match: SectionMatch, section: Section, code: str,
                                     config, codec, container_list_type: Optional[str] = None) -> Optional[str]:
    """Indentation of the last comment of the section's first chunk, if it tells anything."""
    placeholder = LAST_LIST_PLACEHOLDER_REGEXP.search(section_match.first_chunk_code)
    if placeholder:
        return placeholder.group(1)

    first_chunk_comments = [c for c in section.comments if c.section is section]
    if not first_chunk_comments:
        return None
    if container_list_type != "ol" and config.indentation_char_mode != "mimic":
        return None
    try:
        source = locate_comment(code, first_chunk_comments[-1], config, codec)
    except ParseError as e:
        log_event(logging.DEBUG, "Last comment of the section not found", error=e.code)
        return None
    if not source.indentation_characters.startswith("#") or container_list_type == "ol":
        return source.indentation_characters
    return None


def section_reply_indentation(section_match: SectionMatch, section: Section, code: str,
                              config, codec, container_list_type: Optional[str] = None) -> str:
    """The first indentation character of a reply posted at the end of a section."""
    last = extract_last_comment_indentation(section_match, section, code, config, codec, container_list_type)
    if last and (last[0] == "#" or config.indentation_char_mode == "mimic"):
        return last[0]
    return config.default_indentation_char


# --- New topics ---

def _topic_dates(code: str, config, codec):
    adjusted = mask_distracting_code(code)
    signatures = extract_signatures(code, config, codec)
    starts = [sig.start_index for sig in signatures]
    topics = []
    for heading in TOPIC_HEADING_REGEXP.finditer(adjusted):
        i = bisect_left(starts, heading.start())
        date = signatures[i].date if i < len(signatures) else None
        topics.append((heading.start(), date))
    return topics


def guess_new_topic_placement(code: str, config, codec) -> Tuple[bool, Optional[int]]:
    """
    Whether new topics go on top of the page, and where the first topic
    starts. Unless configured, the order of the first timestamps of the
    topics decides.
    """
    topics = _topic_dates(code, config, codec)
    if config.new_topics_on_top is not None:
        on_top = config.new_topics_on_top
    else:
        difference = 0
        previous_date = None
        for _, date in topics:
            if date is None:
                continue
            if previous_date is not None:
                if date > previous_date:
                    difference -= 1
                elif date < previous_date:
                    difference += 1
            previous_date = date
        on_top = difference > 0

    first_section_start = topics[0][0] if on_top and topics else None
    return on_top, first_section_start


def find_proper_place_for_section(code: str, config, codec, reference_date=None) -> int:
    """
    Where a topic goes: the end of the page, the first topic when topics are
    added on top, or, given a date, between the topics around that date.
    """
    on_top, first_section_start = guess_new_topic_placement(code, config, codec)
    if reference_date is None:
        if on_top:
            return first_section_start if first_section_start is not None else 0
        return len(code)

    for start, date in _topic_dates(code, config, codec):
        if date is None:
            continue
        if (on_top and date < reference_date) or (not on_top and date > reference_date):
            return start
    return len(code)
