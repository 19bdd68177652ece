"""
Rewrites the list markup of a message so that it renders at the level of
the comment it is posted under.
"""

import re
from typing import NamedTuple

from talkutils.code_masker import CodeMasker, TABLE_START
from talkutils.errors import ParseError

LIST_LINE_REGEXP = re.compile(r"^[:*#;]", re.MULTILINE)
STAR_LIST_LINE_REGEXP = re.compile(r"^[:#;]*\*", re.MULTILINE)
MARKERS_REGEXP = re.compile(r"^([:*#;]*)([\s\S]*)$")
HEADING_OR_RULE_REGEXP = re.compile(r"^(=+).*\1[ \t]*$|^----")
ZERO_LEVEL_NEWLINE_REGEXP = re.compile(r"^((?![:*#; ]).+)\n(?![\n:*#; \x03])(?=(.*))", re.MULTILINE)
ENTIRE_LINE_PLACEHOLDER_REGEXP = re.compile(r"^\x01(\d+)\x02 *$")
TRAILING_PLACEHOLDER_REGEXP = re.compile(r"\x01(\d+)\x02 *$")


class NormalizedText(NamedTuple):
    text: str  # still masked
    rest_prefix: str
    unmarked_prefix: str
    collapsed: bool
    make_all_into_colons: bool
    ends_with_list: bool
    masker: CodeMasker

    def unmask(self) -> str:
        return self.masker.unmask(self.text)


def paragraph_marker(config) -> str:
    if config.paragraph_templates:
        return "{{" + config.paragraph_templates[0] + "}}"
    return "<br><br>"


def prepend_indentation_to_line(prefix: str, line: str, config) -> str:
    space = " " if prefix and config.space_after_indentation_chars and not LIST_LINE_REGEXP.match(line) else ""
    return prefix + space + line


def _file_line_regexp(config):
    namespaces = "|".join(re.escape(ns) for ns in config.file_namespaces)
    return re.compile(r"^\[\[(?:" + namespaces + r"):.+\]\]$", re.IGNORECASE)


def _line_ending_regexp(config):
    pnie = "(?:" + "|".join(config.popular_not_inline_elements) + ")"
    return re.compile(
        r"(?:<" + pnie + r"(?: [\w ]+?=[^<>]+?| ?/?)>|</" + pnie + r">|\x04|<br[ \n]*/?>|"
        + re.escape(paragraph_marker(config)) + r") *$",
        re.IGNORECASE,
    )


def _line_beginning_regexp(config):
    pnie = "(?:" + "|".join(config.popular_not_inline_elements) + ")"
    return re.compile(r"^(?:</" + pnie + r">|<" + pnie + r")", re.IGNORECASE)


def _needs_no_break(current: str, following: str, indented: bool, config, masker) -> bool:
    """Whether a newline between two lines must not turn into ``<br>``."""
    def is_entire_line_placeholder(line):
        match = ENTIRE_LINE_PLACEHOLDER_REGEXP.match(line)
        return bool(match) and masker is not None and masker.kind_of(match.group(0)) in ("block", "template")

    def ends_with_block(line):
        match = TRAILING_PLACEHOLDER_REGEXP.search(line)
        return bool(match) and masker is not None and masker.kind_of(match.group(0)) == "block"

    file_regexp = _file_line_regexp(config)
    return (
        is_entire_line_placeholder(current)
        or is_entire_line_placeholder(following)
        or (not indented and (HEADING_OR_RULE_REGEXP.match(current) or HEADING_OR_RULE_REGEXP.match(following)))
        or bool(file_regexp.match(current))
        or bool(file_regexp.match(following))
        or bool(_line_ending_regexp(config).search(current))
        or ends_with_block(current)
        or bool(_line_beginning_regexp(config).match(following))
    )


def process_newlines(code: str, config, masker=None) -> str:
    """
    Newlines of a message that is not indented: bare lines followed by bare
    lines get ``<br>`` and keep their newline. Lists, tables, blank lines and
    lines starting with a space are left alone.
    """
    def replace(match):
        current, following = match.group(1), match.group(2)
        br = "" if _needs_no_break(current, following, False, config, masker) else "<br>"
        return current + br + "\n"

    return ZERO_LEVEL_NEWLINE_REGEXP.sub(replace, code)


def normalize(raw_text: str, target_prefix: str, mode: str, config,
              zero_level: bool = False, preview: bool = False) -> NormalizedText:
    """
    Prepare the body of a message for insertion at ``target_prefix``.

    Every line of the result is prefixed, the first one with
    ``target_prefix`` (or the collapsed prefix), so the body can be spliced
    into the page as is. Placeholders of masked code stay in ``text``.
    """
    raw_text = raw_text.strip()
    zero_level = zero_level or preview or not target_prefix
    ends_with_list = bool(LIST_LINE_REGEXP.match(raw_text.split("\n")[-1])) if raw_text else False

    masker = CodeMasker(raw_text).mask_sensitive_code(indented=not zero_level)
    code = masker.text

    if zero_level:
        code = process_newlines(code, config, masker)
        return NormalizedText(code, "", "", False, masker.make_all_into_colons, ends_with_list, masker)

    rest_prefix = target_prefix.replace("*", ":")
    code = re.sub(r"^ +", "", code, flags=re.MULTILINE)

    has_list = bool(LIST_LINE_REGEXP.search(code))
    has_table = TABLE_START in code
    # A numbered list can't be continued line by line without breaking the numbering
    if (has_list and rest_prefix == "#") or (has_table and "#" in rest_prefix):
        raise ParseError("cantParse", details={"prefix": rest_prefix, "table": has_table})

    collapse_markers = mode == "unify" and bool(STAR_LIST_LINE_REGEXP.search(code))
    collapsed = collapse_markers or (has_list and "*" in target_prefix) or masker.make_all_into_colons
    unmarked_prefix = rest_prefix + ":" if collapse_markers else rest_prefix
    paragraph = paragraph_marker(config)
    file_regexp = _file_line_regexp(config)

    def is_structural(line):
        return bool(LIST_LINE_REGEXP.match(line)) or line.startswith(TABLE_START) or bool(file_regexp.match(line))

    def rewrite_list_line(line):
        markers, rest = MARKERS_REGEXP.match(line).groups()
        if collapse_markers:
            markers = markers.replace("*", ":")
        return prepend_indentation_to_line(rest_prefix, markers + rest, config)

    out = []
    previous_raw = None
    previous_is_list = False
    blank_run = 0
    for line in code.split("\n"):
        if not line.strip():
            if out:
                blank_run += 1
            continue

        if is_structural(line):
            out.append(rewrite_list_line(line))
            previous_is_list = True
        elif collapsed:
            # The whole message goes to one level, so every bare line becomes an item of it
            if blank_run and out:
                out[-1] += paragraph
            out.append(prepend_indentation_to_line(unmarked_prefix, line, config))
            previous_is_list = False
        elif not out:
            out.append(line)
        elif previous_is_list:
            out.append(prepend_indentation_to_line(rest_prefix, (paragraph if blank_run else "") + line, config))
            previous_is_list = False
        elif blank_run:
            out[-1] += paragraph + line
        else:
            no_break = _needs_no_break(previous_raw, line, True, config, masker)
            out[-1] += ("" if no_break else "<br> ") + line
        previous_raw = line
        blank_run = 0

    if out and not collapsed and not is_structural(code.split("\n")[0]):
        out[0] = prepend_indentation_to_line(target_prefix, out[0], config)

    return NormalizedText("\n".join(out), rest_prefix, unmarked_prefix, collapsed,
                          masker.make_all_into_colons, ends_with_list, masker)
