"""
Builds the wikitext of a new or edited comment (heading, body, signature)
and turns existing comment code back into editable text.
"""

import re
from datetime import datetime
from typing import NamedTuple, Optional

from talkutils.code_masker import CodeMasker
from talkutils.indentation_normalizer import (
    HEADING_OR_RULE_REGEXP,
    LIST_LINE_REGEXP,
    normalize,
    prepend_indentation_to_line,
)
from talkutils.timestamp_codec import UTC
from talkutils.wikitext import brs_to_newlines, generate_page_name_pattern

ZERO_LEVEL_MODES = ("addSection", "addSubsection")
SMALL_WRAPPER_REGEXP = re.compile(r"^<small>([\s\S]*)</small>$", re.IGNORECASE)


class ComposedComment(NamedTuple):
    text: str  # masked
    masker: CodeMasker

    def unmask(self) -> str:
        return self.masker.unmask(self.text)


def compose_comment(text: str, mode: str, config, codec, target_prefix: str = "",
                    headline: Optional[str] = None, level: Optional[int] = None,
                    signature: Optional[str] = None, omit_signature: bool = False,
                    now: Optional[datetime] = None, small: bool = False,
                    opening_code: str = "") -> ComposedComment:
    """
    Compose the code to insert for ``mode`` (``reply``, ``replyInSection``,
    ``addSubsection``, ``addSection`` or ``edit``).
    """
    text = text.strip()
    if not omit_signature:
        text = re.sub(r"\s*~{3,}$", "", text)

    # 1. A message wrapped in <small> as a whole gets the signature inside the tags
    if not headline:
        match = SMALL_WRAPPER_REGEXP.match(text)
        if match and not re.search(r"</small>", match.group(1), re.IGNORECASE):
            text = match.group(1)
            small = True

    # 2. Body
    zero_level = mode in ZERO_LEVEL_MODES or not target_prefix
    normalized = normalize(text, target_prefix, config.indentation_char_mode, config, zero_level=zero_level)
    body = normalized.text
    indented = bool(normalized.rest_prefix)

    # 3. Signature
    if omit_signature:
        signature = ""
    elif signature is None:
        signature = config.user_signature
    if signature and normalized.ends_with_list and not (mode == "edit" and re.match(r"[ \t]*\n", signature)):
        # Otherwise the signature would end up in the last list item
        body += "\n" + prepend_indentation_to_line(normalized.unmarked_prefix if indented else "", "", config)
    if not indented and re.search(r"(?:^|\n)[ =].*$", body):
        body += "\n"
    if not body or body.endswith("\n") or body.endswith(" "):
        signature = signature.lstrip()

    if small:
        # The markers of the first line stay outside the tags
        lead = prepend_indentation_to_line(target_prefix, "", config) if indented else ""
        first_line_is_bare = bool(text) and not normalized.collapsed and not LIST_LINE_REGEXP.match(text)
        if lead and first_line_is_bare and body.startswith(lead):
            body = body[len(lead):]
        before = "\n" if re.match(r"[:*#; ]", body) else ""
        body = f"{lead}<small>{before}{body}{signature}</small>"
    else:
        body += signature

    if omit_signature and config.posted_at_marker:
        posted = now or datetime.now(UTC)
        stamp = codec.format(posted, style=config.timestamp_style, add_timezone=True, now=posted)
        body += f" <small>({stamp})</small>"

    # 4. Heading
    if headline:
        if mode == "addSection":
            level = 2
        level = level or 2
        equal_signs = "=" * level
        if mode == "addSection" or (mode == "edit" and opening_code.startswith("\n")):
            body = "\n" + body
        body = f"{equal_signs} {headline.strip()} {equal_signs}\n{body}"

    if mode != "edit":
        body += "\n"

    return ComposedComment(body, normalized.masker)


def code_to_input(code: str, level: int, original_indentation: str, config) -> str:
    """
    Turn the code of a comment back into text for an input: continuation
    lines lose the comment's own indentation, ``<br>`` becomes a newline and
    paragraph templates become blank lines.
    """
    masker = CodeMasker(code).mask_sensitive_code()
    text = masker.text
    indentation_length = len(original_indentation)

    if level == 0:
        # Line breaks that don't affect rendering would become <br> on posting
        def collapse(match):
            current, following = match.group(1), match.group(2)
            keep = (
                HEADING_OR_RULE_REGEXP.match(current)
                or HEADING_OR_RULE_REGEXP.match(following)
                or re.match(r"^\x01\d+\x02 *$", current)
                or re.match(r"^\x01\d+\x02 *$", following)
                or re.match(r"^(?:\||!|<)", following)
                or re.search(r"(?:>|\x04) *$", current)
            )
            return current + ("\n" if keep else " ")

        text = re.sub(r"^((?![:*#; ]).+)\n(?![\n:*#; \x03])(?=(.*))", collapse, text, flags=re.MULTILINE)

    text = brs_to_newlines(text)

    def strip_indentation(match):
        chars, spacing = match.group(1), match.group(2)
        if len(chars) >= indentation_length:
            new_chars = chars[indentation_length:]
            if len(chars) > indentation_length:
                new_chars += spacing
        else:
            new_chars = chars + spacing
        return "\n" + new_chars

    text = re.sub(r"\n([:*#]*)([ \t]*)", strip_indentation, text)
    text = masker.unmask(text)

    if config.paragraph_templates:
        names = "|".join(generate_page_name_pattern(name) for name in config.paragraph_templates)
        template_regexp = re.compile(r"\{\{(?:" + names + r")\}\}")
        text = re.sub(
            r"^(?![:*#]).*" + template_regexp.pattern,
            lambda m: template_regexp.sub("\n\n", m.group(0)),
            text,
            flags=re.MULTILINE,
        )

    if level != 0:
        text = re.sub(r"\n\n+", "\n\n", text)

    return text.strip()
