"""
Reversible masking of wikitext constructs that confuse line-based regexes:
templates, tables and verbatim tags are swapped for short placeholder tokens
and restored afterwards.

Nested templates (``{{a|{{b}}}}``) are only masked at the innermost level.
"""

import re
from typing import Callable, List, NamedTuple, Optional

INLINE_START, INLINE_END = "\x01", "\x02"
TABLE_START, TABLE_END = "\x03", "\x04"

PLACEHOLDER_REGEXP = re.compile(r"[\x01\x03](\d+)[\x02\x04]")

TEMPLATE_REGEXP = re.compile(r"\{\{(?:[^{]\{?)+?\}\}")
TABLE_REGEXP = re.compile(r"^(:* *)(\{\|[\s\S]*?\n\|\})", re.MULTILINE)
VERBATIM_TAGS = ("nowiki", "pre", "source", "syntaxhighlight")

HTML_COMMENT_REGEXP = re.compile(r"<!--[\s\S]*?-->")


def generate_tags_regexp(names) -> "re.Pattern":
    return re.compile(
        "|".join(rf"<{name}(?: [^>]+)?>[\s\S]+?</{name} *>" for name in names),
        re.IGNORECASE,
    )


VERBATIM_TAGS_REGEXP = generate_tags_regexp(VERBATIM_TAGS)


class MaskedToken(NamedTuple):
    index: int
    kind: str  # template, table or block

    def render(self) -> str:
        if self.kind == "table":
            return f"{TABLE_START}{self.index}{TABLE_END}"
        return f"{INLINE_START}{self.index}{INLINE_END}"


class CodeMasker:
    def __init__(self, text: str):
        self.text = text
        self.fragments: List[str] = []
        self.tokens: List[MaskedToken] = []
        self.make_all_into_colons = False

    def register(self, fragment: str, kind: str) -> str:
        token = MaskedToken(len(self.fragments), kind)
        self.fragments.append(fragment)
        self.tokens.append(token)
        return token.render()

    def mask(self, regexp, kind: str, use_groups: bool = False,
             on_mask: Optional[Callable] = None) -> "CodeMasker":
        """
        Replace every match of ``regexp`` with a placeholder. With
        ``use_groups`` the first group is kept in place and only the second
        one is masked.
        """
        def replace(match):
            if on_mask:
                on_mask(match)
            if use_groups:
                return match.group(1) + self.register(match.group(2), kind)
            return self.register(match.group(0), kind)

        self.text = regexp.sub(replace, self.text)
        return self

    def mask_templates(self) -> "CodeMasker":
        return self.mask(TEMPLATE_REGEXP, "template")

    def mask_tables(self, indented: bool = False) -> "CodeMasker":
        def check_indentation(match):
            # Tables can't live inside list markup, so the message has to use colons only
            if indented or match.group(1).strip():
                self.make_all_into_colons = True

        return self.mask(TABLE_REGEXP, "table", use_groups=True, on_mask=check_indentation)

    def mask_tags(self, names=VERBATIM_TAGS) -> "CodeMasker":
        regexp = VERBATIM_TAGS_REGEXP if tuple(names) == VERBATIM_TAGS else generate_tags_regexp(names)
        return self.mask(regexp, "block")

    def mask_sensitive_code(self, indented: bool = False) -> "CodeMasker":
        # Order matters: templates may contain table-like text, tables may contain tags
        return self.mask_templates().mask_tables(indented).mask_tags()

    def kind_of(self, token_text: str) -> Optional[str]:
        match = PLACEHOLDER_REGEXP.fullmatch(token_text.strip())
        if not match:
            return None
        index = int(match.group(1))
        return self.tokens[index].kind if index < len(self.tokens) else None

    def unmask(self, text: Optional[str] = None, kind: Optional[str] = None) -> str:
        """
        Restore placeholders until none of ours is left. A restored fragment
        may contain earlier placeholders, hence the loop.
        """
        in_place = text is None
        if in_place:
            text = self.text

        def restore(match):
            index = int(match.group(1))
            if index >= len(self.fragments):
                return match.group(0)
            token = self.tokens[index]
            if kind is not None and token.kind != kind:
                return match.group(0)
            if match.group(0) != token.render():
                return match.group(0)
            return self.fragments[index]

        while True:
            restored = PLACEHOLDER_REGEXP.sub(restore, text)
            if restored == text:
                break
            text = restored

        if in_place:
            self.text = text
        return text


def mask_code(code: str, indented: bool = False):
    """Shortcut: mask templates, tables and verbatim tags of ``code``."""
    masker = CodeMasker(code).mask_sensitive_code(indented)
    return masker.text, masker


def blank_text(text: str) -> str:
    return re.sub(r"[^\n]", " ", text)


def mask_distracting_code(code: str) -> str:
    """
    Length-preserving variant used for searching headings and signatures:
    HTML comments turn into ``\\x01`` + spaces + ``\\x02``, the contents of
    verbatim tags turn into spaces. Newlines are kept, so offsets found in
    the result are valid in ``code``.
    """
    code = HTML_COMMENT_REGEXP.sub(
        lambda m: INLINE_START + blank_text(m.group(0)[1:-1]) + INLINE_END, code
    )

    def blank_contents(match):
        whole = match.group(0)
        open_end = whole.index(">") + 1
        close_start = whole.rindex("<")
        return whole[:open_end] + blank_text(whole[open_end:close_start]) + whole[close_start:]

    return VERBATIM_TAGS_REGEXP.sub(blank_contents, code)
