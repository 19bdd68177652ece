"""
Pattern rules: per-wiki regexes stored as plain records (pattern + metadata)
and evaluated by the functions below instead of being carried around as
callbacks inside the configuration.
"""
import re
from typing import Iterable, NamedTuple, Optional, Tuple

KEEP_IN_ENDING = "keep_in_ending"
STRIP_BEGINNING = "strip_beginning"


class PatternRule(NamedTuple):
    name: str
    pattern: str
    action: str
    ignore_case: bool = False

    def compile(self):
        return _compile(self.pattern, self.ignore_case)


_cache = {}


def _compile(pattern, ignore_case):
    key = (pattern, ignore_case)
    if key not in _cache:
        _cache[key] = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
    return _cache[key]


def rule_from_value(value, action: str, index: int = 0) -> PatternRule:
    """Accept a ready rule, a ``{"pattern": ..., "ignore_case": ...}`` dict or a bare string."""
    if isinstance(value, PatternRule):
        return value
    if isinstance(value, dict):
        return PatternRule(
            value.get("name", f"{action}-{index}"),
            value["pattern"],
            value.get("action", action),
            bool(value.get("ignore_case", False)),
        )
    return PatternRule(f"{action}-{index}", str(value), action)


def rules_for(rules: Iterable[PatternRule], action: str):
    return [rule for rule in rules if rule.action == action]


def measure_kept_ending(rules: Iterable[PatternRule], code: str) -> int:
    """
    How many characters at the end of ``code`` must stay after anything
    inserted into it. Each rule is expected to start with ``\\n`` which is not
    counted, so the insertion point lands right after a newline.
    """
    shift = 0
    for rule in rules_for(rules, KEEP_IN_ENDING):
        match = rule.compile().search(code)
        if match:
            shift += len(match.group(0)) - 1
    return shift


def strip_beginnings(rules: Iterable[PatternRule], code: str) -> Tuple[str, int, int]:
    """
    Repeatedly cut off matches of the bad-beginning rules.
    Returns ``(code, start_shift, line_start_shift)``.
    """
    start_shift = 0
    line_start_shift = 0
    for rule in rules_for(rules, STRIP_BEGINNING):
        regexp = rule.compile()
        while True:
            match = regexp.match(code)
            if not match or not match.group(0):
                break
            code = code[len(match.group(0)):]
            line_start_shift = start_shift + match.group(0).rfind("\n") + 1
            start_shift += len(match.group(0))
    return code, start_shift, line_start_shift


def move_to_signature(patterns: Iterable[Optional[str]], code: str, signature: str):
    """
    Move parts matching ``patterns`` (anchored at the end of ``code``) to the
    start of ``signature``. Returns ``(code, signature, moved_length)``.
    """
    moved = 0
    for pattern in patterns:
        if not pattern:
            continue
        # "$" would also match before a trailing newline
        if pattern.endswith("$") and not pattern.endswith("\\$"):
            pattern = pattern[:-1] + r"\Z"
        match = _compile(pattern, False).search(code)
        if match and match.group(0):
            part = match.group(0)
            code = code[:match.start()] + code[match.end():]
            signature = part + signature
            moved += len(part)
    return code, signature, moved
