"""
Builds Section and Comment objects from the parser output of a talk page
(what the reader sees), to be located later in the wikitext.
"""

import re
import logging
from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import unquote

from bs4 import BeautifulSoup, Comment as HtmlComment, NavigableString

from talkutils.config import log_event
from talkutils.models import Comment, Section
from talkutils.wikitext import normalize_user_name

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
BLOCK_TAGS = ["p", "li", "dd", "dt"]
LIST_MARKERS = {"dl": ":", "ul": "*", "ol": "#"}
SKIPPED_TAGS = {"dl", "ul", "ol", "blockquote", "q", "style", "script"}
PLAIN_SIGNATURE_REGEXP = re.compile(r"(?:--|—|–|−)\s*([^\W\d_][^\[\]|<>{}\n]{0,84}?)\s*$")


class PageSkeleton(NamedTuple):
    sections: List[Section]
    comments: List[Comment]  # document order, including those above the first heading


def _classes(el) -> List[str]:
    return el.get("class") or []


def _is_skipped(el, config) -> bool:
    """Quotes and elements marked as not containing signatures."""
    for parent in [el] + list(el.parents):
        if getattr(parent, "name", None) in ("blockquote", "q"):
            return True
        if any(cls in config.no_signature_classes for cls in _classes(parent)):
            return True
    return False


def _inside_block(el) -> bool:
    # <p> inside <li> belongs to the <li>
    for parent in el.parents:
        if parent.name in ("li", "dd", "dt"):
            return True
        if parent.name in LIST_MARKERS or parent.name in ("body", "[document]"):
            return False
    return False


def _indentation(el) -> str:
    markers = [LIST_MARKERS[parent.name] for parent in el.parents if parent.name in LIST_MARKERS]
    return "".join(reversed(markers))


def user_from_link(link, config) -> Optional[str]:
    """Name of the user a link points to (user page, talk page or contributions)."""
    target = link.get("title") or ""
    if not target:
        href = unquote(link.get("href") or "")
        match = re.search(r"(?:/wiki/|[?&]title=)([^&#?]+)", href)
        target = match.group(1) if match else ""
    target = re.sub(r" \(page does not exist\)$", "", target.replace("_", " "))
    if not target:
        return None

    namespaces = "|".join(re.escape(ns) for ns in config.user_namespaces)
    match = re.match(r"^(?:" + namespaces + r") *: *([^/#]+)$", target, re.IGNORECASE)
    if not match:
        contributions = "|".join(re.escape(page) for page in config.contributions_pages)
        match = re.match(r"^(?:" + contributions + r")/([^/#]+)$", target, re.IGNORECASE)
    return normalize_user_name(match.group(1)) if match else None


def _collect(el, parts: List[str], links: List[Tuple[int, str]], config):
    for child in el.children:
        if isinstance(child, HtmlComment):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
            continue
        if child.name in SKIPPED_TAGS:
            continue
        if child.name == "br":
            parts.append("\n")
            continue
        if child.name == "a":
            author = user_from_link(child, config)
            if author:
                links.append((sum(len(p) for p in parts), author))
        _collect(child, parts, links, config)


def _own_text(el, config):
    """Text of a block without its nested lists, plus the user links in it."""
    parts, links = [], []
    _collect(el, parts, links, config)
    return "".join(parts), links


def _heading_data(heading):
    for edit_link in heading.select(".mw-editsection"):
        edit_link.decompose()
    headline_el = heading.select_one(".mw-headline") or heading
    anchor = headline_el.get("id") or heading.get("id")
    return re.sub(r"\s+", " ", headline_el.get_text()).strip(), anchor


def _signatures_in_block(text: str, links, config, codec):
    """``(author, timestamp, signature_start, signature_end)`` for every signed timestamp of a block."""
    found = []
    last_end = 0
    for ts_match in codec.timestamp_regexp.finditer(text):
        author = None
        signature_start = ts_match.start()
        before = [link for link in links if last_end <= link[0] <= ts_match.start()]
        if before:
            author = before[-1][1]
            # "[[User:A|A]] ([[User talk:A|talk]])" starts at the first link
            signature_start = next(offset for offset, name in before if name == author)
        elif config.plain_text_signatures:
            plain = PLAIN_SIGNATURE_REGEXP.search(text[last_end:ts_match.start()])
            if plain:
                author = normalize_user_name(plain.group(1))
                signature_start = last_end + plain.start()
        if author:
            found.append((author, ts_match.group(0), signature_start, ts_match.end()))
        last_end = ts_match.end()
    return found


def make_comment_id(comment: Comment) -> str:
    stamp = comment.date.strftime("%Y%m%d%H%M") if comment.date else (comment.timestamp or "")
    return f"c-{comment.author.replace(' ', '_')}-{stamp}"


def parse_page_html(html: str, config, codec) -> PageSkeleton:
    """
    Headings and signed comments of the page in document order. Each
    section lists all comments under it, subsections included; a comment
    points to its innermost section.
    """
    soup = BeautifulSoup(html, "html.parser")
    root = soup.select_one(".mw-parser-output") or soup

    sections: List[Section] = []
    stack: List[Section] = []
    comments: List[Comment] = []
    pending_text: List[str] = []

    for el in root.find_all(HEADING_TAGS + BLOCK_TAGS):
        if el.name in HEADING_TAGS:
            headline, anchor = _heading_data(el)
            level = int(el.name[1])
            while stack and stack[-1].level >= level:
                stack.pop()
            section = Section(
                headline=headline,
                level=level,
                index=len(sections),
                id=anchor,
                ancestors=[s.headline for s in stack],
            )
            sections.append(section)
            stack.append(section)
            pending_text = []
            continue

        if el.name == "p" and _inside_block(el):
            continue
        if _is_skipped(el, config):
            continue

        text, links = _own_text(el, config)
        signatures = _signatures_in_block(text, links, config, codec)
        if not signatures:
            if text.strip():
                pending_text.append(text.strip())
            continue

        indentation = _indentation(el)
        section = stack[-1] if stack else None
        text_start = 0
        for author, timestamp, signature_start, signature_end in signatures:
            own = text[text_start:signature_start].strip()
            text_start = signature_end
            parsed = codec.parse(timestamp)
            follows_heading = bool(section) and not any(c.section is section for c in comments)
            comment = Comment(
                author=author,
                timestamp=timestamp,
                date=parsed.date if parsed else None,
                indentation_characters=indentation,
                text="\n".join(pending_text + [own]).strip(),
                index=len(comments),
                previous_comments=list(reversed(comments[-2:])),
                section=section,
                follows_heading=follows_heading,
            )
            comment.is_opening_section = follows_heading and comment.level == 0
            comment.signature = text[signature_start:signature_end].strip()
            comment.id = make_comment_id(comment)
            for previous in reversed(comments):
                if previous.section is not section:
                    break
                if previous.level < comment.level:
                    comment.parent = previous
                    break
            comments.append(comment)
            for s in stack:
                s.comments.append(comment)
            pending_text = []

    for section in sections:
        dated = [c for c in section.comments if c.date is not None]
        if dated:
            section.oldest_comment_id = min(dated, key=lambda c: c.date).id

    log_event(logging.DEBUG, "Page HTML parsed", sections=len(sections), comments=len(comments))
    return PageSkeleton(sections, comments)
