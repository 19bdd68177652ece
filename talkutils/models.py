"""
Data structures (dataclasses) shared by the parser, matcher and assembler.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class Comment:
    """A signed contribution as seen in the rendered page."""
    author: str
    timestamp: Optional[str] = None
    date: Optional[datetime] = None
    indentation_characters: str = ""
    level: Optional[int] = None  # derived from the prefix when not given
    is_opening_section: bool = False
    signature: str = ""
    parent: Optional["Comment"] = None
    id: Optional[str] = None
    text: str = ""
    index: Optional[int] = None  # order among all comments of the page
    previous_comments: List["Comment"] = field(default_factory=list)  # nearest first
    section: Optional["Section"] = field(default=None, repr=False)
    follows_heading: bool = False

    def __post_init__(self):
        if self.level is None:
            self.level = len(self.indentation_characters)


@dataclass
class Section:
    """A heading-delimited topic as seen in the rendered page."""
    headline: str
    level: int = 2
    index: int = 0
    id: Optional[str] = None
    ancestors: List[str] = field(default_factory=list)  # outermost first
    oldest_comment_id: Optional[str] = None
    comments: List[Comment] = field(default_factory=list)

    @property
    def oldest_comment(self) -> Optional[Comment]:
        if self.oldest_comment_id is not None:
            for comment in self.comments:
                if comment.id == self.oldest_comment_id:
                    return comment
        dated = [c for c in self.comments if c.date is not None]
        return min(dated, key=lambda c: c.date) if dated else None


@dataclass
class Signature:
    """A signature found in wikitext."""
    author: Optional[str]
    timestamp: Optional[str]
    start_index: int
    end_index: int
    dirty_code: str
    comment_start_index: int = 0
    next_comment_start_index: int = 0
    date: Optional[datetime] = None
    index: int = 0


@dataclass
class SectionMatch:
    """Location of a section in a particular revision of the page code."""
    start_pos: int
    end_pos: int
    heading_start_pos: int
    code: str
    score: float
    content_start_pos: int
    content_end_pos: int
    first_chunk_end_pos: int
    first_chunk_content_end_pos: int
    first_chunk_code: str
    heading_level: int
    headline: str
    indentation_characters: str = ""
    reply_indentation_characters: str = ""
    matched_fields: tuple = ()


@dataclass
class CommentMatch:
    """Location of a comment in a particular revision of the page code."""
    start_pos: int
    end_pos: int  # where the signature starts
    line_start_pos: int
    signature_end_pos: int
    code: str
    signature_code: str
    signature_dirty_code: str
    score: float = 0.0
    index: int = 0
    author: Optional[str] = None
    timestamp: Optional[str] = None
    indentation_characters: str = ""
    original_indentation: str = ""
    indentation_spacing: str = ""
    reply_indentation_characters: str = ""
    heading_start_pos: Optional[int] = None
    heading_code: Optional[str] = None
    heading_level: Optional[int] = None
    headline_code: Optional[str] = None
    is_opening_section: bool = False
    in_small_font: bool = False
    level: int = 0
    matched_fields: tuple = ()


@dataclass
class PageCode:
    """Raw wikitext of a page (or section) as fetched from the wiki."""
    title: str
    content: str
    revision_id: Optional[int] = None
    query_timestamp: Optional[str] = None
    base_timestamp: Optional[str] = None
    section: Optional[int] = None
