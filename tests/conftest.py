import pytest

from talkutils.config import SiteConfig
from talkutils.models import Comment, Section
from talkutils.timestamp_codec import TimestampCodec

TOPIC_CODE = (
    "== Topic ==\n"
    "Question? [[User:Bob|Bob]] ([[User talk:Bob|talk]]) 09:00, 1 January 2024 (UTC)\n"
    ": Answer. -- Alice 10:00, 1 January 2024 (UTC)\n"
    ":: Reply by Carol. [[User:Carol|Carol]] 11:00, 1 January 2024 (UTC)\n"
)

TOPIC_HTML = """
<div class="mw-parser-output">
<h2><span class="mw-headline" id="Topic">Topic</span><span class="mw-editsection">[edit]</span></h2>
<p>Question? <a href="/wiki/User:Bob" title="User:Bob">Bob</a> (<a href="/wiki/User_talk:Bob" title="User talk:Bob">talk</a>) 09:00, 1 January 2024 (UTC)</p>
<dl><dd>Answer. -- Alice 10:00, 1 January 2024 (UTC)
<dl><dd>Reply by Carol. <a href="/wiki/User:Carol" title="User:Carol">Carol</a> 11:00, 1 January 2024 (UTC)</dd></dl></dd></dl>
</div>
"""


@pytest.fixture
def config():
    return SiteConfig()


@pytest.fixture
def codec(config):
    return TimestampCodec.from_config(config)


@pytest.fixture
def topic(codec):
    """The section and comments of TOPIC_CODE as the rendered page shows them."""
    section = Section("Topic", level=2, index=0, id="Topic")

    def make(author, timestamp, indentation, text, index, previous, **kwargs):
        comment = Comment(
            author=author,
            timestamp=timestamp,
            date=codec.parse(timestamp).date,
            indentation_characters=indentation,
            text=text,
            index=index,
            previous_comments=previous,
            section=section,
            **kwargs,
        )
        section.comments.append(comment)
        return comment

    bob = make("Bob", "09:00, 1 January 2024 (UTC)", "", "Question?", 0, [],
               is_opening_section=True, follows_heading=True)
    alice = make("Alice", "10:00, 1 January 2024 (UTC)", ":", "Answer.", 1, [bob])
    carol = make("Carol", "11:00, 1 January 2024 (UTC)", "::", "Reply by Carol.", 2, [alice, bob])
    return section, bob, alice, carol
