from bs4 import BeautifulSoup

from conftest import TOPIC_HTML
from talkutils.html_skeleton import parse_page_html, user_from_link


def _link(html):
    return BeautifulSoup(html, "html.parser").a


def test_sections_and_comments_are_collected(config, codec):
    skeleton = parse_page_html(TOPIC_HTML, config, codec)
    assert [s.headline for s in skeleton.sections] == ["Topic"]
    assert [c.author for c in skeleton.comments] == ["Bob", "Alice", "Carol"]
    assert [c.indentation_characters for c in skeleton.comments] == ["", ":", "::"]
    assert [c.text for c in skeleton.comments] == ["Question?", "Answer.", "Reply by Carol."]


def test_comment_relations(config, codec):
    section = parse_page_html(TOPIC_HTML, config, codec).sections[0]
    bob, alice, carol = section.comments
    assert bob.is_opening_section and bob.follows_heading
    assert not alice.is_opening_section
    assert alice.parent is bob
    assert carol.parent is alice
    assert carol.previous_comments == [alice, bob]
    assert all(c.section is section for c in section.comments)
    assert section.oldest_comment_id == "c-Bob-202401010900"
    assert section.oldest_comment is bob


def test_signature_starts_at_first_user_link(config, codec):
    bob = parse_page_html(TOPIC_HTML, config, codec).comments[0]
    assert bob.signature == "Bob (talk) 09:00, 1 January 2024 (UTC)"


def test_subsections_know_their_ancestors(config, codec):
    html = (
        '<h2><span class="mw-headline" id="A">A</span></h2>'
        '<p>Start <a title="User:Bob">Bob</a> 09:00, 1 January 2024 (UTC)</p>'
        '<h3><span class="mw-headline" id="B">B</span></h3>'
        '<p>Inner <a title="User:Ann">Ann</a> 10:00, 1 January 2024 (UTC)</p>'
    )
    a, b = parse_page_html(html, config, codec).sections
    assert b.ancestors == ["A"]
    assert b.index == 1 and b.level == 3
    assert len(a.comments) == 2
    assert [c.author for c in b.comments] == ["Ann"]
    assert b.comments[0].section is b


def test_quotes_and_unsigned_text(config, codec):
    html = (
        '<h2><span class="mw-headline">T</span></h2>'
        '<p>Intro without signature</p>'
        '<blockquote><p>Quoted <a title="User:Zed">Zed</a> 08:00, 1 January 2024 (UTC)</p></blockquote>'
        '<p>Own words <a title="User:Bob">Bob</a> 09:00, 1 January 2024 (UTC)</p>'
    )
    comments = parse_page_html(html, config, codec).comments
    assert [c.author for c in comments] == ["Bob"]
    assert comments[0].text == "Intro without signature\nOwn words"


def test_comments_above_first_heading(config, codec):
    html = '<p>Note <a title="User:Bob">Bob</a> 09:00, 1 January 2024 (UTC)</p>'
    skeleton = parse_page_html(html, config, codec)
    assert skeleton.sections == []
    assert skeleton.comments[0].section is None
    assert not skeleton.comments[0].is_opening_section


def test_user_from_link(config):
    assert user_from_link(_link('<a title="User talk:Some_one">x</a>'), config) == "Some one"
    assert user_from_link(_link('<a href="/wiki/Special:Contributions/192.0.2.1">x</a>'), config) == "192.0.2.1"
    assert user_from_link(_link('<a title="User:Red (page does not exist)">x</a>'), config) == "Red"
    assert user_from_link(_link('<a title="User:Bob/Archive">x</a>'), config) is None
    assert user_from_link(_link('<a title="Main Page">x</a>'), config) is None
