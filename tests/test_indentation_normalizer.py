import pytest

from talkutils.comment_composer import code_to_input
from talkutils.errors import ParseError
from talkutils.indentation_normalizer import normalize, paragraph_marker, process_newlines


def test_plain_reply_gets_prefix(config):
    assert normalize("Hello", ":", "mimic", config).text == ": Hello"


def test_list_is_collapsed_in_unify_mode(config):
    result = normalize("* item1\n* item2", ":", "unify", config)
    assert result.text == ":: item1\n:: item2"
    assert result.collapsed
    assert result.ends_with_list


def test_unmarked_lines_follow_collapsed_list(config):
    result = normalize("Intro\n* item1\n* item2", ":", "unify", config)
    assert result.text == ":: Intro\n:: item1\n:: item2"


def test_list_under_numbered_prefix_is_rejected(config):
    with pytest.raises(ParseError) as info:
        normalize("* item1\n* item2", "#", "unify", config)
    assert info.value.key == "parse.cantParse"


def test_table_under_numbered_prefix_is_rejected(config):
    with pytest.raises(ParseError) as info:
        normalize("{|\n|cell\n|}", "#:", "mimic", config)
    assert info.value.code == "cantParse"


def test_mimic_mode_keeps_list_markers(config):
    result = normalize("Intro\n* item", ":", "mimic", config)
    assert result.text == ": Intro\n:* item"


def test_lines_are_joined_with_soft_breaks(config):
    assert normalize("Line one\nLine two", ":", "mimic", config).text == ": Line one<br> Line two"


def test_blank_line_becomes_paragraph_template(config):
    result = normalize("Hello\n\nWorld", ":", "mimic", config)
    assert result.unmask() == ": Hello{{pb}}World"


@pytest.mark.parametrize("text", ["Hello\n\nWorld", "Intro\n* item"])
def test_normalizing_edited_body_again_changes_nothing(config, text):
    once = normalize(text, ":", "mimic", config).unmask()
    # The comment code starts after its own markers
    edited = code_to_input(once[len(": "):], 1, ":", config)
    assert normalize(edited, ":", "mimic", config).unmask() == once


def test_own_list_at_reply_depth_is_nested(config):
    assert normalize(":quoted\n:more", ":", "mimic", config).unmask() == "::quoted\n::more"


def test_own_star_list_under_star_is_nested_and_collapsed(config):
    assert normalize("* item", "*", "unify", config).unmask() == ":: item"


def test_paragraph_marker_without_templates(config):
    assert paragraph_marker(config) == "{{pb}}"
    assert paragraph_marker(config.with_overrides(paragraph_templates=[])) == "<br><br>"


def test_zero_level_newlines_get_br(config):
    assert normalize("a\nb", "", "mimic", config).text == "a<br>\nb"


def test_zero_level_keeps_lists_and_headings(config):
    code = "== Head ==\ntext\n* item\nmore"
    assert process_newlines(code, config) == code


def test_templates_stay_masked_in_text(config):
    result = normalize("See {{tl|x}}\nnow", ":", "mimic", config)
    assert "{{" not in result.text
    assert result.unmask() == ": See {{tl|x}}<br> now"
