from talkutils.code_masker import CodeMasker, mask_code, mask_distracting_code


def test_templates_are_masked_and_restored():
    masker = CodeMasker("a {{b|c}} d").mask_templates()
    assert masker.text == "a \x010\x02 d"
    assert masker.unmask() == "a {{b|c}} d"


def test_nested_templates_mask_only_the_inner_one():
    masker = CodeMasker("{{a|{{b}}}}").mask_templates()
    assert masker.text == "{{a|\x010\x02}}"
    assert masker.unmask() == "{{a|{{b}}}}"


def test_indented_table_forces_colons():
    masker = CodeMasker("Text\n:{|\n|cell\n|}\nMore").mask_tables()
    assert masker.text == "Text\n:\x030\x04\nMore"
    assert masker.make_all_into_colons
    assert masker.kind_of("\x030\x04") == "table"


def test_unindented_table_keeps_markers():
    masker = CodeMasker("{|\n|cell\n|}").mask_tables()
    assert masker.text == "\x030\x04"
    assert not masker.make_all_into_colons


def test_round_trip_restores_nested_placeholders():
    code = "<nowiki>{{x}}</nowiki> and {{y}}\n{|\n|<pre>z</pre>\n|}"
    text, masker = mask_code(code)
    assert "{{" not in text and "<nowiki>" not in text
    assert masker.unmask(text) == code


def test_unknown_placeholders_are_left_alone():
    masker = CodeMasker("{{a}}").mask_templates()
    assert masker.unmask("\x010\x02 \x017\x02") == "{{a}} \x017\x02"


def test_unmask_by_kind():
    masker = CodeMasker("{{a}}\n{|\n|b\n|}").mask_sensitive_code()
    assert masker.unmask(kind="table") == "\x010\x02\n{|\n|b\n|}"


def test_distracting_code_keeps_length():
    code = "a<!-- == x == -->b\n<nowiki>\n== y ==</nowiki>\n"
    masked = mask_distracting_code(code)
    assert len(masked) == len(code)
    assert "==" not in masked
    assert masked.count("\n") == code.count("\n")
    assert masked.startswith("a\x01")
