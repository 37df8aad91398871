from codemate.models import ToolCall
from codemate.response_parser import (
    ResponseParser, coerce_value, extract_thinking, format_tool_calls, has_tool_calls, is_truncated,
)


def test_named_params_are_coerced():
    text = (
        "Let me look at that file.\n\n"
        '<tool_call name="get_lines">\n'
        '  <param name="path">src/app.py</param>\n'
        '  <param name="start">10</param>\n'
        '  <param name="end">20</param>\n'
        "</tool_call>"
    )
    parsed = ResponseParser(id_prefix="call").parse(text)

    assert parsed.content == "Let me look at that file."
    assert not parsed.incomplete_tool_call
    assert len(parsed.tool_calls) == 1
    call = parsed.tool_calls[0]
    assert call.name == "get_lines"
    assert call.id == "call_1"
    assert call.params == {"path": "src/app.py", "start": 10, "end": 20}


def test_element_params():
    parsed = ResponseParser().parse('<tool_call name="get_structure"><path>src</path><depth>2</depth></tool_call>')
    assert parsed.tool_calls[0].params == {"path": "src", "depth": 2}


def test_ids_increase_across_calls():
    parser = ResponseParser(id_prefix="call")
    text = '<tool_call name="git_status"></tool_call><tool_call name="git_diff"></tool_call>'
    assert [c.id for c in parser.parse(text).tool_calls] == ["call_1", "call_2"]
    assert [c.id for c in parser.parse(text).tool_calls] == ["call_3", "call_4"]


def test_cdata_is_taken_verbatim():
    text = (
        '<tool_call name="create_file"><param name="path">a.py</param>'
        '<param name="content"><![CDATA[def f():\n    return "<b>"]]></param></tool_call>'
    )
    params = ResponseParser().parse(text).tool_calls[0].params
    assert params["content"] == 'def f():\n    return "<b>"'


def test_value_coercion():
    assert coerce_value("true") is True
    assert coerce_value(" false ") is False
    assert coerce_value("null") is None
    assert coerce_value("1.5") == 1.5
    assert coerce_value("-3") == -3
    assert coerce_value("[1, 2]") == [1, 2]
    assert coerce_value('{"a": 1}') == {"a": 1}
    assert coerce_value("[not json") == "[not json"
    assert coerce_value("\n    indented\n") == "    indented"


def test_undefined_param_is_dropped():
    parsed = ResponseParser().parse(
        '<tool_call name="get_todos"><param name="path">undefined</param><param name="type">TODO</param></tool_call>'
    )
    assert parsed.tool_calls[0].params == {"type": "TODO"}


def test_truncated_call():
    text = 'Checking.\n<tool_call name="edit_lines"><param name="path">a.py</param><param name="content">x'
    parsed = ResponseParser().parse(text)

    assert is_truncated(text)
    assert parsed.incomplete_tool_call
    assert parsed.tool_calls == []
    assert parsed.content == "Checking."


def test_complete_calls_before_a_dangling_one_still_parse():
    text = '<tool_call name="git_status"></tool_call>\n<tool_call name="git_diff">'
    parsed = ResponseParser().parse(text)
    assert parsed.incomplete_tool_call
    assert [c.name for c in parsed.tool_calls] == ["git_status"]


def test_unknown_tools_filtered_when_known_set_given():
    parsed = ResponseParser(known_tools={"get_lines"}).parse('<tool_call name="rm_everything"></tool_call>')
    assert parsed.tool_calls == []
    assert parsed.has_parse_errors
    assert "rm_everything" in parsed.parse_errors[0]


def test_plain_answer():
    parsed = ResponseParser().parse("The function returns None.\n\n\n\nThat's it.")
    assert parsed.tool_calls == []
    assert parsed.content == "The function returns None.\n\nThat's it."
    assert not has_tool_calls(parsed.content)


def test_thinking_blocks():
    thinking, rest = extract_thinking("<thinking>look at core first</thinking>Answer.")
    assert thinking == "look at core first"
    assert rest == "Answer."
    assert extract_thinking("No thoughts.") == ("", "No thoughts.")


def test_formatted_calls_parse_back():
    calls = [ToolCall(id="x", name="get_lines", params={"path": "a.py", "start": 3})]
    parsed = ResponseParser().parse(format_tool_calls(calls))
    assert parsed.tool_calls[0].name == "get_lines"
    assert parsed.tool_calls[0].params == {"path": "a.py", "start": 3}


def test_ids_differ_between_parsers():
    text = '<tool_call name="git_status"></tool_call>'
    first = ResponseParser().parse(text).tool_calls[0].id
    second = ResponseParser().parse(text).tool_calls[0].id
    assert first != second
    assert first.startswith("call_") and first.endswith("_1")
