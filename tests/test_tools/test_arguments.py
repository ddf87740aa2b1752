import json

import pytest

from agent_relay.exceptions import ToolCallParseError
from agent_relay.tools.arguments import decode_arguments, normalize_string_argument, parse_code_argument


def test_decode_arguments_accepts_object():
    assert decode_arguments({"code": "x"}) == {"code": "x"}


def test_decode_arguments_accepts_json_string():
    assert decode_arguments(json.dumps({"code": "x"})) == {"code": "x"}


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", None, 42])
def test_decode_arguments_rejects_non_objects(raw):
    with pytest.raises(ToolCallParseError, match="failed to unmarshal tool call"):
        decode_arguments(raw)


def test_normalize_unescapes_newlines_and_quotes():
    raw = 'package main\\n\\nfunc main() {\\n\\tfmt.Println(\\"hi\\")\\n}'

    assert normalize_string_argument(raw) == 'package main\n\nfunc main() {\n\\tfmt.Println("hi")\n}'


def test_normalize_strips_triple_quote_wrappers():
    assert normalize_string_argument('"""package main"""') == "package main"


def test_normalize_leaves_clean_code_alone():
    code = 'package main\n\nfunc main() {\n\tprintln("ok")\n}\n'

    assert normalize_string_argument(code) == code


def test_parse_code_argument_cleans_value():
    raw = {"code": '"package main\\nfunc main() {}"'}

    assert parse_code_argument(raw) == "package main\nfunc main() {}"


@pytest.mark.parametrize("raw", [{}, {"code": ""}, {"code": 5}, {"source": "package main"}])
def test_parse_code_argument_requires_code(raw):
    with pytest.raises(ToolCallParseError, match="code parameter not found in tool call"):
        parse_code_argument(raw)
