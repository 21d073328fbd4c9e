import copy

import pytest

from somigrations.modules.markdown import (
    ParseError,
    SerializeError,
    get_lens_nodes,
    is_lens_markdown_node,
    map_embedded_nodes,
    parse_comment_string,
    stringify_comment_without_trailing_newline,
    stringify_markdown_comment,
)
from tests.conftest import LENS_CONFIGURATION, LENS_MARKDOWN, add_description


ROUND_TRIP_CASES = [
    "hello",
    "hello\n",
    "# Title\n\nbody text\nsecond line\n\n---\n\n```js\nconst x = 1;\n```\n",
    f"Investigation notes\n\n{LENS_MARKDOWN}\n\nSee the spike above.",
    f"intro\n{LENS_MARKDOWN}\nafter\n",
    f"\n\n  {LENS_MARKDOWN}\n\n\n\ntrailing paragraph",
    "~~~\nunclosed fence with !{lens{\"timeRange\":{}}}\nstill code",
    "!{lens}",
    "",
]


@pytest.mark.parametrize("source", ROUND_TRIP_CASES)
def test_unchanged_tree_reproduces_source(source):
    assert stringify_markdown_comment(parse_comment_string(source)) == source


@pytest.mark.parametrize("source", ["text", f"text\n\n{LENS_MARKDOWN}", "a\n\nb"])
def test_no_trailing_newline_is_introduced(source):
    assert not stringify_markdown_comment(parse_comment_string(source)).endswith("\n")


@pytest.mark.parametrize("source", ["text\n", "text\n\n\n", f"{LENS_MARKDOWN}\n\n"])
def test_trailing_newlines_collapse_to_one(source):
    result = stringify_markdown_comment(parse_comment_string(source))
    assert result.endswith("\n")
    assert not result.endswith("\n\n")


def test_block_structure():
    tree = parse_comment_string("# Title\n\nbody text\nsecond line\n\n***\n\n```js\nconst x = 1;\n```\n")

    assert [node["type"] for node in tree["children"]] == ["heading", "paragraph", "thematicBreak", "code"]
    heading, paragraph, _, code = tree["children"]
    assert heading["depth"] == 1
    assert heading["text"] == "Title"
    assert paragraph["value"] == "body text\nsecond line"
    assert code["lang"] == "js"
    assert tree["trailingNewline"] is True


def test_dash_rule_under_paragraph_stays_in_paragraph():
    tree = parse_comment_string("Heading text\n---")
    assert [node["type"] for node in tree["children"]] == ["paragraph"]


def test_lens_node_carries_configuration_and_position():
    tree = parse_comment_string(f"Investigation notes\n\n{LENS_MARKDOWN}")
    lens = tree["children"][1]

    assert lens["type"] == "lens"
    assert lens["timeRange"] == LENS_CONFIGURATION["timeRange"]
    assert lens["attributes"] == LENS_CONFIGURATION["attributes"]
    assert lens["position"]["start"]["line"] == 3
    assert lens["position"]["start"]["column"] == 1
    assert get_lens_nodes(tree) == [lens]


def test_lens_without_configuration_is_not_a_visualization():
    tree = parse_comment_string("!{lens}")
    assert tree["children"][0]["type"] == "lens"
    assert not is_lens_markdown_node(tree["children"][0])


def test_fenced_code_is_opaque():
    source = "```\n!{lens{not json at all\n```"
    tree = parse_comment_string(source)

    assert [node["type"] for node in tree["children"]] == ["code"]
    assert get_lens_nodes(tree) == []


def test_braces_inside_json_strings_are_not_counted():
    source = '!{lens{"timeRange":{"from":"now"},"attributes":{"title":"a } b {"}}}'
    tree = parse_comment_string(source)

    assert tree["children"][0]["attributes"]["title"] == "a } b {"
    assert stringify_markdown_comment(tree) == source


def test_invalid_lens_json_reports_position():
    with pytest.raises(ParseError) as excinfo:
        parse_comment_string('text\n\n!{lens{"timeRange":}}')
    assert excinfo.value.line == 3
    assert excinfo.value.column == 1


def test_unterminated_lens_configuration():
    with pytest.raises(ParseError):
        parse_comment_string('!{lens{"timeRange":{"from":"now"}')


def test_lens_configuration_must_be_closed():
    with pytest.raises(ParseError):
        parse_comment_string('!{lens{"timeRange":1} trailing')


def test_non_string_content_is_a_parse_error():
    with pytest.raises(ParseError):
        parse_comment_string(None)


def test_map_embedded_nodes_transforms_only_matching_nodes():
    tree = parse_comment_string(f"Investigation notes\n\n{LENS_MARKDOWN}\n\n!{{lens}}")
    snapshot = copy.deepcopy(tree)

    migrated = map_embedded_nodes(tree, is_lens_markdown_node, add_description)

    assert tree == snapshot
    assert migrated["children"][0] is tree["children"][0]
    assert migrated["children"][1]["attributes"]["description"] == "migrated"
    assert migrated["children"][2] == tree["children"][2]


def test_map_embedded_nodes_rejects_non_node_results():
    tree = parse_comment_string(LENS_MARKDOWN)
    with pytest.raises(TypeError):
        map_embedded_nodes(tree, is_lens_markdown_node, lambda node: None)


def test_migrated_lens_is_written_as_compact_json():
    tree = parse_comment_string(f"{LENS_MARKDOWN}\n")
    migrated = map_embedded_nodes(tree, is_lens_markdown_node, add_description)

    assert stringify_markdown_comment(migrated) == (
        '!{lens{"timeRange":{"from":"now-7d","to":"now","mode":"relative"},'
        '"attributes":{"title":"Events over time","state":{"query":{"language":"kuery","query":""}},'
        '"description":"migrated"}}}\n'
    )


def test_new_nodes_are_separated_by_blank_lines():
    tree = parse_comment_string("first")
    tree["children"].append({"type": "paragraph", "value": "second"})
    assert stringify_markdown_comment(tree) == "first\n\nsecond"


def test_unserializable_node():
    with pytest.raises(SerializeError):
        stringify_markdown_comment({"type": "root", "children": [{"type": "paragraph"}]})


def test_stringify_follows_original_newline_state():
    tree = parse_comment_string("hello\n")
    assert stringify_comment_without_trailing_newline("hello", tree) == "hello"
    assert stringify_comment_without_trailing_newline("hello\n", tree) == "hello\n"
