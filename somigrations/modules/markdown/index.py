"""
SOMIGRATIONS Saved Object Migration Engine
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import copy
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from somigrations.utils.index import debug_log

LENS_ID = "lens"
LENS_MARKER = "!{" + LENS_ID

# Keys owned by the tree itself, never part of an embedded node's configuration
RESERVED_NODE_KEYS = ("type", "position")

FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})(.*)$")
FENCE_CLOSE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})[ \t]*$")
HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?=[ \t]|$)(.*)$")
THEMATIC_BREAK_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
LENS_START_RE = re.compile(r"^( {0,3})!\{" + LENS_ID + r"[{}]")

MarkdownNode = Dict[str, Any]


class ParseError(Exception):
    """Raised when comment content contains malformed embedded node syntax."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)


class SerializeError(Exception):
    """Raised when a tree contains a node that cannot be written back to text."""
    pass


def _point(text: str, offset: int) -> Dict[str, int]:
    line_start = text.rfind("\n", 0, offset) + 1
    return {
        "line": text.count("\n", 0, offset) + 1,
        "column": offset - line_start + 1,
        "offset": offset,
    }


class _BlockParser:
    """Line-oriented block parser producing a flat root -> blocks tree."""

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.pos = 0
        self.gap_start = 0
        self.children: List[MarkdownNode] = []
        self.separators: List[str] = []

    def parse(self) -> MarkdownNode:
        while self.pos < self.length:
            line, line_end = self._current_line()

            if not line.strip():
                self.pos = line_end + 1
            elif LENS_START_RE.match(line):
                self._parse_lens(line)
            elif FENCE_OPEN_RE.match(line):
                self._parse_fence(line, line_end)
            elif HEADING_RE.match(line):
                self._parse_heading(line, line_end)
            elif THEMATIC_BREAK_RE.match(line):
                self._emit({"type": "thematicBreak", "value": line}, self.pos, line_end)
                self.pos = line_end + 1
            else:
                self._parse_paragraph()

        return {
            "type": "root",
            "children": self.children,
            "separators": self.separators,
            "trailingNewline": self.text.endswith("\n"),
        }

    def _current_line(self) -> Tuple[str, int]:
        line_end = self.text.find("\n", self.pos)
        if line_end == -1:
            line_end = self.length
        return self.text[self.pos:line_end], line_end

    def _emit(self, node: MarkdownNode, start: int, end: int):
        node["position"] = {"start": _point(self.text, start), "end": _point(self.text, end)}
        self.separators.append(self.text[self.gap_start:start])
        self.children.append(node)
        self.gap_start = end

    def _interrupts_paragraph(self, line: str) -> bool:
        if LENS_START_RE.match(line) or FENCE_OPEN_RE.match(line) or HEADING_RE.match(line):
            return True
        # a dash rule directly under paragraph text is a setext underline, not a break
        match = THEMATIC_BREAK_RE.match(line)
        return bool(match) and match.group(1) != "-"

    def _parse_paragraph(self):
        start = self.pos
        line, line_end = self._current_line()
        end = line_end
        self.pos = line_end + 1

        while self.pos < self.length:
            line, line_end = self._current_line()
            if not line.strip() or self._interrupts_paragraph(line):
                break
            end = line_end
            self.pos = line_end + 1

        self._emit({"type": "paragraph", "value": self.text[start:end]}, start, end)

    def _parse_heading(self, line: str, line_end: int):
        match = HEADING_RE.match(line)
        text = match.group(2).strip()
        text = re.sub(r"[ \t]+#+$", "", text) if text.strip("#") else ""
        self._emit(
            {"type": "heading", "depth": len(match.group(1)), "text": text, "value": line},
            self.pos,
            line_end,
        )
        self.pos = line_end + 1

    def _parse_fence(self, line: str, line_end: int):
        match = FENCE_OPEN_RE.match(line)
        fence = match.group(1)
        start = self.pos
        end = self.length
        self.pos = line_end + 1

        while self.pos < self.length:
            candidate, candidate_end = self._current_line()
            self.pos = candidate_end + 1
            close = FENCE_CLOSE_RE.match(candidate)
            if close and close.group(1)[0] == fence[0] and len(close.group(1)) >= len(fence):
                end = candidate_end
                break

        self._emit(
            {"type": "code", "lang": match.group(2).strip() or None, "value": self.text[start:end]},
            start,
            end,
        )

    def _parse_lens(self, line: str):
        start = self.pos + line.index("!{")
        cursor = start + len(LENS_MARKER)
        configuration: Dict[str, Any] = {}

        if self.text[cursor] == "{":
            close = self._find_configuration_end(start, cursor)
            configuration_text = self.text[cursor:close + 1]
            try:
                configuration = json.loads(configuration_text)
            except json.JSONDecodeError as error:
                point = _point(self.text, start)
                raise ParseError(
                    f"Unable to parse lens JSON configuration: {error}", point["line"], point["column"]
                ) from error
            cursor = close + 1

        if cursor >= self.length or self.text[cursor] != "}":
            point = _point(self.text, start)
            raise ParseError("Expected '}' to close lens node", point["line"], point["column"])

        node = {"type": LENS_ID}
        node.update((key, value) for key, value in configuration.items() if key not in RESERVED_NODE_KEYS)
        end = cursor + 1
        self._emit(node, start, end)
        # anything after the marker on the same line is parsed as new content
        self.pos = end
        debug_log(f"Parsed lens node at offset {start}")

    def _find_configuration_end(self, start: int, cursor: int) -> int:
        depth = 0
        in_string = False
        escaped = False

        for index in range(cursor, self.length):
            char = self.text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return index

        point = _point(self.text, start)
        raise ParseError("Unterminated lens configuration", point["line"], point["column"])


def parse_comment_string(comment: str) -> MarkdownNode:
    """
    Parse comment content into a structured content tree.

    Args:
        comment: Raw comment text

    Returns:
        dict: ``{"type": "root", "children": [...], "separators": [...], "trailingNewline": bool}``

    Raises:
        ParseError: if the content is not a string or an embedded node is malformed
    """
    if not isinstance(comment, str):
        raise ParseError(f"Comment content must be a string, got {type(comment).__name__}")
    return _BlockParser(comment).parse()


def is_lens_markdown_node(node: Any) -> bool:
    """True for embedded visualization nodes carrying a time range and attributes."""
    return (
        isinstance(node, dict)
        and node.get("type") == LENS_ID
        and node.get("timeRange") is not None
        and node.get("attributes") is not None
    )


def get_lens_nodes(tree: MarkdownNode) -> List[MarkdownNode]:
    return [node for node in tree.get("children", []) if is_lens_markdown_node(node)]


def map_embedded_nodes(
    tree: MarkdownNode,
    predicate: Callable[[MarkdownNode], bool],
    transform: Callable[[MarkdownNode], MarkdownNode],
) -> MarkdownNode:
    """
    Apply ``transform`` to every node matching ``predicate``.

    Returns a new tree; non-matching nodes are shared with the input and never
    mutated, and each matching node is handed to ``transform`` as a copy.
    """
    def map_node(node: MarkdownNode) -> MarkdownNode:
        if predicate(node):
            migrated = transform(copy.deepcopy(node))
            if not isinstance(migrated, dict):
                raise TypeError(
                    f"Embedded node transform returned {type(migrated).__name__}, expected a node"
                )
            return migrated

        children = node.get("children")
        if isinstance(children, list):
            return {**node, "children": [map_node(child) for child in children]}
        return node

    return map_node(tree)


def _render_node(node: MarkdownNode) -> str:
    if node.get("type") == LENS_ID:
        configuration = {key: value for key, value in node.items() if key not in RESERVED_NODE_KEYS}
        if not configuration:
            return LENS_MARKER + "}"
        try:
            return LENS_MARKER + json.dumps(configuration, separators=(",", ":"), ensure_ascii=False) + "}"
        except (TypeError, ValueError) as error:
            raise SerializeError(f"Lens node configuration is not serializable: {error}") from error

    value = node.get("value")
    if not isinstance(value, str):
        raise SerializeError(f"Cannot serialize {node.get('type')!r} node without a text value")
    return value


def stringify_markdown_comment(tree: MarkdownNode) -> str:
    """
    Serialize a structured content tree back to comment text.

    Nodes are joined with the separators recorded at parse time. The output
    ends in exactly one newline when the source did and in none otherwise.
    """
    children = tree.get("children", [])
    separators = tree.get("separators", [])
    parts = []

    for index, node in enumerate(children):
        if index < len(separators):
            parts.append(separators[index])
        elif index > 0:
            parts.append("\n\n")
        parts.append(_render_node(node))

    body = "".join(parts).rstrip("\n")
    if tree.get("trailingNewline", True):
        return body + "\n"
    return body


def stringify_comment_without_trailing_newline(original_comment: str, tree: MarkdownNode) -> str:
    """Serialize ``tree`` matching the trailing-newline state of ``original_comment``."""
    stringified = stringify_markdown_comment({**tree, "trailingNewline": True})

    # the original already ended with a newline, keep exactly one
    if original_comment.endswith("\n"):
        return stringified

    return stringified.rstrip("\n")
