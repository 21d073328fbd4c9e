"""
SOMIGRATIONS Saved Object Migration Engine - Markdown Module
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

"""
Markdown Module - Structured Comment Content

Parses comment text into a flat tree of block nodes, lets callers rewrite the
embedded visualization nodes, and writes the tree back out.

Key Features:
- Embedded nodes: ``!{lens{...json...}}`` blocks become typed nodes carrying
  their own versioned attributes
- Opaque code: embedded markers inside fenced code blocks stay text
- Layout fidelity: separators between blocks are kept verbatim, and the
  trailing newline matches the source (exactly one, or none)
- Fail loudly: malformed embedded syntax raises ParseError with its position
"""

from .index import (
    LENS_ID,
    ParseError,
    SerializeError,
    parse_comment_string,
    is_lens_markdown_node,
    get_lens_nodes,
    map_embedded_nodes,
    stringify_markdown_comment,
    stringify_comment_without_trailing_newline,
)

__all__ = [
    'LENS_ID',
    'ParseError',
    'SerializeError',
    'parse_comment_string',
    'is_lens_markdown_node',
    'get_lens_nodes',
    'map_embedded_nodes',
    'stringify_markdown_comment',
    'stringify_comment_without_trailing_newline',
]
