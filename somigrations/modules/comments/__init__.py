"""
SOMIGRATIONS Saved Object Migration Engine - Comments Module
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
Comments Module - Comment Document Migrations

Version-keyed transforms for case comment documents, merged with the
visualization migrations contributed by the embedded visualization owner.

Built-in steps:
- 7.11.0: default comment type to "user"
- 7.12.0: add association type; alert comments gain an empty rule
- 7.14.0: add the security solution owner
- 8.0.0: null out rule information on alert comments
- 8.1.0: remove association type and sub case references

Visualization steps rewrite embedded visualization nodes inside the comment
text. Steps at or above MIN_DEFERRED_VERSION are deferred.
"""

from .config import (
    COMMENT_SAVED_OBJECT,
    GENERATED_ALERT,
    MIN_DEFERRED_VERSION,
    SECURITY_SOLUTION_OWNER,
    SUB_CASE_SAVED_OBJECT,
)
from .index import (
    COMMENTS_MIGRATIONS,
    AssociationType,
    CommentType,
    add_association_type,
    add_comment_type,
    add_owner_to_document,
    create_comments_migrations,
    migrate_by_value_lens_visualizations,
    remove_association_type,
    remove_rule_information,
)

__all__ = [
    'COMMENT_SAVED_OBJECT',
    'GENERATED_ALERT',
    'MIN_DEFERRED_VERSION',
    'SECURITY_SOLUTION_OWNER',
    'SUB_CASE_SAVED_OBJECT',
    'COMMENTS_MIGRATIONS',
    'AssociationType',
    'CommentType',
    'add_association_type',
    'add_comment_type',
    'add_owner_to_document',
    'create_comments_migrations',
    'migrate_by_value_lens_visualizations',
    'remove_association_type',
    'remove_rule_information',
]

__version__ = "8.1.0"
