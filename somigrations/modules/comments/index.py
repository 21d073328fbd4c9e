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
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from somigrations.utils.index import debug_log, log_message
from somigrations.utils.registry import (
    MigrationContext,
    TransformEntry,
    TransformError,
    TransformRegistry,
    merge_registries,
    resolve_registry_source,
)
from somigrations.utils.versions import is_at_least, parse_version
from somigrations.modules.markdown import (
    is_lens_markdown_node,
    map_embedded_nodes,
    parse_comment_string,
    stringify_comment_without_trailing_newline,
)
from .config import GENERATED_ALERT, MIN_DEFERRED_VERSION, SECURITY_SOLUTION_OWNER, SUB_CASE_SAVED_OBJECT


class CommentType(str, Enum):
    user = "user"
    alert = "alert"
    actions = "actions"
    external_reference = "externalReference"
    persistable_state = "persistableState"


class AssociationType(str, Enum):
    case = "case"


def _references(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    references = doc.get("references")
    if references is None:
        return []
    if not isinstance(references, list):
        raise TransformError(
            f"references must be a list, got {type(references).__name__}",
            field="references",
            document_id=doc.get("id"),
        )
    return list(references)


def add_comment_type(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
    """7.11.0: every comment written before typed comments is a user comment."""
    return {
        **doc,
        "attributes": {**doc["attributes"], "type": CommentType.user.value},
        "references": _references(doc),
    }


def add_association_type(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
    """7.12.0: associate comments with cases; alert comments gain an empty rule."""
    attributes = {**doc["attributes"], "associationType": AssociationType.case.value}

    # only alert comments carry rule information; generated alerts appeared in 7.12
    if doc["attributes"].get("type") == CommentType.alert.value:
        attributes = {**attributes, "rule": {"id": None, "name": None}}

    return {**doc, "attributes": attributes, "references": _references(doc)}


def add_owner_to_document(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
    """7.14.0: comments created before owners existed belong to the security solution."""
    return {
        **doc,
        "attributes": {**doc["attributes"], "owner": SECURITY_SOLUTION_OWNER},
        "references": _references(doc),
    }


def remove_rule_information(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
    """
    8.0.0: null out the rule stored on alert comments.

    Consumers look the rule up again when the stored id and name are null.
    """
    comment_type = doc["attributes"].get("type")
    if comment_type in (CommentType.alert.value, GENERATED_ALERT):
        return {
            **doc,
            "attributes": {**doc["attributes"], "rule": {"id": None, "name": None}},
            "references": _references(doc),
        }

    return {**doc, "references": _references(doc)}


def remove_association_type(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
    """8.1.0: drop the association type and any reference to a sub case."""
    doc_copy = copy.deepcopy(doc)
    doc_copy["attributes"].pop("associationType", None)

    return {
        **doc_copy,
        "references": [
            reference for reference in _references(doc_copy)
            if reference.get("type") != SUB_CASE_SAVED_OBJECT
        ],
    }


COMMENTS_MIGRATIONS = {
    "7.11.0": add_comment_type,
    "7.12.0": add_association_type,
    "7.14.0": add_owner_to_document,
    "8.0.0": remove_rule_information,
    "8.1.0": remove_association_type,
}


def migrate_by_value_lens_visualizations(
    migrate: Callable[[Dict[str, Any]], Dict[str, Any]],
    migration_version: str,
    min_deferred_version: str = MIN_DEFERRED_VERSION,
) -> TransformEntry:
    """
    Wrap a visualization owner's node migration as a comment transform.

    The step is deferred when its own version is at least ``min_deferred_version``;
    the document's version plays no part in that decision.

    Args:
        migrate: Node-level migrate function contributed by the visualization owner
        migration_version: Version key the owner registered ``migrate`` under
        min_deferred_version: Threshold for deferring the step

    Returns:
        TransformEntry: document-level transform for ``migration_version``
    """
    deferred = is_at_least(min_deferred_version, migration_version)

    def transform(doc: Dict[str, Any], context: Optional[MigrationContext] = None) -> Dict[str, Any]:
        comment = doc.get("attributes", {}).get("comment")
        if comment is None:
            return doc

        try:
            parsed_comment = parse_comment_string(comment)
            migrated_comment = map_embedded_nodes(parsed_comment, is_lens_markdown_node, migrate)
            return {
                **doc,
                "attributes": {
                    **doc["attributes"],
                    "comment": stringify_comment_without_trailing_newline(comment, migrated_comment),
                },
            }
        except Exception as error:
            raise TransformError(
                f"Failed to migrate embedded visualizations: {error}",
                field="comment",
                version_step=migration_version,
                document_id=doc.get("id"),
            ) from error

    transform.__name__ = f"migrate_lens_visualizations_{migration_version.replace('.', '_')}"
    return TransformEntry(version=migration_version, transform=transform, deferred=deferred)


def create_comments_migrations(
    visualization_migrations: Any = None,
    min_deferred_version: str = MIN_DEFERRED_VERSION,
) -> TransformRegistry:
    """
    Assemble the comment migration registry.

    Args:
        visualization_migrations: Registry source from the visualization owner:
            a ``{version: migrate}`` map, a TransformRegistry, a factory returning
            either, or None
        min_deferred_version: Threshold for deferring visualization steps

    Returns:
        TransformRegistry: built-in comment steps merged with the visualization
        steps; at a shared version the built-in step runs first

    Raises:
        MalformedVersionError: for a malformed threshold or version key
        RegistryError: for an unusable registry source
    """
    parse_version(min_deferred_version)

    visualization_registry = resolve_registry_source(visualization_migrations)
    embeddable_migrations = TransformRegistry(
        migrate_by_value_lens_visualizations(entry.transform, entry.version, min_deferred_version)
        for entry in visualization_registry
    )

    registry = merge_registries(TransformRegistry.from_map(COMMENTS_MIGRATIONS), embeddable_migrations)
    debug_log(f"Comment registry versions: {registry.versions}")
    log_message(
        f"Assembled comment migrations: {len(registry.eager_versions)} eager, "
        f"{len(registry.deferred_versions)} deferred"
    )
    return registry
