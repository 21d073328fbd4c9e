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

"""
Utilities for the migration engine.

This module provides the versioning, registry, configuration and storage
helpers used by the migration modules.
"""

from .index import log_message, debug_log, set_debug
from .versions import (
    MalformedVersionError,
    parse_version,
    is_valid_version,
    compare_schema_versions,
    is_at_least,
    sort_versions,
    latest_version
)
from .registry import (
    RegistryError,
    TransformError,
    MigrationContext,
    TransformEntry,
    TransformRegistry,
    compose_transforms,
    merge_registries,
    resolve_registry_source
)
from .moduleUtils import ConfigError, load_root_config, conditional_config_return, get_module_debug_mode
from .document_store import (
    NotFoundError,
    DocumentStoreError,
    BulkUpdateResult,
    DocumentStore,
    JsonDocumentStore
)

__all__ = [
    'log_message',
    'debug_log',
    'set_debug',
    'MalformedVersionError',
    'parse_version',
    'is_valid_version',
    'compare_schema_versions',
    'is_at_least',
    'sort_versions',
    'latest_version',
    'RegistryError',
    'TransformError',
    'MigrationContext',
    'TransformEntry',
    'TransformRegistry',
    'compose_transforms',
    'merge_registries',
    'resolve_registry_source',
    'ConfigError',
    'load_root_config',
    'conditional_config_return',
    'get_module_debug_mode',
    'NotFoundError',
    'DocumentStoreError',
    'BulkUpdateResult',
    'DocumentStore',
    'JsonDocumentStore'
]
