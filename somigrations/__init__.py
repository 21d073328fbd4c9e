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
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import importlib
import traceback
from typing import Any, Dict, List, Optional

# Import shared utilities
from .utils.index import log_message, debug_log, set_debug
from .utils.versions import MalformedVersionError, compare_schema_versions, parse_version
from .utils.registry import (
    RegistryError,
    TransformError,
    MigrationContext,
    TransformEntry,
    TransformRegistry,
    merge_registries
)
from .utils.document_store import NotFoundError, DocumentStore, JsonDocumentStore
from .modules.markdown import ParseError, parse_comment_string, stringify_markdown_comment
from .modules.migrations import (
    BatchCoordinator,
    DocumentMigrator,
    MigrationError,
    MigrationResult,
    MigrationState
)
from .modules.comments import create_comments_migrations

# Re-export utilities for easy access by submodules and hosts
__all__ = [
    'log_message',
    'debug_log',
    'set_debug',
    'run_module',
    'MalformedVersionError',
    'compare_schema_versions',
    'parse_version',
    'RegistryError',
    'TransformError',
    'MigrationContext',
    'TransformEntry',
    'TransformRegistry',
    'merge_registries',
    'NotFoundError',
    'DocumentStore',
    'JsonDocumentStore',
    'ParseError',
    'parse_comment_string',
    'stringify_markdown_comment',
    'BatchCoordinator',
    'DocumentMigrator',
    'MigrationError',
    'MigrationResult',
    'MigrationState',
    'create_comments_migrations'
]

__version__ = "1.0.0"


def run_module(module_path: str, args: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Run a module's ``main(args)`` entry point.

    Args:
        module_path (str): Module name (e.g. "migrations") or a dotted path
            relative to this package (e.g. "modules.migrations")
        args (list, optional): Arguments to pass to the module's main function

    Returns:
        dict: Result from the module, or ``{"success": False, "error": ...}``
        if it could not be imported or raised
    """
    if "." not in module_path:
        # Simple module name - look in modules subdirectory
        module_path = f"modules.{module_path}"

    try:
        mod = importlib.import_module(f".{module_path}", package=__name__)
    except ImportError as e:
        log_message(f"Failed to import module {module_path}: {e}", "ERROR")
        return {"success": False, "error": str(e)}

    if not hasattr(mod, 'main'):
        log_message(f"Module {module_path} has no main(args) function.", "ERROR")
        return {"success": False, "error": f"{module_path} has no main(args) function"}

    debug_log(f"Running module: {module_path} {args or []}")
    try:
        result = mod.main(args)
    except Exception as e:
        log_message(f"Error running module {module_path}: {e}", "ERROR")
        debug_log(traceback.format_exc())
        return {"success": False, "error": str(e)}

    debug_log(f"Completed module: {module_path}")
    return result
