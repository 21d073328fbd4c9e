#!/usr/bin/env python3
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

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from . import run_module
from .modules.comments import COMMENT_SAVED_OBJECT, create_comments_migrations
from .modules.migrations import VERSION_FIELD, BatchCoordinator, DocumentMigrator, MigrationError, MigrationResult
from .utils.document_store import DocumentStore, DocumentStoreError, JsonDocumentStore
from .utils.index import LOGGER_NAME, debug_log, log_message, set_debug
from .utils.moduleUtils import ConfigError, get_module_debug_mode, load_root_config
from .utils.registry import RegistryError
from .utils.versions import MalformedVersionError


def setup_migration_logging(debug: bool = False):
    """
    Log to stdout only; the host owns file redirection.
    """
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    unified_format = logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s',
                                       datefmt='%Y-%m-%d %H:%M:%S')
    console_handler.setFormatter(unified_format)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.addHandler(console_handler)
    log_message("=" * 80)
    log_message("SOMIGRATIONS MIGRATION SESSION STARTED")
    log_message(f"Command: {' '.join(sys.argv)}")
    log_message(f"Working Directory: {os.getcwd()}")
    log_message(f"Python Version: {sys.version}")
    log_message("=" * 80)


def load_global_index(config_path: Optional[str] = None, required: bool = False) -> dict:
    """Load the engine index.json merged over the built-in defaults."""
    return load_root_config(config_path, required=required)


def stamp_target_version(document: Dict[str, Any], target_version: str) -> Dict[str, Any]:
    """Record the version a stored document was migrated to, so later runs start from it."""
    return {**document, VERSION_FIELD: target_version}


def build_engine(config: Optional[Dict[str, Any]] = None, visualization_migrations: Any = None,
                 target_version: Optional[str] = None, max_workers: Optional[int] = None,
                 default_source_version: Optional[str] = None) -> BatchCoordinator:
    """
    Assemble the comment registry, migrator and batch coordinator.

    Explicit arguments override the values in ``config["config"]``.

    Raises:
        MalformedVersionError: for malformed configured versions
        RegistryError: for an unusable visualization migration source
    """
    config = config or load_global_index()
    settings = config.get("config", {})

    registry = create_comments_migrations(
        visualization_migrations,
        min_deferred_version=settings.get("min_deferred_version", "8.10.0"),
    )
    migrator = DocumentMigrator(
        registry,
        target_version=target_version or settings.get("target_version"),
    )
    coordinator = BatchCoordinator(
        migrator,
        max_workers=max_workers or settings.get("max_workers"),
        default_source_version=default_source_version or settings.get("default_source_version", "0.0.0"),
    )
    log_message(f"Migration engine ready: {len(registry)} versions, target {migrator.target_version}")
    return coordinator


def migrate_saved_objects(store: DocumentStore, coordinator: BatchCoordinator, document_type: str) -> dict:
    """
    Migrate every stored document of one type and write back the successes.

    Written documents carry the target in ``typeMigrationVersion``. Failed and
    cancelled documents are not written, so they keep their stored version and
    are retried on the next run.

    Returns:
        dict: BatchCoordinator summary plus ``bulk_update`` results
    """
    documents = store.find(document_type)
    log_message(f"Found {len(documents)} {document_type} documents")

    target_version = coordinator.migrator.target_version
    results = coordinator.migrate(documents)
    migrated = [stamp_target_version(result.document, target_version) for result in results if result.success]

    bulk_results = store.bulk_update(migrated) if migrated else []
    write_failures = [result for result in bulk_results if not result.success]
    for failure in write_failures:
        log_message(f"Failed to write {failure.type}/{failure.id}: {failure.error}", "ERROR")

    summary = coordinator.summarize(results)
    summary["bulk_update"] = [result.to_dict() for result in bulk_results]
    summary["documents_written"] = len(bulk_results) - len(write_failures)
    if write_failures:
        summary["success"] = False
        summary["error"] = f"{len(write_failures)} migrated documents could not be written"
    return summary


def migrate_saved_object(store: DocumentStore, coordinator: BatchCoordinator, document_type: str,
                         document_id: str) -> MigrationResult:
    """
    Migrate a single stored document and write it back on success.

    Raises:
        NotFoundError: if the document does not exist
    """
    document = store.get(document_type, document_id)
    result = coordinator.migrator.migrate(document, coordinator.source_version_for(document))
    if result.success:
        store.bulk_update([stamp_target_version(result.document, coordinator.migrator.target_version)])
    return result


def check_pending_migrations(store: DocumentStore, coordinator: BatchCoordinator, document_type: str) -> dict:
    """Report which stored documents would be migrated, without changing anything."""
    registry = coordinator.migrator.registry
    target_version = coordinator.migrator.target_version
    pending: List[str] = []
    invalid: List[str] = []

    for document in store.find(document_type):
        source_version = coordinator.source_version_for(document)
        try:
            path = registry.resolve_path(source_version, target_version)
        except MalformedVersionError as e:
            log_message(f"  - {document.get('id')}: {e}", "WARNING")
            invalid.append(document.get("id"))
            continue
        if any(not entry.deferred for entry in path):
            debug_log(f"  - {document.get('id')}: {source_version} -> {target_version}")
            pending.append(document.get("id"))

    return {
        "success": True,
        "target_version": target_version,
        "pending_ids": pending,
        "invalid_ids": invalid,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the migration command line.

    Returns:
        int: exit code (0 success, 1 failures, 130 interrupted)
    """
    parser = argparse.ArgumentParser(description="Saved Object Migration Engine")
    parser.add_argument("--input", required=True,
                        help="JSON file holding the documents to migrate")
    parser.add_argument("--output", default=None,
                        help="Write migrated documents here instead of back to --input")
    parser.add_argument("--config", default=None,
                        help="Path to an index.json configuration (default: packaged one)")
    parser.add_argument("--document-type", default=None,
                        help="Document type to migrate (default: read from index.json)")
    parser.add_argument("--from-version", default=None,
                        help="Version of documents that do not record one")
    parser.add_argument("--to-version", default=None,
                        help="Target version (default: latest registered version)")
    parser.add_argument("--max-workers", type=int, default=None,
                        help="Maximum number of concurrent workers")
    parser.add_argument("--check-only", action="store_true",
                        help="Only report documents needing migration, don't migrate them")
    parser.add_argument("--debug", action="store_true",
                        help="Enable verbose debug logging")

    args = parser.parse_args(argv)

    try:
        config = load_global_index(args.config, required=args.config is not None)
        debug = args.debug or get_module_debug_mode(config)
        set_debug(debug)
        setup_migration_logging(debug)

        document_type = args.document_type or config["metadata"].get("document_type", COMMENT_SAVED_OBJECT)
        coordinator = build_engine(
            config,
            target_version=args.to_version,
            max_workers=args.max_workers,
            default_source_version=args.from_version,
        )
        store = JsonDocumentStore(args.input, default_type=document_type, output_path=args.output)

        if args.check_only:
            log_message("Check-only mode: detecting documents without migrating...")
            status = run_module("migrations", ["--check"])
            if status.get("success"):
                log_message(f"Registered versions: {', '.join(status.get('versions', []))}")

            report = check_pending_migrations(store, coordinator, document_type)
            log_message("Check summary:")
            log_message(f"  - Target version: {report['target_version']}")
            log_message(f"  - Documents needing migration: {len(report['pending_ids'])}")
            if report["invalid_ids"]:
                log_message(f"  - Documents with invalid versions: {len(report['invalid_ids'])}", "WARNING")
            return 0

        summary = migrate_saved_objects(store, coordinator, document_type)
        if summary["deferred_versions"]:
            log_message(f"Deferred visualization steps not applied: {', '.join(summary['deferred_versions'])}")

        if not summary["success"]:
            log_message(f"Exiting due to migration failures: {summary['message']}", "ERROR")
            return 1

        log_message("Migration completed successfully")
        return 0

    except KeyboardInterrupt:
        log_message("Migration interrupted by user", "WARNING")
        return 130
    except (ConfigError, DocumentStoreError, MalformedVersionError, RegistryError, MigrationError) as e:
        log_message(f"Migration could not start: {e}", "ERROR")
        return 1


if __name__ == "__main__":
    sys.exit(main())
