"""
SOMIGRATIONS Saved Object Migration Engine - Migrations Module
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

import asyncio
import copy
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from somigrations.utils.index import debug_log, log_message
from somigrations.utils.moduleUtils import conditional_config_return
from somigrations.utils.registry import MigrationContext, TransformEntry, TransformError, TransformRegistry
from somigrations.utils.versions import MalformedVersionError, compare_schema_versions, parse_version, sort_versions

# Document key holding the version a stored document was last migrated to
VERSION_FIELD = "typeMigrationVersion"


class MigrationError(Exception):
    """Custom exception for migration engine misuse (not per-document failures)."""
    pass


class MigrationState(Enum):
    PENDING = "pending"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MigrationErrorRecord:
    """Structured description of a failed migration step."""
    document_id: Optional[str]
    field: Optional[str]
    version_step: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MigrationResult:
    """Outcome of migrating one document."""
    document_id: Optional[str]
    document: Any
    state: MigrationState
    version: str
    step_index: int = 0
    last_good_version: Optional[str] = None
    error: Optional[MigrationErrorRecord] = None
    deferred_versions: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is MigrationState.DONE

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


def _document_id(document: Any) -> Optional[str]:
    if isinstance(document, dict):
        return document.get("id")
    return None


def log_migration_error(document_id: Optional[str], version_step: str, error: BaseException,
                        document_type: str, field_name: Optional[str] = None):
    """Log a failed document step with the document id and failing field attached."""
    log_message(
        f"Failed to migrate {document_type} with doc id: {document_id} "
        f"version: {version_step} error: {error}",
        "ERROR",
        meta={field_name or document_type: {"id": document_id}},
    )


class DocumentMigrator:
    """
    Brings one document from its recorded version up to the target version.

    Every eager transform between the two versions runs in ascending order on
    a private copy of the document. If any step fails the original document is
    returned untouched together with an error record; nothing raised by a
    transform escapes ``migrate``.
    """

    def __init__(self, registry: TransformRegistry, target_version: Optional[str] = None,
                 document_type: str = "comment"):
        self.registry = registry
        self.target_version = target_version or registry.latest_version or "0.0.0"
        parse_version(self.target_version)
        self.document_type = document_type

    def _apply_step(self, document: Dict[str, Any], entry: TransformEntry) -> Dict[str, Any]:
        context = MigrationContext(migration_version=entry.version, document_type=self.document_type)
        migrated = entry.transform(copy.deepcopy(document), context)

        if not isinstance(migrated, dict):
            raise TransformError(
                f"Transform for {entry.version} returned {type(migrated).__name__}, expected a document"
            )

        return self._normalize_references(migrated)

    @staticmethod
    def _normalize_references(document: Dict[str, Any]) -> Dict[str, Any]:
        references = document.get("references")
        if isinstance(references, list):
            return document
        if references is None:
            return {**document, "references": []}
        raise TransformError(
            f"references must be a list, got {type(references).__name__}",
            field="references",
            document_id=_document_id(document),
        )

    def failure_result(self, document: Any, source_version: str, step_index: int,
                       last_good_version: Optional[str], version_step: str,
                       error: BaseException, field_name: Optional[str] = None) -> MigrationResult:
        """Log a failed step and build a FAILED result carrying the original document."""
        document_id = _document_id(document)
        field_name = field_name or getattr(error, "field", None)
        log_migration_error(document_id, version_step, error, self.document_type, field_name)

        return MigrationResult(
            document_id=document_id,
            document=document,
            state=MigrationState.FAILED,
            version=source_version,
            step_index=step_index,
            last_good_version=last_good_version,
            error=MigrationErrorRecord(
                document_id=document_id,
                field=field_name,
                version_step=version_step,
                message=str(error),
            ),
        )

    def _stamp_version(self, document: Dict[str, Any]) -> Dict[str, Any]:
        if VERSION_FIELD in document and document[VERSION_FIELD] != self.target_version:
            return {**document, VERSION_FIELD: self.target_version}
        return document

    def migrate(self, document: Dict[str, Any], source_version: str = "0.0.0") -> MigrationResult:
        """
        Migrate a single document.

        Args:
            document: Document at ``source_version``
            source_version: Version the document was last migrated to

        Returns:
            MigrationResult: DONE with the migrated document, or FAILED with the
            original document and an error record
        """
        document_id = _document_id(document)

        try:
            parse_version(source_version)
        except MalformedVersionError as error:
            return self.failure_result(document, str(source_version), 0, None, str(source_version),
                                       error, field_name=VERSION_FIELD)

        if compare_schema_versions(source_version, self.target_version) > 0:
            error = TransformError(
                f"Document version {source_version} is newer than target version {self.target_version}"
            )
            return self.failure_result(document, source_version, 0, None, source_version,
                                       error, field_name=VERSION_FIELD)

        path = self.registry.resolve_path(source_version, self.target_version)
        if not path:
            debug_log(f"No transforms for {self.document_type} {document_id} at {source_version}")
            return MigrationResult(
                document_id=document_id,
                document=self._stamp_version(document) if source_version != self.target_version else document,
                state=MigrationState.DONE,
                version=self.target_version,
                last_good_version=source_version,
            )

        current = document
        last_good_version = source_version
        deferred_versions = []
        state = MigrationState.APPLYING

        for step_index, entry in enumerate(path):
            if entry.deferred:
                deferred_versions.append(entry.version)
                continue

            debug_log(f"{state.value}: {self.document_type} {document_id} step {step_index} -> {entry.version}")
            try:
                current = self._apply_step(current, entry)
            except Exception as error:
                return self.failure_result(document, source_version, step_index, last_good_version,
                                           entry.version, error)
            last_good_version = entry.version

        # every resolved step may have been deferred
        try:
            current = self._normalize_references(current)
        except TransformError as error:
            return self.failure_result(document, source_version, len(path), last_good_version,
                                       path[-1].version, error)

        state = MigrationState.DONE
        return MigrationResult(
            document_id=document_id,
            document=self._stamp_version(current),
            state=state,
            version=self.target_version,
            step_index=len(path),
            last_good_version=last_good_version,
            deferred_versions=deferred_versions,
        )

    def apply_deferred(self, document: Dict[str, Any], versions: Optional[Iterable[str]] = None) -> MigrationResult:
        """
        Apply deferred transforms on demand to a document already at the target version.

        Args:
            document: Document previously migrated by ``migrate``
            versions: Deferred versions to apply (defaults to every deferred
                version up to the target)

        Raises:
            MigrationError: if a requested version has no deferred transform
        """
        if versions is None:
            versions = [
                version for version in self.registry.deferred_versions
                if compare_schema_versions(version, self.target_version) <= 0
            ]

        entries = []
        for version in sort_versions(versions):
            entry = self.registry.get(version)
            if entry is None or not entry.deferred:
                raise MigrationError(f"No deferred transform registered for {version}")
            entries.append(entry)

        document_id = _document_id(document)
        current = document
        last_good_version = None

        for step_index, entry in enumerate(entries):
            try:
                current = self._apply_step(current, entry)
            except Exception as error:
                return self.failure_result(document, self.target_version, step_index, last_good_version,
                                           entry.version, error)
            last_good_version = entry.version

        return MigrationResult(
            document_id=document_id,
            document=current,
            state=MigrationState.DONE,
            version=self.target_version,
            step_index=len(entries),
            last_good_version=last_good_version,
        )


class BatchCoordinator:
    """
    Runs the DocumentMigrator over a batch of documents on a bounded thread pool.

    Documents share no state, so each one migrates independently; a failed
    document never affects another document's outcome or its position in the
    output. Cancellation is checked before each document starts.
    """

    def __init__(self, migrator: DocumentMigrator, max_workers: Optional[int] = None,
                 default_source_version: str = "0.0.0"):
        if max_workers is not None and max_workers < 1:
            raise MigrationError(f"max_workers must be at least 1, got {max_workers}")
        parse_version(default_source_version)
        self.migrator = migrator
        self.max_workers = max_workers
        self.default_source_version = default_source_version
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        """Stop starting new documents; documents already running finish normally."""
        log_message("Migration batch cancellation requested", "WARNING")
        self._cancelled.set()

    def reset(self):
        self._cancelled.clear()

    def source_version_for(self, document: Any) -> str:
        """Version a document was last migrated to, falling back to the batch default."""
        if isinstance(document, dict) and document.get(VERSION_FIELD):
            return document[VERSION_FIELD]
        return self.default_source_version

    def _migrate_one(self, document: Any) -> MigrationResult:
        source_version = self.source_version_for(document)

        if self._cancelled.is_set():
            return MigrationResult(
                document_id=_document_id(document),
                document=document,
                state=MigrationState.PENDING,
                version=str(source_version),
            )

        try:
            return self.migrator.migrate(document, source_version)
        except Exception as error:
            log_message(f"Unexpected error migrating {_document_id(document)}: {error}", "ERROR")
            return self.migrator.failure_result(document, str(source_version), 0, None,
                                                str(source_version), error)

    def migrate(self, documents: Iterable[Dict[str, Any]]) -> List[MigrationResult]:
        """
        Migrate every document in the batch.

        Returns:
            List[MigrationResult]: one result per input document, in input order
        """
        documents = list(documents)
        log_message(f"Starting migration of {len(documents)} documents to {self.migrator.target_version}")

        if not documents:
            log_message("No documents to migrate")
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(executor.map(self._migrate_one, documents))

        self._log_summary(results)
        return results

    async def migrate_async(self, documents: Iterable[Dict[str, Any]]) -> List[MigrationResult]:
        """Asyncio variant of ``migrate``; per-document work still runs on the thread pool."""
        documents = list(documents)
        log_message(f"Starting async migration of {len(documents)} documents to {self.migrator.target_version}")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            loop = asyncio.get_running_loop()
            futures = [loop.run_in_executor(executor, self._migrate_one, document) for document in documents]
            results = list(await asyncio.gather(*futures))

        self._log_summary(results)
        return results

    def migrate_documents(self, documents: Iterable[Dict[str, Any]]) -> List[Any]:
        """Migrate a batch and return only the resulting documents."""
        return [result.document for result in self.migrate(documents)]

    def _log_summary(self, results: List[MigrationResult]):
        summary = self.summarize(results)
        log_message("*" * 60)
        log_message(
            f"Migration execution complete: "
            f"{summary['documents_successful']} successful, "
            f"{summary['documents_failed']} failed, "
            f"{summary['documents_pending']} pending"
        )
        if summary["documents_failed"]:
            failed_ids = [str(failure["document_id"]) for failure in summary["failures"]]
            log_message(f"  - Failed documents: {', '.join(failed_ids)}", "WARNING")
        if summary["documents_pending"]:
            log_message(f"  - Not started (cancelled): {len(summary['pending_ids'])}", "WARNING")

    @staticmethod
    def summarize(results: List[MigrationResult]) -> Dict[str, Any]:
        successful = [result for result in results if result.state is MigrationState.DONE]
        failed = [result for result in results if result.state is MigrationState.FAILED]
        pending = [result for result in results if result.state is MigrationState.PENDING]
        deferred = sorted(
            {version for result in successful for version in result.deferred_versions},
            key=parse_version,
        )

        summary = {
            "success": not failed and not pending,
            "total_documents": len(results),
            "documents_successful": len(successful),
            "documents_failed": len(failed),
            "documents_pending": len(pending),
            "failures": [result.error.to_dict() for result in failed if result.error],
            "pending_ids": [result.document_id for result in pending],
            "deferred_versions": deferred,
        }

        if failed:
            summary["message"] = f"{len(failed)}/{len(results)} documents failed to migrate"
            summary["error"] = "Failed documents keep their previous version and will retry on next read"
        elif pending:
            summary["message"] = f"Batch cancelled with {len(pending)} documents not migrated"
        else:
            summary["message"] = f"Migrated {len(successful)} documents"
        return summary


def main(args=None):
    """
    Main entry point for the migrations module.

    Args:
        args: List of arguments (supports '--check', '--version')

    Returns:
        dict: Status of the comment migration registry
    """
    if args is None:
        args = []

    from somigrations.modules.comments import __version__ as comments_version
    from somigrations.modules.comments import create_comments_migrations

    try:
        if "--version" in args:
            log_message(f"Comment migrations version: {comments_version}")
            return {
                "success": True,
                "schema_version": comments_version,
                "module": "migrations",
            }

        registry = create_comments_migrations()
        log_message(
            f"Migrations module status: {len(registry)} versions, "
            f"{len(registry.deferred_versions)} deferred"
        )
        result = {
            "success": True,
            "versions": registry.versions,
            "eager_versions": registry.eager_versions,
            "deferred_versions": registry.deferred_versions,
            "latest_version": registry.latest_version,
        }
        return conditional_config_return(result, {"registry": repr(registry)})

    except Exception as e:
        log_message(f"Migrations module failed: {e}", "ERROR")
        return {"success": False, "error": str(e)}


if __name__ == "__main__":
    import sys
    result = main(sys.argv[1:])
    if not result.get("success", False):
        sys.exit(1)
