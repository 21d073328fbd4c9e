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
Document Store

Key-value document stores behind the get / bulk update boundary the migration
workflows talk to. The engine itself only ever sees in-memory documents; these
stores are what a host wires around it.

Key Features:
- Documents keyed by (type, id)
- Copies in, copies out: callers never hold references into the store
- Per-document bulk update results (a missing document fails alone)
- JSON file persistence with atomic replace

Usage:
    from somigrations.utils.document_store import JsonDocumentStore

    store = JsonDocumentStore("/var/lib/somigrations/comments.json", default_type="cases-comments")
    doc = store.get("cases-comments", "c1")
    store.bulk_update([migrated_doc])
"""

import copy
import json
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .index import debug_log, log_message


class NotFoundError(Exception):
    """Raised when a document does not exist in the store."""

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"Saved object [{document_type}/{document_id}] not found")


class DocumentStoreError(Exception):
    """Custom exception for store loading and persistence failures."""
    pass


@dataclass
class BulkUpdateResult:
    """Outcome of writing one document in a bulk update."""
    id: Optional[str]
    type: Optional[str]
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BulkUpdateResult':
        return cls(**data)


class DocumentStore:
    """In-memory document store keyed by (type, id)."""

    def __init__(self, documents: Iterable[Dict[str, Any]] = (), default_type: Optional[str] = None):
        self.default_type = default_type
        self._documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()
        for document in documents:
            key = self._key(document)
            self._documents[key] = copy.deepcopy(document)

    def _key(self, document: Dict[str, Any]) -> Tuple[str, str]:
        document_type = document.get("type") or self.default_type
        document_id = document.get("id")
        if not document_type or document_id is None:
            raise DocumentStoreError(f"Document needs a type and an id: {document!r}")
        return document_type, document_id

    def get(self, document_type: str, document_id: str) -> Dict[str, Any]:
        """Return a copy of one document; raises NotFoundError if it does not exist."""
        with self._lock:
            document = self._documents.get((document_type, document_id))
            if document is None:
                raise NotFoundError(document_type, document_id)
            return copy.deepcopy(document)

    def find(self, document_type: str) -> List[Dict[str, Any]]:
        """Return copies of every document of ``document_type``, in insertion order."""
        with self._lock:
            return [
                copy.deepcopy(document)
                for (stored_type, _), document in self._documents.items()
                if stored_type == document_type
            ]

    def bulk_update(self, documents: Iterable[Dict[str, Any]]) -> List[BulkUpdateResult]:
        """
        Replace existing documents.

        Returns:
            List[BulkUpdateResult]: one result per input document; documents
            that are not already stored fail without affecting the others
        """
        results = []
        with self._lock:
            for document in documents:
                try:
                    key = self._key(document)
                except DocumentStoreError as e:
                    results.append(BulkUpdateResult(id=document.get("id"), type=document.get("type"),
                                                    success=False, error=str(e)))
                    continue

                if key not in self._documents:
                    results.append(BulkUpdateResult(id=key[1], type=key[0], success=False,
                                                    error=str(NotFoundError(*key))))
                    continue

                self._documents[key] = copy.deepcopy(document)
                results.append(BulkUpdateResult(id=key[1], type=key[0], success=True))

        debug_log(f"Bulk update wrote {sum(1 for r in results if r.success)}/{len(results)} documents")
        return results

    def all_documents(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(document) for document in self._documents.values()]

    def __len__(self) -> int:
        return len(self._documents)


class JsonDocumentStore(DocumentStore):
    """Document store persisted as a JSON array of documents."""

    def __init__(self, path: str, default_type: Optional[str] = None, output_path: Optional[str] = None):
        self.path = Path(path)
        self.output_path = Path(output_path) if output_path else self.path
        super().__init__(self._load_documents(), default_type=default_type)

    def _load_documents(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            raise DocumentStoreError(f"Document file not found: {self.path}")

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise DocumentStoreError(f"Invalid JSON in {self.path}: {e}")

        if isinstance(data, dict) and isinstance(data.get("documents"), list):
            data = data["documents"]
        if not isinstance(data, list):
            raise DocumentStoreError(f"{self.path} must contain a list of documents")

        log_message(f"Loaded {len(data)} documents from {self.path}")
        return data

    def save(self, path: Optional[str] = None):
        """Write every document to ``path`` (defaults to the output file) atomically."""
        target = Path(path) if path else self.output_path
        temp_path = target.with_name(target.name + ".tmp")

        try:
            with open(temp_path, 'w') as f:
                json.dump(self.all_documents(), f, indent=2)
            os.replace(temp_path, target)
        except OSError as e:
            raise DocumentStoreError(f"Failed to write documents to {target}: {e}")

        log_message(f"Saved {len(self)} documents to {target}")

    def bulk_update(self, documents: Iterable[Dict[str, Any]]) -> List[BulkUpdateResult]:
        results = super().bulk_update(documents)
        if any(result.success for result in results):
            self.save()
        return results
