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

"""
Migrations Module - Per-Document Schema Upgrades

This module upgrades stored documents from the version they were written at
to the current schema version, one document at a time, across whole batches.

Key Features:
- Sequential execution: transforms run in strict ascending version order
- All-or-nothing documents: a failed step returns the original document,
  never a half-migrated one
- Automatic retry: failed documents keep their old version and migrate again
  on a later read
- Isolation: one document's failure never aborts the rest of the batch
- Deferred steps: skipped by the sweep, reported, and applied on demand
- Comprehensive logging: every failure is logged with document id, field and
  version step

Components:
- DocumentMigrator: pending -> applying -> done | failed for one document
- BatchCoordinator: bounded thread pool over a batch, with cancellation
- MigrationResult / MigrationErrorRecord: structured outcome per document
"""

from .index import (
    VERSION_FIELD,
    BatchCoordinator,
    DocumentMigrator,
    MigrationError,
    MigrationErrorRecord,
    MigrationResult,
    MigrationState,
    log_migration_error,
    main,
)

__all__ = [
    'VERSION_FIELD',
    'BatchCoordinator',
    'DocumentMigrator',
    'MigrationError',
    'MigrationErrorRecord',
    'MigrationResult',
    'MigrationState',
    'log_migration_error',
    'main',
]

__version__ = "1.0.0"
