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
Transform Registry

Version-keyed collection of document transforms, assembled from several
sources and merged into one ordered pipeline.

Key Features:
- Explicit ordering: entries are sorted by the version comparator, never by
  mapping insertion order
- Composition on collision: registering a transform for an existing version
  chains it after the existing one instead of replacing it
- Immutable: register/merge return new registries, so one registry can be
  shared by every worker thread without locks
- Deferred entries: transforms flagged deferred are skipped by the eager
  sweep and applied on demand

Usage:
    from somigrations.utils.registry import TransformRegistry, merge_registries

    builtin = TransformRegistry.from_map({"7.11.0": add_type, "8.0.0": strip_rule})
    merged = merge_registries(builtin, visualization_registry)
    for entry in merged.resolve_path("7.10.0", "8.1.0"):
        doc = entry.transform(doc, MigrationContext(entry.version))
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .index import debug_log, log_message
from .versions import compare_schema_versions, parse_version, sort_versions

TransformFn = Callable[..., Any]


class RegistryError(Exception):
    """Raised when a registry cannot be assembled from its sources."""
    pass


class TransformError(Exception):
    """Raised by a transform that cannot migrate the document it was given."""

    def __init__(self, message: str, field: Optional[str] = None,
                 version_step: Optional[str] = None, document_id: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.version_step = version_step
        self.document_id = document_id


@dataclass(frozen=True)
class MigrationContext:
    """Context handed to every transform: the version step it runs under."""
    migration_version: str
    document_type: str = "comment"


@dataclass(frozen=True)
class TransformEntry:
    """A transform bound to the schema version it upgrades a document to."""
    version: str
    transform: TransformFn
    deferred: bool = False


def compose_transforms(first: TransformFn, second: TransformFn) -> TransformFn:
    """Chain two transforms registered for the same version: ``first`` runs, then ``second``."""
    def composed(state, *args):
        return second(first(state, *args), *args)

    composed.__name__ = f"{getattr(first, '__name__', 'transform')}_then_{getattr(second, '__name__', 'transform')}"
    return composed


def _coerce_entry(version: str, value: Any) -> TransformEntry:
    """Build a TransformEntry from a callable, a params dict or an existing entry."""
    parse_version(version)

    if isinstance(value, TransformEntry):
        if value.version != version:
            raise RegistryError(
                f"Transform entry for {value.version} registered under key {version}"
            )
        transform, deferred = value.transform, value.deferred
    elif isinstance(value, Mapping):
        transform = value.get("transform")
        deferred = bool(value.get("deferred", False))
    else:
        transform, deferred = value, False

    if not callable(transform):
        raise RegistryError(f"Transform registered for {version} is not callable: {transform!r}")

    return TransformEntry(version=version, transform=transform, deferred=deferred)


def _combine_entries(existing: TransformEntry, incoming: TransformEntry) -> TransformEntry:
    debug_log(f"Composing transforms registered for {existing.version}")
    return TransformEntry(
        version=existing.version,
        transform=compose_transforms(existing.transform, incoming.transform),
        # A combined step only stays deferred when every part of it may be deferred
        deferred=existing.deferred and incoming.deferred,
    )


class TransformRegistry:
    """Immutable, version-ordered collection of transform entries."""

    def __init__(self, entries: Iterable[TransformEntry] = ()):
        combined: Dict[str, TransformEntry] = {}
        for entry in entries:
            entry = _coerce_entry(entry.version, entry)
            if entry.version in combined:
                combined[entry.version] = _combine_entries(combined[entry.version], entry)
            else:
                combined[entry.version] = entry

        self._entries: Tuple[TransformEntry, ...] = tuple(
            combined[version] for version in sort_versions(combined)
        )

    @classmethod
    def from_map(cls, migrations: Optional[Mapping[str, Any]]) -> "TransformRegistry":
        """
        Build a registry from a ``{version: transform}`` mapping.

        Values may be plain callables, ``{"transform": fn, "deferred": bool}``
        dicts or TransformEntry instances.
        """
        if not migrations:
            return cls()
        return cls(_coerce_entry(version, value) for version, value in migrations.items())

    def register(self, migrations: Union["TransformRegistry", Mapping[str, Any]]) -> "TransformRegistry":
        """Return a new registry with ``migrations`` added; colliding versions are chained after the existing transform."""
        if isinstance(migrations, TransformRegistry):
            incoming = migrations.entries
        else:
            incoming = TransformRegistry.from_map(migrations).entries
        return TransformRegistry(self._entries + incoming)

    @property
    def entries(self) -> Tuple[TransformEntry, ...]:
        return self._entries

    @property
    def versions(self) -> List[str]:
        return [entry.version for entry in self._entries]

    @property
    def eager_versions(self) -> List[str]:
        return [entry.version for entry in self._entries if not entry.deferred]

    @property
    def deferred_versions(self) -> List[str]:
        return [entry.version for entry in self._entries if entry.deferred]

    @property
    def latest_version(self) -> Optional[str]:
        if not self._entries:
            return None
        return self._entries[-1].version

    def get(self, version: str) -> Optional[TransformEntry]:
        for entry in self._entries:
            if entry.version == version:
                return entry
        return None

    def resolve_path(self, from_version: str, to_version: Optional[str] = None) -> List[TransformEntry]:
        """
        Select the transforms needed to bring a document from one version to another.

        Args:
            from_version: Version the document is currently at
            to_version: Target version (defaults to the latest registered version)

        Returns:
            List[TransformEntry]: entries with from_version < version <= to_version,
            in ascending version order
        """
        parse_version(from_version)
        if to_version is None:
            to_version = self.latest_version or from_version
        parse_version(to_version)

        path = [
            entry for entry in self._entries
            if compare_schema_versions(entry.version, from_version) > 0
            and compare_schema_versions(entry.version, to_version) <= 0
        ]
        debug_log(f"Resolved {len(path)} transforms from {from_version} to {to_version}")
        return path

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TransformEntry]:
        return iter(self._entries)

    def __contains__(self, version: object) -> bool:
        return any(entry.version == version for entry in self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransformRegistry):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        return f"TransformRegistry(versions={self.versions}, deferred={self.deferred_versions})"


def merge_registries(*registries: Union[TransformRegistry, Mapping[str, Any]]) -> TransformRegistry:
    """
    Merge registries left to right.

    For a version present in several inputs the transforms run in argument
    order, so ``merge_registries(a, b)`` applies a's transform and then b's.
    """
    merged = TransformRegistry()
    for registry in registries:
        merged = merged.register(registry)
    return merged


def resolve_registry_source(source: Any) -> TransformRegistry:
    """
    Resolve a registry contributed by another component.

    The source is either an already-built registry (or ``{version: fn}`` map)
    or a zero-argument factory returning one. It is resolved once, at assembly
    time, before any document is migrated.
    """
    if source is None:
        return TransformRegistry()
    if isinstance(source, TransformRegistry):
        return source
    if isinstance(source, Mapping):
        return TransformRegistry.from_map(source)
    if callable(source):
        log_message("Resolving transform registry from factory")
        resolved = source()
        if resolved is None:
            return TransformRegistry()
        if isinstance(resolved, TransformRegistry):
            return resolved
        if isinstance(resolved, Mapping):
            return TransformRegistry.from_map(resolved)
        raise RegistryError(f"Registry factory returned unsupported value: {type(resolved).__name__}")
    raise RegistryError(f"Unsupported registry source: {type(source).__name__}")
