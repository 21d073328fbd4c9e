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
Schema version utilities.

Versions are dotted numeric identifiers (major.minor.patch). They key the
transform registry and gate which transforms run, so a malformed version is a
configuration error and fails immediately instead of falling back to 0.0.0.
"""

import re
from functools import cmp_to_key
from typing import Iterable, List, Tuple

from .index import debug_log

VERSION_PATTERN = re.compile(r"^(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)$")


class MalformedVersionError(ValueError):
    """Raised when a version identifier is not a dotted major.minor.patch string."""

    def __init__(self, version):
        self.version = version
        super().__init__(f"Malformed version identifier: {version!r} (expected major.minor.patch)")


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse a version string into a comparable tuple.

    Args:
        version: Version string (e.g., "8.1.0")

    Returns:
        Tuple[int, int, int]: (major, minor, patch)

    Raises:
        MalformedVersionError: if the string is not exactly three numeric components
    """
    if not isinstance(version, str):
        raise MalformedVersionError(version)

    match = VERSION_PATTERN.fullmatch(version)
    if not match:
        raise MalformedVersionError(version)

    return tuple(int(part) for part in match.groups())


def is_valid_version(version: str) -> bool:
    try:
        parse_version(version)
        return True
    except MalformedVersionError:
        return False


def compare_schema_versions(version1: str, version2: str) -> int:
    """
    Compare two schema version strings.

    Args:
        version1: First version string (e.g., "7.14.0")
        version2: Second version string (e.g., "8.0.0")

    Returns:
        int: -1 if version1 < version2, 0 if equal, 1 if version1 > version2
    """
    v1_parts = parse_version(version1)
    v2_parts = parse_version(version2)

    if v1_parts < v2_parts:
        result = -1
    elif v1_parts > v2_parts:
        result = 1
    else:
        result = 0

    debug_log(f"Compared versions: '{version1}' vs '{version2}' -> {result}")
    return result


def is_at_least(minimum: str, actual: str) -> bool:
    """Return True when ``actual`` is greater than or equal to ``minimum``."""
    return compare_schema_versions(actual, minimum) >= 0


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Sort version strings in ascending order, validating each one."""
    return sorted(versions, key=cmp_to_key(compare_schema_versions))


def latest_version(versions: Iterable[str], default: str = "0.0.0") -> str:
    ordered = sort_versions(versions)
    if not ordered:
        return default
    return ordered[-1]
