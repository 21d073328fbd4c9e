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

import logging
from typing import Any, Dict, Optional

# Debug flag for verbose logging
DEBUG = False

LOGGER_NAME = "somigrations"

def log_message(message: str, level: str = "INFO", meta: Optional[Dict[str, Any]] = None):
    """
    Unified logger used throughout the engine and its modules.

    Args:
        message (str): The message to log.
        level (str): Log level (e.g., 'INFO', 'ERROR').
        meta (dict, optional): Structured fields attached to the record as
            ``record.migrations`` (e.g. ``{"comment": {"id": "c1"}}``).
    """
    logger = logging.getLogger(LOGGER_NAME)
    extra = {"migrations": meta} if meta is not None else None
    if level == "ERROR":
        logger.error(message, extra=extra)
    elif level == "WARNING":
        logger.warning(message, extra=extra)
    elif level == "DEBUG":
        logger.debug(message, extra=extra)
    else:
        logger.info(message, extra=extra)

def set_debug(enabled: bool):
    """Toggle verbose debug logging for the whole package."""
    global DEBUG
    DEBUG = bool(enabled)

def debug_log(message: str):
    """Debug logging that only shows when DEBUG=True."""
    if DEBUG:
        log_message(message, "DEBUG")
