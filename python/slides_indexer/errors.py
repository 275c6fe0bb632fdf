"""
Error Handling - Centralized error policies and custom exceptions.

This module defines how different error types should be handled throughout
the scan pipeline. Nothing raised while processing a single file is allowed
to abort a scan: per-file failures are logged here and turned into warnings
by the orchestrator.
"""

import logging
from enum import Enum, auto
from dataclasses import dataclass
from typing import Optional
from pathlib import Path


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()           # Skip this file silently, continue processing
    WARN = auto()           # Continue, but surface a warning in the summary
    KEEP_CACHED = auto()    # Leave the prior catalog entry untouched


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{file}: {error}"


class IndexingError(Exception):
    """Base exception for indexing errors."""
    pass


class UnsupportedFormat(IndexingError):
    """File extension is not one of the indexed document kinds."""
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Unsupported format: {Path(path).suffix or '<none>'}")


class ExtractionError(IndexingError):
    """File is structurally malformed for a format that must parse."""
    pass


class ToolUnavailable(IndexingError):
    """An optional external tool is missing; the extraction tier is skipped."""
    def __init__(self, tool: str, purpose: str = ""):
        self.tool = tool
        self.purpose = purpose
        detail = f" ({purpose})" if purpose else ""
        super().__init__(f"{tool} not available{detail}")


class PersistError(IndexingError):
    """Durable write of the catalog failed. In-memory state is still valid."""
    pass


class DirectoryNotLinked(IndexingError):
    """A directory-scoped scan was requested for a directory not linked."""
    def __init__(self, directory: str):
        self.directory = directory
        super().__init__(f"Directory not linked: {directory}")


class ScanInProgress(IndexingError):
    """A scan was requested while another one is running."""
    pass


# Error type to policy mapping. Order matters: subclasses before bases.
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    UnsupportedFormat: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Skipping unsupported file: {file}"
    ),
    ToolUnavailable: ErrorPolicy(
        action=ErrorAction.WARN,
        log_level=logging.INFO,
        message_template="{error} while processing {file}"
    ),
    ExtractionError: ErrorPolicy(
        action=ErrorAction.KEEP_CACHED,
        log_level=logging.WARNING,
        message_template="Malformed document: {file} - {error}"
    ),
    PersistError: ErrorPolicy(
        action=ErrorAction.WARN,
        log_level=logging.ERROR,
        message_template="Catalog write failed after {file}: {error}"
    ),
    PermissionError: ErrorPolicy(
        action=ErrorAction.KEEP_CACHED,
        log_level=logging.WARNING,
        message_template="Permission denied: {file}"
    ),
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.KEEP_CACHED,
        log_level=logging.DEBUG,
        message_template="File not found (possibly deleted): {file}"
    ),
    IsADirectoryError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Expected file, got directory: {file}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.KEEP_CACHED,
        log_level=logging.WARNING,
        message_template="OS error reading file: {file} - {error}"
    ),
}


def handle_error(
    error: Exception,
    file_path: Optional[Path] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        file_path: Path to the file being processed (if applicable)
        context: Additional context for logging

    Returns:
        The action to take (SKIP, WARN, KEEP_CACHED)
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Default policy for unknown errors: keep whatever was cached and warn
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.KEEP_CACHED,
            log_level=logging.ERROR,
            message_template="Unexpected error: {file} - {error}"
        )

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action
