"""
Domain-specific exception hierarchy for the project-folder router.

All predictable, user-facing failures should raise subclasses of RouterError.
The CLI layer catches RouterError and prints friendly messages instead of
raw stack traces. Per-file failures inside a batch are never raised to the
caller; they are converted into fallback suggestions or failed outcomes.
"""

from __future__ import annotations

from typing import Optional


class RouterError(Exception):
    """Base class for all known, user-facing errors in the router domain.

    Any exception that should result in a friendly CLI message (rather than
    a full stack trace) should inherit from this.
    """

# ---------------------------------------------------------------------------
# Path / filesystem related errors
# ---------------------------------------------------------------------------

class PathError(RouterError):
    """Base class for errors related to input paths and folder layout."""


class PathNotFoundError(PathError):
    """Raised when the provided root path does not exist.

    Example: user runs `commesse-router scan /not/a/real/path`.
    """


class PathNotDirectoryError(PathError):
    """Raised when the provided root path exists but is not a directory."""


class InvalidPathError(PathError):
    """Raised when a OneDrive folder path contains '..' or repeated slashes.

    Checked before any Graph request is issued.
    """


# ---------------------------------------------------------------------------
# Configuration / environment / validation errors
# ---------------------------------------------------------------------------

class ConfigError(RouterError):
    """Raised when the stored configuration is malformed or invalid.

    Covers the `ai_config` / `folder_config` entries of the local storage
    file and unknown project templates.
    """


class EnvError(RouterError):
    """Base class for errors related to environment variables or .env files."""


class MissingApiKeyError(EnvError):
    """Raised when no LLM API key is configured.

    Neither OPENAI_API_KEY nor the `ai_config` entry provides a key.
    """


class MissingDriveTokenError(EnvError):
    """Raised when GRAPH_ACCESS_TOKEN is not set and a remote scan is requested."""


class ValidationError(RouterError):
    """Raised when a required selection is missing before any network call.

    Example: `rename` without a project code, `route` without a template.
    """


# ---------------------------------------------------------------------------
# LLM / classification related errors
# ---------------------------------------------------------------------------

class LlmError(RouterError):
    """Base class for errors that occur while calling or using the LLM API."""


class LlmUnavailableError(LlmError):
    """Raised when the LLM service cannot be reached or returns an error.

    Examples:
    - Network timeout or connection error.
    - Provider returns a server error or rejects the key.
    """


class LlmResponseParseError(LlmError):
    """Raised when the LLM response cannot be parsed into the expected JSON."""


class ClassificationError(RouterError):
    """Raised when planning or classification input is structurally invalid."""


# ---------------------------------------------------------------------------
# OneDrive / Microsoft Graph errors
# ---------------------------------------------------------------------------

class DriveError(RouterError):
    """Base class for Microsoft Graph failures.

    `status_code` is the HTTP status returned by Graph, or None when the
    request never got a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DriveUnavailableError(DriveError):
    """Raised for network failures and 5xx responses."""


class DriveItemNotFoundError(DriveError):
    """Raised for 404 responses (item moved or deleted)."""


class DrivePermissionError(DriveError):
    """Raised for 401/403 responses (expired token, insufficient permissions)."""


# ---------------------------------------------------------------------------
# Execution / move / logging errors
# ---------------------------------------------------------------------------

class ExecutionError(RouterError):
    """Base class for errors that occur while applying moves or renames."""


class FileMoveError(ExecutionError):
    """Raised for catastrophic failures that prevent a batch from starting.

    Per-file failures are recorded as outcomes and do not raise. This error is
    for cases like an unusable download directory.
    """


class LoggingError(ExecutionError):
    """Raised when the tool fails to write its move log."""
