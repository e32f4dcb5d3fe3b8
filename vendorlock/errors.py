"""
Error taxonomy for vendorlock.

Every fatal condition aborts the run before anything is written, so each
error names the package and source it was raised for.
"""

from typing import Optional

from .exit_codes import (
    CommandError,
    API_ERROR,
    DATA_ERROR,
    INTERRUPTED,
)


class ManifestError(CommandError):
    """Base class for failures that prevent a manifest from being produced."""

    kind = "manifest_error"

    def __init__(
        self,
        message: str,
        package: Optional[str] = None,
        source: Optional[str] = None,
        exit_code: int = DATA_ERROR,
    ):
        super().__init__(message, exit_code)
        self.package = package
        self.source = source

    def __str__(self) -> str:
        message = super().__str__()
        details = []
        if self.package:
            details.append(f"package {self.package}")
        if self.source:
            details.append(f"source {self.source}")
        if details:
            return f"{message} ({', '.join(details)})"
        return message


class ParseError(ManifestError):
    """The lock document is not well-formed or lacks required fields."""

    kind = "parse_error"


class UnsupportedSourceKindError(ManifestError):
    """A package source uses a scheme that cannot be vendored."""

    kind = "unsupported_source"


class MissingChecksumError(ManifestError):
    """A registry package has no integrity hash in the lock."""

    kind = "missing_checksum"


class SourceResolutionError(ManifestError):
    """Remote metadata for a version-control source could not be resolved."""

    kind = "resolution_error"

    def __init__(self, message: str, package: Optional[str] = None, source: Optional[str] = None):
        super().__init__(message, package=package, source=source, exit_code=API_ERROR)


class GenerationCancelled(ManifestError):
    """The run was cancelled before resolution completed."""

    kind = "cancelled"

    def __init__(self, message: str = "Generation cancelled", source: Optional[str] = None):
        super().__init__(message, source=source, exit_code=INTERRUPTED)


class TransientNetworkError(Exception):
    """A retryable lookup failure (timeout, connection reset, 5xx, 429).

    Only the resolver sees these; once retries run out they are re-raised
    as SourceResolutionError.
    """
