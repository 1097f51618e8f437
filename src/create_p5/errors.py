"""Error types raised by create-p5."""

from typing import Optional


class CreateP5Error(Exception):
    """Base class for all create-p5 errors."""


class InvalidSpecError(CreateP5Error):
    """Raised when a template spec cannot be resolved to a GitHub repository."""


class FetchError(CreateP5Error):
    """Raised when a download fails (network, HTTP status, redirects)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidVersionError(CreateP5Error, ValueError):
    """Raised for version strings that are not strict X.Y.Z[-prerelease]."""


class RegistryError(CreateP5Error):
    """Raised when the package registry cannot be queried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(CreateP5Error):
    """Raised when a project config file is missing or malformed."""
