"""Error types raised while resolving and booting a server topology."""

from __future__ import annotations


class HostyardError(Exception):
    """Base error type."""


class ConfigurationError(HostyardError, ValueError):
    """Raised when an option is malformed or conflicts with another option."""


class ResolutionConflict(ConfigurationError):
    """Raised when a web application cannot be mapped onto the resolved hosts."""


class BootstrapFailure(HostyardError, RuntimeError):
    """Raised when the container runtime refuses a host, context or connector."""
