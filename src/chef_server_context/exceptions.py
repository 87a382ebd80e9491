"""Custom exceptions for chef-server-context.

This module defines the error taxonomy surfaced to callers. Library errors
(file I/O, YAML/JSON parsing, httpx, cryptography) are converted at the
adapter boundary and chained, so the original error stays available as
``__cause__``.
"""


class ChefServerContextError(Exception):
    """Base exception for all chef-server-context errors."""

    pass


# Domain-specific base classes
class ConfigurationError(ChefServerContextError):
    """Base class for configuration-related errors."""

    def __init__(self, message: str, config_context: dict = None):
        """Initialize configuration error with context.

        Args:
            message: Error description
            config_context: Configuration-relevant context (file path, key, etc.)
        """
        super().__init__(message)
        self.config_context = config_context or {}


class SecurityError(ChefServerContextError):
    """Base class for secret and key handling errors."""

    def __init__(self, message: str, security_context: dict = None):
        """Initialize security error with context.

        Args:
            message: Error description
            security_context: Security-relevant context (never key material)
        """
        super().__init__(message)
        self.security_context = security_context or {}


class NetworkError(ChefServerContextError):
    """Base class for network-related errors."""

    def __init__(self, message: str, network_context: dict = None):
        """Initialize network error with context.

        Args:
            message: Error description
            network_context: Network-relevant context (method, url, etc.)
        """
        super().__init__(message)
        self.network_context = network_context or {}


# Configuration Domain Exceptions


class ConfigLoadError(ConfigurationError):
    """Raised when a config file is missing, unreadable or malformed."""

    pass


# Security Domain Exceptions


class SecretLoadError(SecurityError):
    """Raised when an encrypted data bag secret file cannot be loaded."""

    pass


class DecryptionError(SecurityError):
    """Raised when an encrypted data bag item cannot be decrypted."""

    pass


# Network Domain Exceptions


class RequestError(NetworkError):
    """Transport, authentication or HTTP status failures from the Chef API."""

    def __init__(
        self,
        message: str,
        network_context: dict = None,
        status_code: int | None = None,
    ):
        """Initialize request error with context.

        Args:
            message: Error description
            network_context: Network-relevant context
            status_code: HTTP status code when the server answered
        """
        super().__init__(message, network_context)
        self.status_code = status_code
