"""Custom exception types for the velocity metrics tool."""


class VelocityError(Exception):
    """Base exception for all recoverable velocity errors."""


class ConfigurationError(VelocityError):
    """Raised when the configuration file or runtime settings are missing or invalid."""


class AuthenticationError(VelocityError):
    """Raised when GitHub credentials are unavailable or rejected."""


class ApiError(VelocityError):
    """Raised when a GitHub API request fails or returns an unexpected response."""


class DataValidationError(VelocityError):
    """Raised when extracted data documents are missing or do not have the expected shape."""
