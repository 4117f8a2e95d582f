"""wabridge exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from WABridgeError for easy catching.

The webhook dispatcher never raises these past its boundary: transport,
response and parse problems are carried on a DispatchResult instead.
"""

from __future__ import annotations


class WABridgeError(Exception):
    """Base exception for all wabridge errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "wabridge_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ConfigurationError(WABridgeError):
    """Configuration error.

    Raised when required configuration (n8n base URL, shared secret)
    is missing or invalid.
    """

    code: str = "config_error"


class TransportError(WABridgeError):
    """Network-level failure while talking to n8n.

    Attributes:
        event_type: Event type that was being dispatched.
    """

    code: str = "transport_error"

    def __init__(self, message: str, event_type: str = "") -> None:
        self.event_type = event_type
        super().__init__(message)


class ResponseError(WABridgeError):
    """n8n answered with a non-2xx HTTP status.

    Attributes:
        http_code: HTTP status code returned by n8n.
        body: Raw response body.
    """

    code: str = "response_error"

    def __init__(self, http_code: int, body: str = "", message: str | None = None) -> None:
        self.http_code = http_code
        self.body = body
        super().__init__(message or f"n8n returned HTTP {http_code}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "http_code": self.http_code,
                "body": self.body[:1000],
                "message": self.message,
            }
        }


class ParseWarning(WABridgeError):
    """A successful response body was not valid JSON.

    Not fatal. Attached to the dispatch result alongside the raw body.
    """

    code: str = "parse_warning"


class AuthenticationError(WABridgeError):
    """Authentication failed.

    Raised when the shared secret, bearer token or anti-forgery
    token is invalid or missing.
    """

    code: str = "authentication_error"


class AuthorizationError(WABridgeError):
    """Authorization failed.

    Raised when an authenticated user is not allowed to use vendor endpoints.
    """

    code: str = "authorization_error"


class ValidationError(WABridgeError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(WABridgeError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "vendor").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(WABridgeError):
    """Key-value store operation failed."""

    code: str = "storage_error"


# Short names used in the dispatcher and REST layer
ConfigError = ConfigurationError
AuthError = AuthenticationError
