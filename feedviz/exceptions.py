"""
Exception hierarchy for the CSS products transfer.

Every failure the transfer surfaces to its caller is a FeedvizError carrying
a human-readable message, a context dict for structured logs and, when one
was caught, the underlying exception chained as ``__cause__``.

Exception Hierarchy:
    FeedvizError (base)
    ├── ConfigError
    ├── AuthenticationError
    ├── UpstreamError
    ├── ProvisioningError
    ├── AppendError
    └── RowEncodingError
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class FeedvizError(Exception):
    """
    Base exception for all transfer errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (account, dataset, offset, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
    ):
        self.message = message
        self.context = dict(context or {})
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)
        if original_exception is not None:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = self.message

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception is not None:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None,
        }


class ConfigError(FeedvizError):
    """Account configuration is missing, unreadable or incomplete."""


class AuthenticationError(FeedvizError):
    """Credentials are missing or were rejected by an upstream service."""


class UpstreamError(FeedvizError):
    """The catalog API failed while listing products."""


class ProvisioningError(FeedvizError):
    """The destination dataset or table could not be checked or created."""


class AppendError(FeedvizError):
    """At least one append to the write stream failed; carries the first failure."""


class RowEncodingError(FeedvizError):
    """A mapped row does not fit the destination schema."""
