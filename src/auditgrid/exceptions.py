"""Custom exceptions for the auditgrid mapping engine."""

from __future__ import annotations


class AuditGridError(Exception):
    """Base exception for all auditgrid errors."""

    pass


class ValidationError(AuditGridError):
    """Base exception for rejected input."""

    pass


class InvalidAddressError(ValidationError):
    """Raised when an address or cell reference cannot be parsed.

    The ``reason`` attribute tells apart a missing sheet separator from a
    malformed cell reference.
    """

    MISSING_SEPARATOR = "missing sheet separator"
    MALFORMED_REFERENCE = "malformed cell reference"

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid address '{address}': {reason}")


class InvalidMappingError(ValidationError):
    """Raised when a mapping is missing its selection or destination field."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid mapping: {reason}")


class InvalidNamedRangeError(ValidationError):
    """Raised when a named range name is empty, padded, or already taken."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid named range {name!r}: {reason}")


class NotFoundError(AuditGridError):
    """Raised when a named range, mapping, or workbook id is absent."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ExternalServiceError(AuditGridError):
    """Raised when the document store or ingestion service reports a failure.

    Carries the underlying message so callers can show it or retry.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")
