#!/usr/bin/env python3
"""Exception hierarchy for pdfforge.

All errors raised by the transformation pipeline inherit from PdfForgeError
and carry a stable ``kind`` string so that a caller (HTTP layer, CLI) can map
them to a structured response without string matching.

Hierarchy:
    PdfForgeError
    ├── ValidationError
    │   ├── EmptySelectionError
    │   ├── SingleOrEmptyDocumentError
    │   ├── InvalidPartCountError
    │   ├── InvalidChunkSizeError
    │   └── InvalidRotationError
    ├── CorruptSourceError
    ├── ExternalToolUnavailableError
    ├── CompressionFailedError
    ├── PartialWriteFailureError
    └── StagingError

Production mode:
    ``to_dict(production=True)`` keeps the kind but replaces internal
    messages (tool paths, parser detail) with a generic per-kind message.
    Validation messages describe the caller's own input and stay visible.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PdfForgeError(Exception):
    """Base class for all pdfforge errors.

    Attributes:
        message: Human-readable error message.
        details: Extra context (paths, counts). Omitted in production output.
    """

    kind: str = "internal"
    public_message: str = "Something went wrong"
    exposes_message: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self, production: bool = False) -> Dict[str, Any]:
        if production and not self.exposes_message:
            return {"error": self.kind, "message": self.public_message}
        payload: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details and not production:
            payload["details"] = self.details
        return payload


class ValidationError(PdfForgeError):
    kind = "validation"
    public_message = "Invalid request parameters"
    exposes_message = True


class EmptySelectionError(ValidationError):
    pass


class SingleOrEmptyDocumentError(ValidationError):
    pass


class InvalidPartCountError(ValidationError):
    pass


class InvalidChunkSizeError(ValidationError):
    pass


class InvalidRotationError(ValidationError):
    pass


class CorruptSourceError(PdfForgeError):
    kind = "corrupt_source"
    public_message = "Uploaded file is not a valid PDF"


class ExternalToolUnavailableError(PdfForgeError):
    """Every external tool candidate failed to launch or exited non-zero.

    Recovered locally by the compression pipeline; never reaches a caller.
    """

    kind = "external_tool_unavailable"
    public_message = "Compression tool unavailable"

    def __init__(self, message: str, attempts: Optional[List[Any]] = None) -> None:
        super().__init__(message, {"attempts": [getattr(a, "reason", str(a)) for a in attempts or []]})
        self.attempts = list(attempts or [])


class CompressionFailedError(PdfForgeError):
    kind = "compression_failed"
    public_message = "Failed to compress PDF"


class PartialWriteFailureError(PdfForgeError):
    kind = "partial_write_failure"
    public_message = "Failed to process PDF"


class StagingError(PdfForgeError):
    kind = "io"
    public_message = "File storage error"


def error_payload(exc: BaseException, production: bool = False) -> Dict[str, Any]:
    """Build a structured error payload for any exception.

    Unexpected exceptions are reported with kind "internal"; their message is
    only included outside production.
    """
    if isinstance(exc, PdfForgeError):
        return exc.to_dict(production=production)
    if production:
        return {"error": PdfForgeError.kind, "message": PdfForgeError.public_message}
    return {"error": PdfForgeError.kind, "message": str(exc) or exc.__class__.__name__}
