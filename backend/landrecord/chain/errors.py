"""Exceptions raised by the chain resolver."""

from typing import Any, Optional


class ChainError(Exception):
    """Base exception for the chain resolver"""
    def __init__(
        self,
        message: str,
        code: str = "CHAIN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ChainError):
    """A mutation was rejected; the prior snapshot is kept."""
    def __init__(self, message: str = "Validation failed", details: Optional[dict[str, Any]] = None):
        super().__init__(message=message, code="VALIDATION_ERROR", details=details)


class AreaDistributionError(ValidationError):
    """New-owner areas exceed the old owner's remaining area or the year-slab capacity."""
    def __init__(
        self,
        message: str,
        maximum: float,
        limit: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.maximum = maximum
        self.limit = limit
        merged = {"maximum": round(maximum, 2), "limit": limit}
        merged.update(details or {})
        super().__init__(message=message, details=merged)


class ReferentialError(ChainError):
    """An id does not resolve to an entry of the snapshot."""
    def __init__(self, message: str = "Reference not found", details: Optional[dict[str, Any]] = None):
        super().__init__(message=message, code="REFERENCE_NOT_FOUND", details=details)


class ChainIntegrityError(ChainError):
    """The snapshot itself is corrupt (duplicate ids, cyclic references)."""
    def __init__(self, message: str = "Corrupt chain snapshot", details: Optional[dict[str, Any]] = None):
        super().__init__(message=message, code="CHAIN_INTEGRITY", details=details)
