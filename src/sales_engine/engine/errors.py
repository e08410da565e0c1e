"""
Error taxonomy for the sales engine.

Every operation raises one of these synchronously; the API layer maps them
onto HTTP status codes.
"""
from typing import Optional


class SalesEngineError(Exception):
    """Base class for all engine errors."""


class NotFound(SalesEngineError):
    """A referenced product, customer, order, invoice or rule does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} with ID '{identifier}' not found")


class InvalidRule(SalesEngineError):
    """A pricing rule is malformed and was not persisted."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid pricing rule")


class BusinessRuleViolation(SalesEngineError):
    """An operation was refused for a business reason (human-readable)."""

    def __init__(self, reason: str, code: Optional[str] = None):
        self.reason = reason
        self.code = code
        super().__init__(reason)


class ConcurrencyConflict(BusinessRuleViolation):
    """
    An atomic check lost a race against a concurrent writer.

    Callers should treat this like "already exists" and re-fetch rather than
    retry the write.
    """
