"""Error taxonomy for the reconciliation engine.

Business rule violations are raised by the lifecycle operations and turned
into failure results at the operation boundary. The two warning classes are
not failures: ``NoOpWarning`` short-circuits an operation that would change
nothing, and ``ConsistencyWarning`` records an inventory or balance side
effect that could not be applied while the primary mutation still stands.
"""

from __future__ import annotations


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class NotFoundError(BusinessRuleViolation):
    """Raised when a referenced sale, purchase, part, or party is unknown."""


class InvalidStateError(BusinessRuleViolation):
    """Raised when the current record state forbids the requested operation."""


class NotApplicableError(InvalidStateError):
    """Raised when an operation does not apply to the record's payment type."""


class ConcurrentUpdateError(BusinessRuleViolation):
    """Raised when a guarded record changed between read and commit."""


class NoOpWarning(Warning):
    """Raised internally when the requested state equals the current state."""


class ConsistencyWarning(Warning):
    """Describes a side effect that was skipped or left stock negative."""


__all__ = [
    "BusinessRuleViolation",
    "NotFoundError",
    "InvalidStateError",
    "NotApplicableError",
    "ConcurrentUpdateError",
    "NoOpWarning",
    "ConsistencyWarning",
]
