"""Error classes raised by the cache and the export boundary.

Absent keys are not errors: lookups return ``None``.
"""

from __future__ import annotations


class CacheValidationError(ValueError):
    """Request is missing an identifying field; nothing was read or written."""


class TransactionFailure(RuntimeError):
    """Storage fault inside a transaction; it was rolled back and may be retried."""


class JobOwnershipError(PermissionError):
    """Export job belongs to another user."""
