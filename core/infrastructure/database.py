"""
Database utilities and transaction management.
"""

import contextlib
from typing import Iterator

from django.db import DatabaseError, transaction

from core.domain.exceptions import PersistenceError


@contextlib.contextmanager
def atomic_batch(operation: str) -> Iterator[None]:
    """
    Run one batch of writes as a single transaction.

    Database errors roll the whole batch back and surface as
    PersistenceError naming the operation.

    Usage:
        with atomic_batch("suspend_expired_licenses"):
            # Database operations
            pass
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as e:
        raise PersistenceError(f"{operation} failed: {e}") from e
