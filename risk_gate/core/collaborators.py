"""Timeout-bounded access to external collaborators."""

import asyncio
from collections.abc import Awaitable
from decimal import Decimal, InvalidOperation
from typing import TypeVar

from ..exceptions import CollaboratorUnavailableError

_T = TypeVar("_T")


async def call_collaborator(
    awaitable: Awaitable[_T],
    *,
    collaborator: str,
    operation: str,
    timeout_s: float,
) -> _T:
    """Await a collaborator call under ``timeout_s``.

    Timeouts and any exception raised by the collaborator surface as
    ``CollaboratorUnavailableError``. Cancellation of the caller propagates.

    Args:
        awaitable: The pending collaborator call.
        collaborator: Name used in the error (e.g. "storage").
        operation: Operation name used in the error.
        timeout_s: Upper bound on the call duration.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except TimeoutError as e:
        raise CollaboratorUnavailableError(
            collaborator,
            operation,
            f"{collaborator} timed out during '{operation}' (> {timeout_s}s)",
        ) from e
    except CollaboratorUnavailableError:
        raise
    except Exception as e:
        raise CollaboratorUnavailableError(
            collaborator,
            operation,
            f"{collaborator} failed during '{operation}': {e}",
        ) from e


def collaborator_decimal(value: object, *, collaborator: str, operation: str) -> Decimal:
    """Convert a collaborator-supplied number to ``Decimal``.

    Raises:
        CollaboratorUnavailableError: If the value is missing, not numeric,
            NaN or infinite.
    """
    if value is None or isinstance(value, bool):
        raise CollaboratorUnavailableError(
            collaborator, operation, f"{collaborator} returned no value for '{operation}'")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise CollaboratorUnavailableError(
            collaborator,
            operation,
            f"{collaborator} returned a non-numeric value for '{operation}': {value!r}",
        ) from e
    if not result.is_finite():
        raise CollaboratorUnavailableError(
            collaborator,
            operation,
            f"{collaborator} returned a non-finite value for '{operation}': {value!r}",
        )
    return result
