"""
Typed Exception Hierarchy for the LPO lifecycle engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (UI, reports, payment ledger) must be able to render a precise
message for every failure without parsing strings.  Therefore:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (order id, line id, tier, ...)

Example:

    try:
        lifecycle.approve_order(order_id, actor, Tier.GM)
    except InvalidStateError as e:
        api_response(code=e.code, order=e.order_id, status=e.current_status)
    except ConflictError:
        refetch_and_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcurementError (base)
    |
    +-- ValidationError             malformed / missing input
    +-- InvalidStateError           operation illegal in current state
    +-- ForbiddenError              actor lacks tier / role capability
    +-- OverReceiptError            receipt quantity exceeds pending
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- AssetNotFoundError
    +-- ConcurrencyError
    |   +-- ConflictError           lost an optimistic version race
    |   +-- LockTimeoutError        bounded lock wait exceeded
    +-- ImmutabilityViolationError  append-only record modified

===============================================================================
RECOVERY
===============================================================================

Only ``ConflictError`` is safe to retry, after the caller refetches the
current state.  Everything else is reported to the caller unchanged.
"""

from typing import Any


class ProcurementError(Exception):
    """Base exception for all lifecycle engine errors."""

    code: str = "PROCUREMENT_ERROR"


class ValidationError(ProcurementError):
    """Input is malformed or a mandatory value is missing."""

    code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        order_id: Any = None,
        line_id: Any = None,
    ):
        self.field = field
        self.order_id = str(order_id) if order_id is not None else None
        self.line_id = str(line_id) if line_id is not None else None
        super().__init__(message)


class InvalidStateError(ProcurementError):
    """The operation is not legal in the entity's current lifecycle state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_status: str,
        action: str,
        *,
        tier: str | None = None,
        detail: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.action = action
        self.tier = tier
        msg = f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        if tier is not None:
            msg += f" (tier {tier})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @property
    def order_id(self) -> str | None:
        return self.entity_id if self.entity_type == "order" else None


class ForbiddenError(ProcurementError):
    """The actor does not hold the capability required for the action."""

    code: str = "FORBIDDEN"

    def __init__(
        self,
        actor_id: Any,
        action: str,
        *,
        order_id: Any = None,
        tier: str | None = None,
        required_roles: tuple[str, ...] = (),
    ):
        self.actor_id = str(actor_id)
        self.action = action
        self.order_id = str(order_id) if order_id is not None else None
        self.tier = tier
        self.required_roles = required_roles
        target = f" on order {order_id}" if order_id is not None else ""
        at_tier = f" at tier {tier}" if tier is not None else ""
        super().__init__(f"Actor {actor_id} may not {action}{target}{at_tier}")


class OverReceiptError(ProcurementError):
    """Requested receipt quantity exceeds the quantity still pending."""

    code: str = "OVER_RECEIPT"

    def __init__(self, line_id: Any, requested: Any, pending: Any, *, order_id: Any = None):
        self.line_id = str(line_id) if line_id is not None else None
        self.order_id = str(order_id) if order_id is not None else None
        self.requested = str(requested)
        self.pending = str(pending)
        super().__init__(
            f"Cannot receive {requested} on line {line_id}: only {pending} pending"
        )


# Lookup failures


class NotFoundError(ProcurementError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        self.order_id = str(order_id)
        super().__init__(f"Order not found: {order_id}")


class OrderLineNotFoundError(NotFoundError):
    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, line_id: Any, order_id: Any = None):
        self.line_id = str(line_id)
        self.order_id = str(order_id) if order_id is not None else None
        super().__init__(f"Order line not found: {line_id}")


class AssetNotFoundError(NotFoundError):
    code: str = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: Any):
        self.asset_id = str(asset_id)
        super().__init__(f"Asset not found: {asset_id}")


# Concurrency


class ConcurrencyError(ProcurementError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """A concurrent writer updated the entity first.

    Safe to retry after refetching current state.
    """

    code: str = "CONCURRENT_UPDATE_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        *,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent update conflict on {entity_type} {entity_id}{detail}"
        )


class LockTimeoutError(ConcurrencyError):
    """Waiting for an entity lock exceeded the configured bound."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, lock_key: str, timeout_seconds: float):
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock {lock_key}"
        )


# Immutability


class ImmutabilityViolationError(ProcurementError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
