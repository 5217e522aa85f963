"""
Shared helpers for module services.

Used by lpo_modules/*/service.py to reduce duplication in the
commit/rollback boundary, decimal input coercion and role checks.

Architecture: Modules layer. Imports only from lpo_kernel.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Generator
from uuid import UUID

from sqlalchemy.orm import Session

from lpo_kernel.db.locking import conflict_on_stale
from lpo_kernel.domain.actor import Actor
from lpo_kernel.exceptions import ForbiddenError, ProcurementError, ValidationError


@contextmanager
def service_transaction(
    session: Session,
    logger,
    operation: str,
    entity_type: str,
    entity_id: Any,
    **fields: Any,
) -> Generator[dict[str, Any], None, None]:
    """
    Own the transaction boundary of one public service operation.

    Logs ``<operation>_started``, then commits when the block exits
    normally and logs ``<operation>_completed`` with whatever the block put
    in the yielded dict.  Any exception rolls back and is re-raised; rule
    violations are logged as ``<operation>_rejected`` with their code.
    """
    base = {k: (str(v) if isinstance(v, UUID) else v) for k, v in fields.items()}
    logger.info(f"{operation}_started", extra=base)
    outcome: dict[str, Any] = {}
    try:
        with conflict_on_stale(entity_type, entity_id):
            yield outcome
            session.commit()
    except ProcurementError as exc:
        session.rollback()
        logger.warning(
            f"{operation}_rejected",
            extra={**base, "error_code": exc.code, "error": str(exc)},
        )
        raise
    except Exception:
        session.rollback()
        logger.exception(f"{operation}_failed", extra=base)
        raise
    logger.info(f"{operation}_completed", extra={**base, **outcome})


def to_decimal(value: Any, field: str, **context: Any) -> Decimal:
    """Coerce user input to Decimal; floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field, **context) from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, **context)
    return result


def require_text(value: str | None, field: str, **context: Any) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field, **context)
    return str(value).strip()


def require_role(
    actor: Actor,
    roles: tuple[str, ...] | list[str],
    action: str,
    **context: Any,
) -> None:
    if not actor.has_any_role(roles):
        raise ForbiddenError(actor.actor_id, action, required_roles=tuple(roles), **context)


def is_integral(quantity: Decimal) -> bool:
    return quantity == quantity.to_integral_value()
