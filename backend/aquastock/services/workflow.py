# Overview: Approval state machine shared by sales, LPOs, transfers and deduction requests.

"""
Approval State Machine

LIFECYCLE (every entity kind):
    pending --(positive outcome)--> approved | completed
    pending --(negative outcome)--> rejected | cancelled
Terminal states never transition again.

Each kind is described once by an EntityKind: its model, the target
states callers may request, the roles allowed to request each one, and
the mutation to run on the positive outcome.

GUARANTEES:
- The pending check is a conditional UPDATE (WHERE status = 'pending'),
  so of two concurrent transitions exactly one claims the row and the
  other gets InvalidTransition.
- The claim, the stock mutation and the log entries share one DB
  transaction. If the mutation fails the transaction is rolled back and
  the entity is still pending when the caller sees the original error.
- Negative outcomes write the status only; stock is never touched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import update

from ..errors import Forbidden, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import DeductionRequest, PurchaseOrder, Sale, Transfer
from ..models.auth import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CLERK
from ..time_utils import utcnow
from . import mutation_service
from .concurrency import run_with_retry


STATUS_PENDING = "pending"

# mutation(entity, actor_user_id) -> None
Mutation = Callable[[object, Optional[int]], None]


@dataclass(frozen=True)
class EntityKind:
    label: str
    model: type
    positive_state: str
    negative_state: str
    # target state -> roles allowed to request it
    allowed_roles: dict = field(default_factory=dict)
    mutation: Optional[Mutation] = None

    @property
    def target_states(self) -> tuple[str, str]:
        return (self.positive_state, self.negative_state)


SALE = EntityKind(
    label="Sale",
    model=Sale,
    positive_state="approved",
    negative_state="rejected",
    allowed_roles={
        "approved": frozenset({ROLE_ADMIN, ROLE_ACCOUNTANT}),
        "rejected": frozenset({ROLE_ADMIN, ROLE_ACCOUNTANT}),
    },
    mutation=mutation_service.apply_sale,
)

PURCHASE_ORDER = EntityKind(
    label="LPO",
    model=PurchaseOrder,
    positive_state="approved",
    negative_state="rejected",
    allowed_roles={
        "approved": frozenset({ROLE_ADMIN}),
        "rejected": frozenset({ROLE_ADMIN}),
    },
    mutation=mutation_service.apply_purchase_receipt,
)

TRANSFER = EntityKind(
    label="Transfer",
    model=Transfer,
    positive_state="completed",
    negative_state="cancelled",
    allowed_roles={
        "completed": frozenset({ROLE_CLERK}),
        "cancelled": frozenset({ROLE_CLERK}),
    },
    mutation=mutation_service.apply_transfer,
)

DEDUCTION_REQUEST = EntityKind(
    label="Request",
    model=DeductionRequest,
    positive_state="approved",
    negative_state="rejected",
    allowed_roles={
        "approved": frozenset({ROLE_ADMIN}),
        "rejected": frozenset({ROLE_ADMIN}),
    },
    mutation=mutation_service.apply_request_deduction,
)

_USE_KIND_MUTATION = object()


def check_allowed(kind: EntityKind, target_state: str, actor) -> None:
    """Raise ValidationError for unknown targets, Forbidden for wrong roles."""
    if target_state not in kind.target_states:
        raise ValidationError(
            f"Invalid status for {kind.label}: {target_state!r}",
            details={"allowed": list(kind.target_states)},
        )

    allowed = kind.allowed_roles.get(target_state, frozenset())
    if actor is None or actor.role not in allowed:
        current_app.logger.warning(
            "Denied %s -> %s for role %s",
            kind.label,
            target_state,
            getattr(actor, "role", None),
        )
        raise Forbidden(
            f"Role {getattr(actor, 'role', None)!r} cannot set {kind.label} to {target_state}",
            details={"required_roles": sorted(allowed)},
        )


def claim(kind: EntityKind, entity_id: int, target_state: str, actor_user_id: int | None, extra_values: dict | None = None):
    """
    Move a pending row to target_state inside the current DB transaction.

    Returns the refreshed entity. Does not commit.

    Raises:
        NotFound: no such entity
        InvalidTransition: entity is no longer pending
    """
    model = kind.model
    now = utcnow()
    values = {
        "status": target_state,
        "approved_by_user_id": actor_user_id,
        "approved_at": now,
        "updated_at": now,
    }
    if extra_values:
        values.update(extra_values)

    stmt = (
        update(model)
        .where(model.id == entity_id)
        .where(model.status == STATUS_PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        current = db.session.get(model, entity_id, populate_existing=True)
        if current is None:
            raise NotFound(f"{kind.label} {entity_id} not found")
        raise InvalidTransition(
            f"{kind.label} {entity_id} has already been processed",
            details={"status": current.status},
        )

    return db.session.get(model, entity_id, populate_existing=True)


def transition(
    kind: EntityKind,
    entity_id: int,
    target_state: str,
    actor,
    *,
    mutation=_USE_KIND_MUTATION,
    extra_values: dict | None = None,
):
    """
    Transition a pending entity to target_state on behalf of actor.

    Args:
        kind: EntityKind descriptor
        entity_id: primary key
        target_state: one of kind.target_states
        actor: User performing the transition (role is checked)
        mutation: override for the positive-outcome mutation; None skips it
        extra_values: additional columns written with the status

    Returns:
        The entity in its new state (committed).

    Raises:
        ValidationError, Forbidden, NotFound, InvalidTransition,
        InsufficientStock, StorageFailure
    """
    check_allowed(kind, target_state, actor)

    if mutation is _USE_KIND_MUTATION:
        mutation = kind.mutation

    def _op():
        entity = claim(kind, entity_id, target_state, actor.id, extra_values)
        if target_state == kind.positive_state and mutation is not None:
            mutation(entity, actor.id)
        db.session.commit()
        return entity

    try:
        entity = run_with_retry(_op)
    except InvalidTransition:
        current_app.logger.info("%s %s already processed; %s ignored", kind.label, entity_id, target_state)
        raise

    current_app.logger.info(
        "%s %s -> %s by user %s",
        kind.label,
        entity_id,
        target_state,
        actor.id,
    )
    return entity
